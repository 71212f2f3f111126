"""Shared test fixtures.

Settings are read at import time, so the environment is prepared before
anything under src/ is imported.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-for-unit-tests-only")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PSP_MERCHANT_ID", "100001")
os.environ.setdefault("PSP_MERCHANT_KEY", "test-merchant-key")
os.environ.setdefault("PSP_MERCHANT_SALT", "test-merchant-salt")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from src.main import app  # noqa: E402


@pytest.fixture
async def client() -> AsyncClient:
    """Async HTTP client for testing FastAPI endpoints (no lifespan, no DB)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
