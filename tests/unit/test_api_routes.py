"""HTTP-level tests: routing, auth, envelopes and the plain-text PSP webhook.

Services and the DB session are replaced through app.dependency_overrides,
so no database or Redis is needed.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.main import app
from src.sf_admin.api.router import get_fulfillment_service
from src.sf_admin.application.schemas import AdminOrderResponse
from src.sf_common.database import get_db_session
from src.sf_common.errors import OrderNotFoundError, RefundExceedsBalanceError
from src.sf_gateway.auth.jwt_handler import create_access_token
from src.sf_order.api.router import get_order_service
from src.sf_order.application.schemas import OrderResponse
from src.sf_payment.api.router import get_callback_reconciler
from src.sf_payment.application.reconciler import CallbackReconciler
from src.sf_payment.domain.signature import callback_signature
from tests.factories import make_order, make_payment_config

CUSTOMER = {"Authorization": f"Bearer {create_access_token('user-1', email='ayse@example.com')}"}
ADMIN = {"Authorization": f"Bearer {create_access_token('admin-1', role='admin')}"}


async def _fake_session():  # type: ignore[no-untyped-def]
    yield AsyncMock()


@pytest.fixture(autouse=True)
def _no_db():
    app.dependency_overrides[get_db_session] = _fake_session
    yield
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


class TestOrderRoutes:
    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        resp = await client.get("/api/v1/orders")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_get_order_envelope(self, client):
        service = MagicMock()
        service.get_order = AsyncMock(return_value=OrderResponse.from_domain(make_order()))
        app.dependency_overrides[get_order_service] = lambda: service

        resp = await client.get("/api/v1/orders/order-1", headers=CUSTOMER)

        body = resp.json()
        assert resp.status_code == 200
        assert body["code"] == 0
        assert body["data"]["order_number"] == "ORD-20260301-000001"
        assert body["data"]["total_amount_cents"] == 12500
        assert service.get_order.await_args.args[2].id == "user-1"

    @pytest.mark.asyncio
    async def test_app_error_envelope(self, client):
        service = MagicMock()
        service.get_order = AsyncMock(side_effect=OrderNotFoundError("missing"))
        app.dependency_overrides[get_order_service] = lambda: service

        resp = await client.get("/api/v1/orders/missing", headers=CUSTOMER)

        assert resp.status_code == 404
        assert resp.json()["code"] == 4004
        assert resp.json()["data"] is None
        assert resp.json()["request_id"] == resp.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_create_order_validation(self, client):
        app.dependency_overrides[get_order_service] = lambda: MagicMock()
        resp = await client.post(
            "/api/v1/orders", json={"items": [], "payment_method": "cash"}, headers=CUSTOMER
        )
        assert resp.status_code == 422


def _signed_form(status: str = "success", total_amount: str = "12500", **extra) -> dict:
    form = {
        "merchant_oid": "SF1123",
        "status": status,
        "total_amount": total_amount,
        "hash": callback_signature(
            "test-merchant-key", "test-merchant-salt", "SF1123", status, total_amount
        ),
    }
    form.update(extra)
    return form


def _reconciler_with(order) -> tuple[CallbackReconciler, MagicMock, MagicMock]:  # type: ignore[no-untyped-def]
    repo = MagicMock()
    repo.get_by_transaction_id = AsyncMock(return_value=order)
    repo.apply_payment_outcome = AsyncMock(return_value=order)
    repo.mark_payment_processing = AsyncMock(return_value=order)
    settlement = MagicMock()
    settlement.payment_confirmed = AsyncMock()
    reconciler = CallbackReconciler(config=make_payment_config(), repo=repo, settlement=settlement)
    return reconciler, repo, settlement


class TestWebhook:
    @pytest.mark.asyncio
    async def test_valid_callback_answers_ok(self, client):
        order = make_order(payment_status="processing", transaction_id="SF1123")
        reconciler, repo, _ = _reconciler_with(order)
        app.dependency_overrides[get_callback_reconciler] = lambda: reconciler

        resp = await client.post("/api/v1/payments/callback", data=_signed_form())

        assert resp.status_code == 200
        assert resp.text == "OK"
        assert resp.headers["content-type"].startswith("text/plain")
        repo.apply_payment_outcome.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_callback_answers_ok(self, client):
        order = make_order(status="confirmed", payment_status="completed", transaction_id="SF1123")
        reconciler, repo, settlement = _reconciler_with(order)
        app.dependency_overrides[get_callback_reconciler] = lambda: reconciler

        resp = await client.post("/api/v1/payments/callback", data=_signed_form())

        assert resp.text == "OK"
        repo.apply_payment_outcome.assert_not_awaited()
        settlement.payment_confirmed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forged_callback_answers_error(self, client):
        reconciler, repo, _ = _reconciler_with(make_order())
        app.dependency_overrides[get_callback_reconciler] = lambda: reconciler

        resp = await client.post(
            "/api/v1/payments/callback", data={**_signed_form(), "hash": "forged"}
        )

        assert resp.status_code == 400
        assert resp.text == "ERROR"
        repo.get_by_transaction_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_reference_answers_error(self, client):
        reconciler, _, _ = _reconciler_with(None)
        app.dependency_overrides[get_callback_reconciler] = lambda: reconciler

        resp = await client.post("/api/v1/payments/callback", data=_signed_form())

        assert resp.status_code == 404
        assert resp.text == "ERROR"

    @pytest.mark.asyncio
    async def test_unsupported_status_answers_error(self, client):
        order = make_order(payment_status="processing", transaction_id="SF1123")
        reconciler, repo, _ = _reconciler_with(order)
        app.dependency_overrides[get_callback_reconciler] = lambda: reconciler

        resp = await client.post("/api/v1/payments/callback", data=_signed_form(status="SUCCESS"))

        assert resp.status_code == 400
        assert resp.text == "ERROR"
        repo.apply_payment_outcome.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, client):
        resp = await client.post("/api/v1/payments/callback", data={"merchant_oid": "SF1123"})
        assert resp.status_code == 422


class TestAdminRoutes:
    @pytest.mark.asyncio
    async def test_customer_cannot_use_admin_routes(self, client):
        app.dependency_overrides[get_fulfillment_service] = lambda: MagicMock()
        resp = await client.post(
            "/api/v1/admin/payments/order-1/refund",
            json={"amount": 100, "reason": "x"},
            headers=CUSTOMER,
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == 1006

    @pytest.mark.asyncio
    async def test_refund_passes_admin_as_actor(self, client):
        order = make_order(status="delivered", payment_status="completed")
        service = MagicMock()
        service.process_refund = AsyncMock(return_value=AdminOrderResponse.from_domain(order))
        app.dependency_overrides[get_fulfillment_service] = lambda: service

        resp = await client.post(
            "/api/v1/admin/payments/order-1/refund",
            json={"amount": 500, "reason": "Damaged"},
            headers=ADMIN,
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["user_id"] == "user-1"
        args = service.process_refund.await_args.args
        assert args[1:] == ("order-1", 500, "Damaged", "admin-1")
        assert service.process_refund.await_args.kwargs["method"] == "original"

    @pytest.mark.asyncio
    async def test_refund_method_is_forwarded(self, client):
        order = make_order(status="delivered", payment_status="completed")
        service = MagicMock()
        service.process_refund = AsyncMock(return_value=AdminOrderResponse.from_domain(order))
        app.dependency_overrides[get_fulfillment_service] = lambda: service

        resp = await client.post(
            "/api/v1/admin/payments/order-1/refund",
            json={"amount": 500, "reason": "Damaged", "method": "bank_transfer"},
            headers=ADMIN,
        )

        assert resp.status_code == 200
        assert service.process_refund.await_args.kwargs["method"] == "bank_transfer"

    @pytest.mark.asyncio
    async def test_refund_unknown_method_is_422(self, client):
        app.dependency_overrides[get_fulfillment_service] = lambda: MagicMock()
        resp = await client.post(
            "/api/v1/admin/payments/order-1/refund",
            json={"amount": 500, "reason": "Damaged", "method": "cash"},
            headers=ADMIN,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_refund_overflow_is_422(self, client):
        service = MagicMock()
        service.process_refund = AsyncMock(side_effect=RefundExceedsBalanceError(20000, 12500))
        app.dependency_overrides[get_fulfillment_service] = lambda: service

        resp = await client.post(
            "/api/v1/admin/payments/order-1/refund",
            json={"amount": 20000, "reason": "x"},
            headers=ADMIN,
        )

        assert resp.status_code == 422
        assert resp.json()["code"] == 5005

    @pytest.mark.asyncio
    async def test_status_update_rejects_unknown_target(self, client):
        app.dependency_overrides[get_fulfillment_service] = lambda: MagicMock()
        resp = await client.patch(
            "/api/v1/admin/orders/order-1/status", json={"status": "pending"}, headers=ADMIN
        )
        assert resp.status_code == 422
