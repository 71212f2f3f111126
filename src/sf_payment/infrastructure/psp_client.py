"""HTTP client for the PSP hosted-payment token endpoint.

The PSP answers {"status": "success", "token": ...} or
{"status": "failed", "reason": ...}. Transport errors and timeouts are
retryable (PspUnavailableError); an explicit "failed" answer is not
(PspRejectedError).
"""
import logging
from typing import Any

import httpx

from src.sf_common.errors import PspRejectedError, PspUnavailableError

logger = logging.getLogger(__name__)


class PspClient:
    def __init__(
        self,
        api_url: str,
        timeout: float,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_token(self, form: dict[str, Any]) -> str:
        merchant_oid = form.get("merchant_oid")
        try:
            async with httpx.AsyncClient(
                base_url=self._api_url, timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post("/get-token", data=form)
                resp.raise_for_status()
                body = resp.json()
        except httpx.TimeoutException:
            logger.warning("PSP token request timed out: oid=%s", merchant_oid)
            raise PspUnavailableError("timeout") from None
        except httpx.HTTPError as exc:
            logger.warning("PSP token request failed: oid=%s error=%s", merchant_oid, exc)
            raise PspUnavailableError(type(exc).__name__) from exc
        except ValueError:
            logger.warning("PSP token response is not JSON: oid=%s", merchant_oid)
            raise PspUnavailableError("malformed response") from None

        if body.get("status") != "success" or not body.get("token"):
            reason = str(body.get("reason") or "unknown")
            logger.warning("PSP rejected token request: oid=%s reason=%s", merchant_oid, reason)
            raise PspRejectedError(reason)
        return str(body["token"])
