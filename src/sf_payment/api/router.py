"""sf_payment REST API: payment initiation, status, and the PSP webhook.

The webhook is unauthenticated (the HMAC signature is the authentication)
and answers plain text: "OK" stops PSP retries, anything else asks for one.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.database import get_db_session
from src.sf_common.errors import AppError, InvalidCallbackSignatureError
from src.sf_common.response import ApiResponse, success_response
from src.sf_gateway.auth.dependencies import CurrentUser, get_current_user
from src.sf_gateway.middleware.rate_limit import client_ip
from src.sf_payment.application.initiator import PaymentInitiator
from src.sf_payment.application.reconciler import CallbackReconciler
from src.sf_payment.application.schemas import BankTransferNoticeRequest
from src.sf_payment.domain.models import CallbackOutcome, CallbackPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

_initiator = PaymentInitiator()
_reconciler = CallbackReconciler()


def get_payment_initiator() -> PaymentInitiator:
    return _initiator


def get_callback_reconciler() -> CallbackReconciler:
    return _reconciler


@router.post("/callback", response_class=PlainTextResponse)
async def psp_callback(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    reconciler: Annotated[CallbackReconciler, Depends(get_callback_reconciler)],
    merchant_oid: Annotated[str, Form()],
    status: Annotated[str, Form()],
    total_amount: Annotated[str, Form()],
    hash: Annotated[str, Form()],
    failed_reason_code: Annotated[str | None, Form()] = None,
    failed_reason_msg: Annotated[str | None, Form()] = None,
    payment_type: Annotated[str | None, Form()] = None,
) -> PlainTextResponse:
    payload = CallbackPayload(
        merchant_oid=merchant_oid,
        status=status,
        total_amount=total_amount,
        hash=hash,
        failed_reason_code=failed_reason_code,
        failed_reason_msg=failed_reason_msg,
        payment_type=payment_type,
    )
    try:
        outcome = await reconciler.handle(db, payload)
    except AppError as exc:
        logger.warning("Callback not applied: oid=%s code=%d %s", merchant_oid, exc.code, exc.message)
        return PlainTextResponse("ERROR", status_code=exc.http_status)
    if outcome is CallbackOutcome.REJECTED:
        err = InvalidCallbackSignatureError(merchant_oid)
        return PlainTextResponse(outcome.response_text, status_code=err.http_status)
    return PlainTextResponse(outcome.response_text)


@router.get("/bank-accounts")
async def bank_accounts(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
    request: Request,
) -> ApiResponse:
    data = [a.model_dump() for a in initiator.list_bank_accounts()]
    return success_response(data, getattr(request.state, "request_id", None))


@router.get("/{order_id}/status")
async def payment_status(
    order_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
    request: Request,
) -> ApiResponse:
    data = await initiator.get_payment_status(db, order_id, current_user)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/{order_id}/card")
async def init_card_payment(
    order_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
    request: Request,
) -> ApiResponse:
    data = await initiator.init_hosted_payment(db, order_id, current_user, client_ip(request))
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/{order_id}/bank-transfer")
async def init_bank_transfer(
    order_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
    request: Request,
) -> ApiResponse:
    data = await initiator.init_bank_transfer(db, order_id, current_user)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/{order_id}/bank-transfer/notify")
async def notify_bank_transfer(
    order_id: str,
    body: BankTransferNoticeRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
    request: Request,
) -> ApiResponse:
    data = await initiator.notify_bank_transfer(db, order_id, current_user, body)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))
