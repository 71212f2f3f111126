"""Admin REST API: order status, tracking, bank transfer review, refunds."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_admin.application.schemas import (
    AddTrackingRequest,
    ApproveTransferRequest,
    BulkReviewRequest,
    RefundRequest,
    RejectTransferRequest,
    UpdateStatusRequest,
)
from src.sf_admin.application.service import FulfillmentService
from src.sf_common.database import get_db_session
from src.sf_common.response import ApiResponse, success_response
from src.sf_gateway.auth.dependencies import CurrentUser, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])

_service = FulfillmentService()


def get_fulfillment_service() -> FulfillmentService:
    return _service


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.update_order_status(db, order_id, body.status, body.note, admin.id)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/orders/{order_id}/tracking")
async def add_tracking(
    order_id: str,
    body: AddTrackingRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.add_tracking(
        db, order_id, body.tracking_number, body.carrier, body.estimated_delivery, admin.id
    )
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.get("/payments/pending-transfers")
async def pending_transfers(
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
    limit: int = Query(100, ge=1, le=500),
) -> ApiResponse:
    data = await service.list_pending_bank_transfers(db, limit)
    return success_response(
        [o.model_dump() for o in data], getattr(request.state, "request_id", None)
    )


@router.post("/payments/bulk")
async def bulk_review(
    body: BulkReviewRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.bulk_review_bank_transfers(
        db, body.order_ids, body.action, admin.id, note=body.note, reason=body.reason
    )
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/payments/{order_id}/approve")
async def approve_transfer(
    order_id: str,
    body: ApproveTransferRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.approve_bank_transfer(
        db, order_id, body.approved_amount, body.note, admin.id
    )
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/payments/{order_id}/reject")
async def reject_transfer(
    order_id: str,
    body: RejectTransferRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.reject_bank_transfer(db, order_id, body.reason, admin.id)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/payments/{order_id}/refund")
async def refund(
    order_id: str,
    body: RefundRequest,
    admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[FulfillmentService, Depends(get_fulfillment_service)],
    request: Request,
) -> ApiResponse:
    data = await service.process_refund(
        db, order_id, body.amount, body.reason, admin.id, method=body.method
    )
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))
