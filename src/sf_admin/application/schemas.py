"""Pydantic schemas for the sf_admin API."""
from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field

from src.sf_admin.domain.models import ReviewResult
from src.sf_order.application.schemas import OrderResponse
from src.sf_order.domain.models import Order

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class UpdateStatusRequest(BaseModel):
    status: Literal["processing", "shipped", "delivered", "cancelled", "returned"]
    note: str | None = Field(None, max_length=500)


class AddTrackingRequest(BaseModel):
    tracking_number: str = Field(..., min_length=1, max_length=64)
    carrier: str = Field(..., min_length=1, max_length=32)
    estimated_delivery: date | None = None


class ApproveTransferRequest(BaseModel):
    approved_amount: int | None = Field(
        None, gt=0, description="Received amount in cents; defaults to the order total"
    )
    note: str | None = Field(None, max_length=500)


class RejectTransferRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class BulkReviewRequest(BaseModel):
    order_ids: list[str] = Field(..., min_length=1, max_length=100)
    action: Literal["approve", "reject"]
    note: str | None = Field(None, max_length=500)
    reason: str | None = Field(None, max_length=500)


class RefundRequest(BaseModel):
    amount: int = Field(..., description="Refund amount in cents")
    reason: str = Field(..., min_length=1, max_length=500)
    method: Literal["original", "bank_transfer"] = "original"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class AdminOrderResponse(OrderResponse):
    user_id: str
    customer_email: str
    customer_name: str
    customer_type: str
    payment_details: dict[str, Any]
    refunds: list[dict[str, Any]]
    admin_notes: list[dict[str, Any]]

    @classmethod
    def from_domain(cls, order: Order) -> "AdminOrderResponse":
        base = OrderResponse.from_domain(order).model_dump()
        return cls(
            **base,
            user_id=order.user_id,
            customer_email=order.customer_email,
            customer_name=order.customer_name,
            customer_type=order.customer_type,
            payment_details=order.payment.details,
            refunds=order.payment.refunds,
            admin_notes=order.admin_notes,
        )


class ReviewResultResponse(BaseModel):
    order_id: str
    success: bool
    error_code: int | None = None
    message: str | None = None

    @classmethod
    def from_domain(cls, result: ReviewResult) -> "ReviewResultResponse":
        return cls(
            order_id=result.order_id,
            success=result.success,
            error_code=result.error_code,
            message=result.message,
        )


class BulkReviewResponse(BaseModel):
    action: str
    succeeded: int
    failed: int
    results: list[ReviewResultResponse]
