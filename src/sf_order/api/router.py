"""sf_order REST API: createOrder, quote and the customer's own orders."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.database import get_db_session
from src.sf_common.response import ApiResponse, success_response
from src.sf_gateway.auth.dependencies import CurrentUser, get_current_user
from src.sf_order.application.schemas import CreateOrderRequest, QuoteRequest
from src.sf_order.application.service import OrderApplicationService

router = APIRouter(prefix="/orders", tags=["orders"])

_service = OrderApplicationService()


def get_order_service() -> OrderApplicationService:
    return _service


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[OrderApplicationService, Depends(get_order_service)],
    request: Request,
) -> ApiResponse:
    data = await service.create_order(db, body, current_user)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.post("/quote")
async def quote(
    body: QuoteRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[OrderApplicationService, Depends(get_order_service)],
    request: Request,
) -> ApiResponse:
    data = await service.quote(db, body, current_user)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.get("")
async def list_orders(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[OrderApplicationService, Depends(get_order_service)],
    request: Request,
    status: str | None = Query(None, description="Filter by order status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    data = await service.list_orders(db, current_user, status, cursor, limit)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    service: Annotated[OrderApplicationService, Depends(get_order_service)],
    request: Request,
) -> ApiResponse:
    data = await service.get_order(db, order_id, current_user)
    return success_response(data.model_dump(), getattr(request.state, "request_id", None))
