"""Pydantic schemas for the sf_payment API."""
from datetime import date

from pydantic import BaseModel, Field

from src.sf_common.cents import cents_to_display
from src.sf_common.datetime_utils import isoformat_or_none
from src.sf_order.domain.models import Order
from src.sf_payment.domain.models import PAYMENT_STATUS_MESSAGES, BankAccount


class BankAccountResponse(BaseModel):
    id: str
    name: str
    account_name: str
    account_number: str
    iban: str
    swift: str | None = None

    @classmethod
    def from_domain(cls, account: BankAccount) -> "BankAccountResponse":
        return cls(**account.to_dict())


class HostedPaymentResponse(BaseModel):
    order_id: str
    order_number: str
    merchant_oid: str
    token: str
    iframe_url: str
    amount: int
    currency: str


class BankTransferInitResponse(BaseModel):
    order_id: str
    order_number: str
    total_amount: int
    total_display: str
    currency: str
    reference: str
    bank_accounts: list[BankAccountResponse]
    instructions: list[str]


class BankTransferNoticeRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Transferred amount in cents")
    transfer_date: date
    sender_name: str = Field(..., min_length=1, max_length=120)
    sender_iban: str | None = Field(None, max_length=34)
    bank_account_id: str | None = Field(None, max_length=64)
    description: str | None = Field(None, max_length=255)


class PaymentStatusResponse(BaseModel):
    order_id: str
    order_number: str
    order_status: str
    payment_status: str
    payment_method: str
    message: str
    transaction_id: str | None
    payment_date: str | None
    total_amount: int
    total_display: str
    refunded_amount: int

    @classmethod
    def from_domain(cls, order: Order) -> "PaymentStatusResponse":
        payment = order.payment
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.status,
            payment_status=payment.status,
            payment_method=payment.method,
            message=PAYMENT_STATUS_MESSAGES.get(payment.status, payment.status),
            transaction_id=payment.transaction_id,
            payment_date=isoformat_or_none(payment.payment_date),
            total_amount=order.total_amount,
            total_display=cents_to_display(order.total_amount, order.currency),
            refunded_amount=payment.refunded_amount,
        )
