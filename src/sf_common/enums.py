"""Global enums: must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}
)


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"


class CustomerType(str, Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"  # campaigns only


class DiscountSource(str, Enum):
    COUPON = "coupon"
    CAMPAIGN = "campaign"


class CallbackStatus(str, Enum):
    """Status values the PSP posts to the webhook."""
    SUCCESS = "success"
    FAILED = "failed"
    WAITING = "waiting"


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    BANK_TRANSFER = "bank_transfer"
