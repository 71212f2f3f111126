"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Catalog / Pricing
  3xxx: Discount (coupon / campaign)
  4xxx: Order
  5xxx: Payment / Refund
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin role required", 403)


# --- 2xxx: Catalog / Pricing ---

class ProductNotFoundError(AppError):
    def __init__(self, product_id: str) -> None:
        super().__init__(2001, f"Product not found: {product_id}", 404)


class OutOfStockError(AppError):
    def __init__(self, product_name: str, requested: int, available: int) -> None:
        super().__init__(
            2002,
            f"Insufficient stock for {product_name}: requested {requested}, available {available}",
            422,
        )


class MissingBillingFieldsError(AppError):
    def __init__(self, fields: list[str]) -> None:
        super().__init__(
            2003,
            f"Business customers must provide billing fields: {', '.join(fields)}",
            422,
        )


class ConsentRequiredError(AppError):
    def __init__(self, consent: str) -> None:
        super().__init__(2004, f"Consent required: {consent}", 422)


# --- 3xxx: Discount ---

class DiscountError(AppError):
    """Base class for coupon/campaign rejections. Each reason has its own code."""


class CouponNotFoundError(DiscountError):
    def __init__(self, code: str) -> None:
        super().__init__(3001, f"Coupon not found: {code}", 404)


class CouponInactiveError(DiscountError):
    def __init__(self, code: str) -> None:
        super().__init__(3002, f"Coupon is not active: {code}", 422)


class CouponExpiredError(DiscountError):
    def __init__(self, code: str) -> None:
        super().__init__(3003, f"Coupon has expired: {code}", 422)


class CouponNotStartedError(DiscountError):
    def __init__(self, code: str) -> None:
        super().__init__(3004, f"Coupon is not valid yet: {code}", 422)


class DiscountUsageExhaustedError(DiscountError):
    def __init__(self, name: str) -> None:
        super().__init__(3005, f"Usage limit reached: {name}", 422)


class MinOrderNotMetError(DiscountError):
    def __init__(self, min_order_amount: int, subtotal: int) -> None:
        super().__init__(
            3006,
            f"Minimum order amount is {min_order_amount} cents, subtotal is {subtotal} cents",
            422,
        )


class DiscountNotApplicableError(DiscountError):
    def __init__(self, name: str) -> None:
        super().__init__(3007, f"Discount is not applicable to this customer: {name}", 422)


class DiscountUserLimitReachedError(DiscountError):
    def __init__(self, name: str) -> None:
        super().__init__(3008, f"Per-customer usage limit reached: {name}", 422)


class CampaignNotFoundError(DiscountError):
    def __init__(self, campaign_id: str) -> None:
        super().__init__(3009, f"Campaign not found: {campaign_id}", 404)


class CampaignNotEligibleError(DiscountError):
    def __init__(self, name: str, detail: str) -> None:
        super().__init__(3010, f"Campaign {name} is not eligible: {detail}", 422)


class DiscountConflictError(DiscountError):
    def __init__(self) -> None:
        super().__init__(3011, "A coupon and a campaign cannot be combined", 422)


# --- 4xxx: Order ---

class OrderForbiddenError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4003, f"Order does not belong to caller: {order_id}", 403)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4004, f"Order not found: {order_id}", 404)


class OrderNumberAllocationError(AppError):
    def __init__(self, attempts: int) -> None:
        super().__init__(
            4005, f"Could not allocate a unique order number after {attempts} attempts", 409
        )


class InvalidTransitionError(AppError):
    def __init__(self, status: str, event: str) -> None:
        super().__init__(4006, f"Event {event} is not allowed in status {status}", 422)


class ConcurrentModificationError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4007, f"Order {order_id} was modified concurrently, retry", 409)


# --- 5xxx: Payment ---

class PaymentNotPendingError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(5001, f"Payment for order {order_id} is {status}, expected pending", 422)


class PaymentMethodMismatchError(AppError):
    def __init__(self, expected: str, actual: str | None) -> None:
        super().__init__(5002, f"Payment method must be {expected}, got {actual}", 422)


class PaymentAlreadyCompletedError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(5003, f"Payment already completed for order {order_id}", 409)


class RefundNotAllowedError(AppError):
    def __init__(self, status: str) -> None:
        super().__init__(5004, f"Refund requires a completed payment, payment is {status}", 422)


class RefundExceedsBalanceError(AppError):
    def __init__(self, requested: int, refundable: int) -> None:
        super().__init__(
            5005,
            f"Refund of {requested} cents exceeds refundable balance of {refundable} cents",
            422,
        )


class InvalidRefundAmountError(AppError):
    def __init__(self, amount: int) -> None:
        super().__init__(5006, f"Refund amount must be positive, got {amount}", 422)


class InvalidCallbackSignatureError(AppError):
    def __init__(self, reference: str) -> None:
        super().__init__(5007, f"Callback signature mismatch for {reference}", 400)


class PspRejectedError(AppError):
    def __init__(self, reason: str) -> None:
        super().__init__(5008, f"Payment provider rejected the request: {reason}", 502)


class BankTransferNotStartedError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(5009, f"No bank transfer awaiting notification for order {order_id}", 422)


class UnsupportedCallbackStatusError(AppError):
    def __init__(self, status: str) -> None:
        super().__init__(5010, f"Unsupported payment callback status: {status!r}", 400)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self) -> None:
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PspUnavailableError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Payment provider unavailable, retry later: {detail}", 503)
