"""Order status state machine.

Every status change goes through transition(); any (status, event) pair not
in _TRANSITIONS raises InvalidTransitionError. cancelled and returned are
terminal.

    pending ──PAYMENT_SUCCEEDED──▶ confirmed ──START_PROCESSING──▶ processing
       │                              │                               │
       └──PAYMENT_FAILED / CANCEL─────┴──────────CANCEL───────────────┤
                                                                      ▼
                                     delivered ◀──DELIVER── shipped ◀─SHIP
                                          │                    │
                                          └──RETURN / REFUND_COMPLETED──▶ returned
"""
from enum import Enum

from src.sf_common.enums import OrderStatus
from src.sf_common.errors import InvalidTransitionError


class OrderEvent(str, Enum):
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    START_PROCESSING = "START_PROCESSING"
    SHIP = "SHIP"
    DELIVER = "DELIVER"
    CANCEL = "CANCEL"
    RETURN = "RETURN"
    REFUND_COMPLETED = "REFUND_COMPLETED"


_S = OrderStatus
_E = OrderEvent

_TRANSITIONS: dict[tuple[OrderStatus, OrderEvent], OrderStatus] = {
    (_S.PENDING, _E.PAYMENT_SUCCEEDED): _S.CONFIRMED,
    (_S.PENDING, _E.PAYMENT_FAILED): _S.CANCELLED,
    (_S.CONFIRMED, _E.PAYMENT_FAILED): _S.CANCELLED,
    (_S.PENDING, _E.CANCEL): _S.CANCELLED,
    (_S.CONFIRMED, _E.CANCEL): _S.CANCELLED,
    (_S.PROCESSING, _E.CANCEL): _S.CANCELLED,
    (_S.CONFIRMED, _E.START_PROCESSING): _S.PROCESSING,
    (_S.PROCESSING, _E.SHIP): _S.SHIPPED,
    (_S.SHIPPED, _E.DELIVER): _S.DELIVERED,
    (_S.SHIPPED, _E.RETURN): _S.RETURNED,
    (_S.DELIVERED, _E.RETURN): _S.RETURNED,
    (_S.CONFIRMED, _E.REFUND_COMPLETED): _S.RETURNED,
    (_S.PROCESSING, _E.REFUND_COMPLETED): _S.RETURNED,
    (_S.SHIPPED, _E.REFUND_COMPLETED): _S.RETURNED,
    (_S.DELIVERED, _E.REFUND_COMPLETED): _S.RETURNED,
}

# Admin "set status to X" requests map to the event that reaches X.
_EVENT_FOR_TARGET: dict[OrderStatus, OrderEvent] = {
    _S.PROCESSING: _E.START_PROCESSING,
    _S.SHIPPED: _E.SHIP,
    _S.DELIVERED: _E.DELIVER,
    _S.CANCELLED: _E.CANCEL,
    _S.RETURNED: _E.RETURN,
}

# Status → order column holding the date the order entered it.
STATUS_DATE_FIELDS: dict[OrderStatus, str] = {
    _S.CONFIRMED: "confirmed_at",
    _S.SHIPPED: "shipped_at",
    _S.DELIVERED: "delivered_at",
    _S.CANCELLED: "cancelled_at",
    _S.RETURNED: "returned_at",
}

TERMINAL_STATUSES = frozenset({_S.CANCELLED, _S.RETURNED})


def transition(status: str, event: OrderEvent) -> OrderStatus:
    """Return the next status or raise InvalidTransitionError."""
    try:
        current = OrderStatus(status)
    except ValueError:
        raise InvalidTransitionError(status, event.value) from None
    nxt = _TRANSITIONS.get((current, event))
    if nxt is None:
        raise InvalidTransitionError(current.value, event.value)
    return nxt


def can_transition(status: str, event: OrderEvent) -> bool:
    try:
        transition(status, event)
    except InvalidTransitionError:
        return False
    return True


def event_for_target(target: str) -> OrderEvent:
    """Map an admin-requested target status to its event.

    pending and confirmed are reached only through payment events, so
    they are not valid manual targets.
    """
    try:
        return _EVENT_FOR_TARGET[OrderStatus(target)]
    except (ValueError, KeyError):
        raise InvalidTransitionError(target, "MANUAL_STATUS_CHANGE") from None
