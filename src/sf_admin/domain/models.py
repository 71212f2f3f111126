"""Fulfillment configuration and bank transfer review types."""
from dataclasses import dataclass, field
from enum import Enum

from config.settings import settings


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class FulfillmentConfig:
    bank_transfer_tolerance: int
    carrier_tracking_urls: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "FulfillmentConfig":
        return cls(
            bank_transfer_tolerance=settings.BANK_TRANSFER_TOLERANCE_CENTS,
            carrier_tracking_urls=dict(settings.CARRIER_TRACKING_URLS),
        )

    def tracking_url(self, carrier: str, tracking_number: str) -> str | None:
        template = self.carrier_tracking_urls.get(carrier.lower())
        return template.format(tracking_number=tracking_number) if template else None


@dataclass(frozen=True)
class ReviewResult:
    order_id: str
    success: bool
    error_code: int | None = None
    message: str | None = None
