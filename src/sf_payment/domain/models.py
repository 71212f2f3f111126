"""Payment domain types: PSP configuration, callback payload, bank accounts."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from config.settings import settings
from src.sf_common.enums import PaymentStatus

# Customer-facing wording for getPaymentStatus
PAYMENT_STATUS_MESSAGES: dict[str, str] = {
    PaymentStatus.PENDING.value: "Awaiting payment",
    PaymentStatus.PROCESSING.value: "Payment is being processed",
    PaymentStatus.COMPLETED.value: "Payment received",
    PaymentStatus.FAILED.value: "Payment failed",
    PaymentStatus.REFUNDED.value: "Payment refunded",
}


@dataclass(frozen=True)
class BankAccount:
    id: str
    name: str
    account_name: str
    account_number: str
    iban: str
    swift: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "iban": self.iban,
            "swift": self.swift,
        }


@dataclass(frozen=True)
class PaymentConfig:
    merchant_id: str
    merchant_key: str
    merchant_salt: str
    api_url: str
    iframe_url: str
    test_mode: bool
    timeout_seconds: float
    max_installment: int
    ok_url: str
    fail_url: str
    currency: str
    bank_accounts: tuple[BankAccount, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls) -> "PaymentConfig":
        return cls(
            merchant_id=settings.PSP_MERCHANT_ID,
            merchant_key=settings.PSP_MERCHANT_KEY,
            merchant_salt=settings.PSP_MERCHANT_SALT,
            api_url=settings.PSP_API_URL,
            iframe_url=settings.PSP_IFRAME_URL,
            test_mode=settings.PSP_TEST_MODE,
            timeout_seconds=settings.PSP_TIMEOUT_SECONDS,
            max_installment=settings.PSP_MAX_INSTALLMENT,
            ok_url=settings.PSP_OK_URL,
            fail_url=settings.PSP_FAIL_URL,
            currency=settings.CURRENCY,
            bank_accounts=tuple(BankAccount(**a) for a in settings.BANK_ACCOUNTS),
        )

    def bank_account(self, account_id: str | None) -> BankAccount | None:
        for account in self.bank_accounts:
            if account.id == account_id:
                return account
        return None


@dataclass(frozen=True)
class CallbackPayload:
    """Form fields posted by the PSP to the webhook. Values are kept as sent;
    the signature covers the exact strings."""

    merchant_oid: str
    status: str
    total_amount: str
    hash: str
    failed_reason_code: str | None = None
    failed_reason_msg: str | None = None
    payment_type: str | None = None

    def signed_amount(self) -> int | None:
        try:
            return int(self.total_amount)
        except (TypeError, ValueError):
            return None


class CallbackOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    ACKNOWLEDGED = "acknowledged"  # waiting, nothing terminal yet
    REJECTED = "rejected"  # signature mismatch

    @property
    def response_text(self) -> str:
        return "ERROR" if self is CallbackOutcome.REJECTED else "OK"
