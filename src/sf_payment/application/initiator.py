"""PaymentInitiator: starts card (hosted page) and bank transfer payments.

Initiation only touches the payment fields of an order: method, status
pending -> processing, and the transaction reference. Order status and
stock are left to the callback reconciler or the admin review.

Hosted payment:
  1. Order must belong to the caller, be pending with payment pending
  2. Build the signed token request and call the PSP (bounded timeout)
  3. PSP failure -> PspUnavailableError / PspRejectedError, nothing written
  4. Conditional update guarded on payment_status='pending'
"""
import base64
import json
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.sf_common.cents import cents_to_decimal_str, cents_to_display
from src.sf_common.datetime_utils import utc_now
from src.sf_common.enums import OrderStatus, PaymentMethod, PaymentStatus
from src.sf_common.errors import (
    BankTransferNotStartedError,
    OrderForbiddenError,
    OrderNotFoundError,
    PaymentAlreadyCompletedError,
    PaymentMethodMismatchError,
    PaymentNotPendingError,
)
from src.sf_gateway.auth.dependencies import CurrentUser
from src.sf_order.application.service import ensure_can_view
from src.sf_order.domain.models import Order
from src.sf_order.domain.repository import OrderRepositoryProtocol
from src.sf_order.infrastructure.persistence import OrderRepository
from src.sf_payment.application.schemas import (
    BankAccountResponse,
    BankTransferInitResponse,
    BankTransferNoticeRequest,
    HostedPaymentResponse,
    PaymentStatusResponse,
)
from src.sf_payment.domain.models import PaymentConfig
from src.sf_payment.domain.signature import payment_token
from src.sf_payment.infrastructure.psp_client import PspClient

logger = logging.getLogger(__name__)

# The PSP expects its own code for Turkish lira
_PSP_CURRENCY = {"TRY": "TL"}


def merchant_oid_for(order: Order, now: datetime) -> str:
    """Alphanumeric, unique per attempt: the PSP rejects a reused oid."""
    order_part = "".join(c for c in order.id if c.isalnum())
    return f"SF{order_part}{int(now.timestamp() * 1000)}"


def encode_basket(order: Order) -> str:
    basket = [[i.name, cents_to_decimal_str(i.unit_price), i.quantity] for i in order.items]
    return base64.b64encode(json.dumps(basket, ensure_ascii=False).encode()).decode()


def bank_transfer_reference(order: Order) -> str:
    return order.order_number


class PaymentInitiator:
    def __init__(
        self,
        config: PaymentConfig | None = None,
        repo: OrderRepositoryProtocol | None = None,
        psp: PspClient | None = None,
    ) -> None:
        self._config = config or PaymentConfig.from_settings()
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._psp = psp or PspClient(self._config.api_url, self._config.timeout_seconds)

    # ------------------------------------------------------------------
    # Card payment via the PSP hosted page
    # ------------------------------------------------------------------

    async def init_hosted_payment(
        self, db: AsyncSession, order_id: str, user: CurrentUser, client_ip: str
    ) -> HostedPaymentResponse:
        order = await self._load_own_order(db, order_id, user)
        self._ensure_payable(order)

        now = utc_now()
        merchant_oid = merchant_oid_for(order, now)
        form = self._token_form(order, merchant_oid, client_ip)
        token = await self._psp.get_token(form)

        updated = await self._repo.start_payment(
            db,
            order.id,
            PaymentMethod.CREDIT_CARD.value,
            merchant_oid,
            {"token_issued_at": now.isoformat(), "user_ip": client_ip,
             "test_mode": self._config.test_mode},
        )
        if updated is None:
            await db.rollback()
            await self._raise_not_pending(db, order.id)
        await db.commit()

        logger.info(
            "Hosted payment started: order=%s oid=%s amount=%d",
            order.order_number, merchant_oid, order.total_amount,
        )
        return HostedPaymentResponse(
            order_id=order.id,
            order_number=order.order_number,
            merchant_oid=merchant_oid,
            token=token,
            iframe_url=f"{self._config.iframe_url.rstrip('/')}/{token}",
            amount=order.total_amount,
            currency=order.currency,
        )

    def _token_form(self, order: Order, merchant_oid: str, client_ip: str) -> dict[str, str]:
        cfg = self._config
        basket = encode_basket(order)
        currency = _PSP_CURRENCY.get(order.currency, order.currency)
        test_mode = 1 if cfg.test_mode else 0
        no_installment = 0
        token = payment_token(
            cfg.merchant_key,
            cfg.merchant_salt,
            merchant_id=cfg.merchant_id,
            user_ip=client_ip,
            merchant_oid=merchant_oid,
            email=order.customer_email,
            payment_amount=order.total_amount,
            user_basket=basket,
            no_installment=no_installment,
            max_installment=cfg.max_installment,
            currency=currency,
            test_mode=test_mode,
        )
        address = order.billing_address
        return {
            "merchant_id": cfg.merchant_id,
            "user_ip": client_ip,
            "merchant_oid": merchant_oid,
            "email": order.customer_email,
            "payment_amount": str(order.total_amount),
            "paytr_token": token,
            "user_basket": basket,
            "debug_on": str(test_mode),
            "no_installment": str(no_installment),
            "max_installment": str(cfg.max_installment),
            "user_name": address.full_name,
            "user_address": "|".join(
                p for p in (address.line1, address.line2, address.district, address.city,
                            address.postal_code, address.country) if p
            ),
            "user_phone": address.phone,
            "merchant_ok_url": cfg.ok_url,
            "merchant_fail_url": cfg.fail_url,
            "timeout_limit": "30",
            "currency": currency,
            "test_mode": str(test_mode),
            "lang": "tr",
        }

    # ------------------------------------------------------------------
    # Bank transfer
    # ------------------------------------------------------------------

    async def init_bank_transfer(
        self, db: AsyncSession, order_id: str, user: CurrentUser
    ) -> BankTransferInitResponse:
        order = await self._load_own_order(db, order_id, user)
        self._ensure_payable(order)

        reference = bank_transfer_reference(order)
        updated = await self._repo.start_payment(
            db,
            order.id,
            PaymentMethod.BANK_TRANSFER.value,
            reference,
            {"requested_at": utc_now().isoformat()},
        )
        if updated is None:
            await db.rollback()
            await self._raise_not_pending(db, order.id)
        await db.commit()

        logger.info("Bank transfer started: order=%s", order.order_number)
        total = cents_to_display(order.total_amount, order.currency)
        return BankTransferInitResponse(
            order_id=order.id,
            order_number=order.order_number,
            total_amount=order.total_amount,
            total_display=total,
            currency=order.currency,
            reference=reference,
            bank_accounts=self.list_bank_accounts(),
            instructions=[
                f"Transfer exactly {total} to one of the accounts listed.",
                f"Write {reference} in the transfer description.",
                "Notify us once the transfer is made; the order is confirmed after review.",
            ],
        )

    async def notify_bank_transfer(
        self,
        db: AsyncSession,
        order_id: str,
        user: CurrentUser,
        notice: BankTransferNoticeRequest,
    ) -> PaymentStatusResponse:
        order = await self._load_own_order(db, order_id, user)
        if order.payment.method != PaymentMethod.BANK_TRANSFER.value:
            raise PaymentMethodMismatchError(PaymentMethod.BANK_TRANSFER.value, order.payment.method)
        if order.payment.status == PaymentStatus.COMPLETED.value:
            raise PaymentAlreadyCompletedError(order.id)
        if order.payment.status != PaymentStatus.PROCESSING.value:
            raise BankTransferNotStartedError(order.id)

        account = self._config.bank_account(notice.bank_account_id)
        record = notice.model_dump(mode="json")
        record["bank_account_name"] = account.name if account else None
        record["notified_at"] = utc_now().isoformat()

        updated = await self._repo.merge_payment_details(
            db, order.id, PaymentMethod.BANK_TRANSFER.value, {"customer_notification": record}
        )
        if updated is None:
            await db.rollback()
            await self._raise_not_pending(db, order.id)
        await db.commit()

        logger.info(
            "Bank transfer notified: order=%s amount=%d expected=%d",
            order.order_number, notice.amount, order.total_amount,
        )
        return PaymentStatusResponse.from_domain(updated)

    def list_bank_accounts(self) -> list[BankAccountResponse]:
        return [BankAccountResponse.from_domain(a) for a in self._config.bank_accounts]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_payment_status(
        self, db: AsyncSession, order_id: str, user: CurrentUser
    ) -> PaymentStatusResponse:
        order = await self._repo.get_by_id(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        ensure_can_view(order, user)
        return PaymentStatusResponse.from_domain(order)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    async def _load_own_order(self, db: AsyncSession, order_id: str, user: CurrentUser) -> Order:
        order = await self._repo.get_by_id(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if order.user_id != user.id:
            raise OrderForbiddenError(order_id)
        return order

    @staticmethod
    def _ensure_payable(order: Order) -> None:
        if order.payment.status == PaymentStatus.COMPLETED.value:
            raise PaymentAlreadyCompletedError(order.id)
        if (
            order.status != OrderStatus.PENDING.value
            or order.payment.status != PaymentStatus.PENDING.value
        ):
            raise PaymentNotPendingError(order.id, order.payment.status)

    async def _raise_not_pending(self, db: AsyncSession, order_id: str) -> None:
        """The conditional update lost; report the state that beat us."""
        current = await self._repo.get_by_id(db, order_id)
        status = current.payment.status if current else "unknown"
        logger.info("Payment start lost race: order=%s payment=%s", order_id, status)
        if status == PaymentStatus.COMPLETED.value:
            raise PaymentAlreadyCompletedError(order_id)
        raise PaymentNotPendingError(order_id, status)
