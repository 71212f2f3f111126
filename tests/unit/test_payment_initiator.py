# tests/unit/test_payment_initiator.py
"""Unit tests for PaymentInitiator using mock repository and PSP client."""
import base64
import dataclasses
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sf_common.errors import (
    BankTransferNotStartedError,
    OrderForbiddenError,
    OrderNotFoundError,
    PaymentAlreadyCompletedError,
    PaymentMethodMismatchError,
    PaymentNotPendingError,
    PspUnavailableError,
)
from src.sf_gateway.auth.dependencies import CurrentUser
from src.sf_payment.application.initiator import PaymentInitiator, encode_basket, merchant_oid_for
from src.sf_payment.application.schemas import BankTransferNoticeRequest
from src.sf_payment.domain.signature import payment_token
from tests.factories import NOW, make_order, make_payment_config

USER = CurrentUser(id="user-1", email="ayse@example.com")


def _processing(order):  # type: ignore[no-untyped-def]
    return dataclasses.replace(
        order, payment=dataclasses.replace(order.payment, status="processing")
    )


def _make_initiator(order=None, started=True, token="tok-1", psp_error=None):  # type: ignore[no-untyped-def]
    order = order if order is not None else make_order()
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=order)
    repo.start_payment = AsyncMock(return_value=_processing(order) if started else None)
    repo.merge_payment_details = AsyncMock(return_value=order)
    psp = MagicMock()
    psp.get_token = AsyncMock(return_value=token, side_effect=psp_error)
    return PaymentInitiator(config=make_payment_config(), repo=repo, psp=psp), repo, psp


@pytest.fixture
def db():
    return AsyncMock()


class TestHostedPayment:
    @pytest.mark.asyncio
    async def test_starts_payment_and_returns_iframe(self, db):
        initiator, repo, psp = _make_initiator()
        resp = await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")

        assert resp.token == "tok-1"
        assert resp.iframe_url == "https://psp.test/odeme/guvenli/tok-1"
        assert resp.amount == 12500
        assert resp.merchant_oid.startswith("SForder1")
        assert resp.merchant_oid.isalnum()
        args = repo.start_payment.await_args.args
        assert args[2] == "credit_card"
        assert args[3] == resp.merchant_oid
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_token_form_is_signed(self, db):
        initiator, _, psp = _make_initiator()
        await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")
        form = psp.get_token.await_args.args[0]

        assert form["payment_amount"] == "12500"
        assert form["currency"] == "TL"
        assert form["user_ip"] == "10.0.0.1"
        assert form["paytr_token"] == payment_token(
            "test-merchant-key", "test-merchant-salt",
            merchant_id="100001", user_ip="10.0.0.1", merchant_oid=form["merchant_oid"],
            email="ayse@example.com", payment_amount=12500, user_basket=form["user_basket"],
            no_installment=0, max_installment=12, currency="TL", test_mode=1,
        )

    @pytest.mark.asyncio
    async def test_psp_failure_leaves_order_untouched(self, db):
        initiator, repo, _ = _make_initiator(psp_error=PspUnavailableError("timeout"))
        with pytest.raises(PspUnavailableError):
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")
        repo.start_payment.assert_not_awaited()
        db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_users_order_forbidden(self, db):
        initiator, _, psp = _make_initiator(order=make_order(user_id="user-2"))
        with pytest.raises(OrderForbiddenError):
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")
        psp.get_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_cannot_pay_for_customer(self, db):
        initiator, _, _ = _make_initiator()
        with pytest.raises(OrderForbiddenError):
            await initiator.init_hosted_payment(
                db, "order-1", CurrentUser(id="admin-1", role="admin"), "10.0.0.1"
            )

    @pytest.mark.asyncio
    async def test_not_found(self, db):
        initiator, repo, _ = _make_initiator()
        repo.get_by_id = AsyncMock(return_value=None)
        with pytest.raises(OrderNotFoundError):
            await initiator.init_hosted_payment(db, "missing", USER, "10.0.0.1")

    @pytest.mark.asyncio
    async def test_completed_payment_rejected(self, db):
        initiator, _, _ = _make_initiator(
            order=make_order(status="confirmed", payment_status="completed")
        )
        with pytest.raises(PaymentAlreadyCompletedError):
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")

    @pytest.mark.asyncio
    async def test_processing_payment_rejected(self, db):
        initiator, _, psp = _make_initiator(order=make_order(payment_status="processing"))
        with pytest.raises(PaymentNotPendingError) as exc_info:
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")
        assert exc_info.value.code == 5001
        psp.get_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_order_rejected(self, db):
        initiator, _, _ = _make_initiator(order=make_order(status="cancelled"))
        with pytest.raises(PaymentNotPendingError):
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")

    @pytest.mark.asyncio
    async def test_lost_race_reports_current_state(self, db):
        initiator, repo, _ = _make_initiator(started=False)
        repo.get_by_id = AsyncMock(
            side_effect=[make_order(), make_order(status="confirmed", payment_status="completed")]
        )
        with pytest.raises(PaymentAlreadyCompletedError):
            await initiator.init_hosted_payment(db, "order-1", USER, "10.0.0.1")
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()


class TestHelpers:
    def test_merchant_oid_is_alphanumeric(self) -> None:
        oid = merchant_oid_for(make_order(id="01HXYZ"), NOW)
        assert oid.isalnum()
        assert oid.startswith("SF01HXYZ")

    def test_basket_encoding(self) -> None:
        basket = json.loads(base64.b64decode(encode_basket(make_order())))
        assert basket == [["Product A", "50.00", 2]]


class TestBankTransfer:
    @pytest.mark.asyncio
    async def test_init_returns_accounts_and_reference(self, db):
        initiator, repo, psp = _make_initiator(order=make_order(payment_method="bank_transfer"))
        resp = await initiator.init_bank_transfer(db, "order-1", USER)

        assert resp.reference == "ORD-20260301-000001"
        assert resp.total_amount == 12500
        assert [a.id for a in resp.bank_accounts] == ["garanti"]
        assert any("ORD-20260301-000001" in line for line in resp.instructions)
        assert repo.start_payment.await_args.args[2] == "bank_transfer"
        psp.get_token.assert_not_awaited()
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_init_twice_rejected(self, db):
        initiator, _, _ = _make_initiator(
            order=make_order(payment_method="bank_transfer", payment_status="processing")
        )
        with pytest.raises(PaymentNotPendingError):
            await initiator.init_bank_transfer(db, "order-1", USER)


def _notice(**overrides) -> BankTransferNoticeRequest:  # type: ignore[no-untyped-def]
    data = {
        "amount": 12500,
        "transfer_date": date(2026, 3, 2),
        "sender_name": "Ayşe Yılmaz",
        "bank_account_id": "garanti",
    }
    data.update(overrides)
    return BankTransferNoticeRequest(**data)


class TestNotifyBankTransfer:
    @pytest.mark.asyncio
    async def test_records_customer_notification(self, db):
        order = make_order(payment_method="bank_transfer", payment_status="processing")
        initiator, repo, _ = _make_initiator(order=order)
        await initiator.notify_bank_transfer(db, "order-1", USER, _notice())

        details = repo.merge_payment_details.await_args.args[3]
        record = details["customer_notification"]
        assert record["amount"] == 12500
        assert record["transfer_date"] == "2026-03-02"
        assert record["bank_account_name"] == "Garanti BBVA"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_method(self, db):
        initiator, _, _ = _make_initiator(order=make_order(payment_status="processing"))
        with pytest.raises(PaymentMethodMismatchError):
            await initiator.notify_bank_transfer(db, "order-1", USER, _notice())

    @pytest.mark.asyncio
    async def test_not_started(self, db):
        initiator, repo, _ = _make_initiator(order=make_order(payment_method="bank_transfer"))
        with pytest.raises(BankTransferNotStartedError):
            await initiator.notify_bank_transfer(db, "order-1", USER, _notice())
        repo.merge_payment_details.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_completed(self, db):
        initiator, _, _ = _make_initiator(
            order=make_order(
                status="confirmed", payment_method="bank_transfer", payment_status="completed"
            )
        )
        with pytest.raises(PaymentAlreadyCompletedError):
            await initiator.notify_bank_transfer(db, "order-1", USER, _notice())


class TestPaymentStatus:
    @pytest.mark.asyncio
    async def test_status_message(self, db):
        initiator, _, _ = _make_initiator(order=make_order(payment_status="processing"))
        resp = await initiator.get_payment_status(db, "order-1", USER)
        assert resp.payment_status == "processing"
        assert resp.message == "Payment is being processed"

    @pytest.mark.asyncio
    async def test_admin_can_read(self, db):
        initiator, _, _ = _make_initiator()
        resp = await initiator.get_payment_status(db, "order-1", CurrentUser(id="a", role="admin"))
        assert resp.order_id == "order-1"
