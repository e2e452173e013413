"""
EduPortal Billing - Payment Verification Tests

Signature checks, ownership, idempotency, at-most-once activation and
subscription period arithmetic.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing_config import BillingCycle
from app.models.base import utcnow
from app.models.billing import Order, Payment, Subscription
from app.models.billing_enums import OrderStatus, PaymentStatus, SubscriptionStatus
from app.models.user import User
from app.services.email_service import EmailService
from app.services.payment_gateway import generate_payment_signature
from app.services.payment_verification_service import (
    PaymentVerificationService,
    calculate_subscription_end,
)
from app.utils.error_handling import (
    AlreadyProcessedException,
    OrderNotFoundException,
    SignatureMismatchException,
)

from conftest import create_order_record, create_subscription_record


KEY_SECRET = "test_key_secret"


def sign(order_id: str, payment_id: str) -> str:
    return generate_payment_signature(order_id, payment_id, KEY_SECRET)


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar_one()


@pytest.fixture
def verifier(db_session) -> PaymentVerificationService:
    return PaymentVerificationService(db_session, key_secret=KEY_SECRET)


# =============================================================================
# SUBSCRIPTION PERIOD
# =============================================================================

class TestSubscriptionEnd:
    
    def test_monthly_adds_one_calendar_month(self):
        assert calculate_subscription_end(datetime(2026, 3, 15, 10, 0), BillingCycle.MONTHLY) == \
            datetime(2026, 4, 15, 10, 0)
    
    def test_month_end_is_clamped(self):
        assert calculate_subscription_end(datetime(2026, 1, 31), BillingCycle.MONTHLY) == datetime(2026, 2, 28)
        assert calculate_subscription_end(datetime(2028, 1, 31), BillingCycle.MONTHLY) == datetime(2028, 2, 29)
    
    def test_annual_adds_one_year(self):
        assert calculate_subscription_end(datetime(2026, 10, 17), "annual") == datetime(2027, 10, 17)
        assert calculate_subscription_end(datetime(2028, 2, 29), BillingCycle.ANNUAL) == datetime(2029, 2, 28)


# =============================================================================
# SUCCESSFUL VERIFICATION
# =============================================================================

class TestVerifySuccess:
    
    @pytest.mark.asyncio
    async def test_creates_payment_and_subscription(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        subscription = await verifier.verify(
            test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001")
        )
        
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.portals == ["admin", "teacher"]
        assert subscription.features == ["fee_management"]
        assert subscription.amount == 2880
        assert subscription.auto_renew is True
        assert subscription.end_date == calculate_subscription_end(subscription.start_date, BillingCycle.MONTHLY)
        
        payment = (await db_session.execute(select(Payment))).scalar_one()
        assert payment.payment_id == "pay_001"
        assert payment.status == PaymentStatus.SUCCESS
        assert payment.amount == 2880
        assert payment.subscription_id == subscription.id
        
        await db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.PAID
        assert pending_order.paid_at is not None
    
    @pytest.mark.asyncio
    async def test_replaces_user_snapshot(self, db_session, verifier, test_user: User, pending_order: Order):
        subscription = await verifier.verify(
            test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001")
        )
        
        await db_session.refresh(test_user)
        assert test_user.subscription_status == SubscriptionStatus.ACTIVE
        assert test_user.current_subscription_id == subscription.id
        assert test_user.purchased_portals == ["admin", "teacher"]
        assert test_user.enabled_features == ["fee_management"]
    
    @pytest.mark.asyncio
    async def test_sends_confirmation_email(self, verifier, test_user: User, pending_order: Order):
        await verifier.verify(test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001"))
        
        assert len(EmailService.sent_messages) == 1
        message = EmailService.sent_messages[0]
        assert message.to == [test_user.email]
        assert message.subject.startswith("Payment Successful")
        assert "pay_001" in message.body_text
    
    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_verification(
        self, db_session, test_user: User, pending_order: Order
    ):
        email_service = AsyncMock()
        email_service.send_payment_success.side_effect = RuntimeError("mail server down")
        verifier = PaymentVerificationService(db_session, key_secret=KEY_SECRET, email_service=email_service)
        
        subscription = await verifier.verify(
            test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001")
        )
        
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert await _count(db_session, Subscription) == 1
        email_service.send_payment_success.assert_awaited_once()
    
    @pytest.mark.asyncio
    async def test_new_purchase_supersedes_active_subscription(
        self, db_session, verifier, test_user: User
    ):
        old_order = await create_order_record(
            db_session, test_user, provider_order_id="order_old", status=OrderStatus.PAID
        )
        old = await create_subscription_record(db_session, test_user, old_order)
        await create_order_record(db_session, test_user, provider_order_id="order_new", portals=("student",),
                                  features=(), amount=400)
        
        new = await verifier.verify(test_user.id, "order_new", "pay_new", sign("order_new", "pay_new"))
        
        await db_session.refresh(old)
        assert old.status == SubscriptionStatus.INACTIVE
        assert new.status == SubscriptionStatus.ACTIVE
        active = (await db_session.execute(
            select(func.count(Subscription.id)).where(Subscription.status == SubscriptionStatus.ACTIVE)
        )).scalar_one()
        assert active == 1
        
        await db_session.refresh(test_user)
        assert test_user.purchased_portals == ["student"]
        assert test_user.enabled_features == []
    
    @pytest.mark.asyncio
    async def test_failed_order_can_still_be_paid(self, db_session, verifier, test_user: User):
        await create_order_record(db_session, test_user, provider_order_id="order_f", status=OrderStatus.FAILED)
        
        subscription = await verifier.verify(test_user.id, "order_f", "pay_f", sign("order_f", "pay_f"))
        
        assert subscription.status == SubscriptionStatus.ACTIVE
    
    @pytest.mark.asyncio
    async def test_annual_order_runs_one_year(self, db_session, verifier, test_user: User):
        await create_order_record(
            db_session, test_user, provider_order_id="order_y", amount=28800,
            billing_cycle=BillingCycle.ANNUAL,
        )
        
        subscription = await verifier.verify(test_user.id, "order_y", "pay_y", sign("order_y", "pay_y"))
        
        assert subscription.billing_cycle == BillingCycle.ANNUAL
        assert subscription.end_date - subscription.start_date >= timedelta(days=365)


# =============================================================================
# REJECTIONS
# =============================================================================

class TestVerifyRejections:
    
    @pytest.mark.asyncio
    async def test_tampered_signature_changes_nothing(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        with pytest.raises(SignatureMismatchException):
            await verifier.verify(test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_999"))
        
        await db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.CREATED
        assert await _count(db_session, Payment) == 0
        assert await _count(db_session, Subscription) == 0
    
    @pytest.mark.asyncio
    async def test_non_ascii_signature_is_a_mismatch(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        with pytest.raises(SignatureMismatchException):
            await verifier.verify(test_user.id, "order_test0001", "pay_001", "\u00e9" * 64)
        
        await db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.CREATED
    
    @pytest.mark.asyncio
    async def test_missing_secret_fails_closed(self, db_session, test_user: User, pending_order: Order):
        verifier = PaymentVerificationService(db_session, key_secret="")
        
        with pytest.raises(SignatureMismatchException):
            await verifier.verify(test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001"))
    
    @pytest.mark.asyncio
    async def test_unknown_order(self, verifier, test_user: User):
        with pytest.raises(OrderNotFoundException):
            await verifier.verify(test_user.id, "order_nope", "pay_001", sign("order_nope", "pay_001"))
    
    @pytest.mark.asyncio
    async def test_other_users_order_not_found(
        self, db_session, verifier, other_user: User, pending_order: Order
    ):
        with pytest.raises(OrderNotFoundException):
            await verifier.verify(other_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001"))
        
        await db_session.refresh(pending_order)
        assert pending_order.status == OrderStatus.CREATED
    
    @pytest.mark.asyncio
    async def test_replay_is_already_processed(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        signature = sign("order_test0001", "pay_001")
        await verifier.verify(test_user.id, "order_test0001", "pay_001", signature)
        
        with pytest.raises(AlreadyProcessedException):
            await verifier.verify(test_user.id, "order_test0001", "pay_001", signature)
        
        assert await _count(db_session, Payment) == 1
        assert await _count(db_session, Subscription) == 1
    
    @pytest.mark.asyncio
    async def test_second_payment_for_paid_order_rejected(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        await verifier.verify(test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001"))
        
        with pytest.raises(AlreadyProcessedException):
            await verifier.verify(test_user.id, "order_test0001", "pay_002", sign("order_test0001", "pay_002"))
        
        assert await _count(db_session, Subscription) == 1


# =============================================================================
# CONCURRENCY
# =============================================================================

class TestAtMostOnce:
    
    @pytest.mark.asyncio
    async def test_claim_succeeds_once(self, db_session, verifier, pending_order: Order):
        assert await verifier._claim_order(pending_order.id, utcnow()) is True
        assert await verifier._claim_order(pending_order.id, utcnow()) is False
    
    @pytest.mark.asyncio
    async def test_lost_race_creates_nothing(
        self, db_session, verifier, test_user: User, pending_order: Order
    ):
        # Another request pays the order after this one has read it as unpaid
        await db_session.execute(
            update(Order)
            .where(Order.id == pending_order.id)
            .values(status=OrderStatus.PAID)
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()
        assert pending_order.status == OrderStatus.CREATED
        
        with pytest.raises(AlreadyProcessedException):
            await verifier.verify(test_user.id, "order_test0001", "pay_001", sign("order_test0001", "pay_001"))
        
        assert await _count(db_session, Payment) == 0
        assert await _count(db_session, Subscription) == 0
