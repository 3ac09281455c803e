"""
Applies verified payment outcomes to the record store.

Every payment transition is a conditional UPDATE guarded by
status = 'PENDING'; the grant (subscription period, purchase, DM credit)
and the earnings split are written in the same transaction and only by the
request whose UPDATE matched.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from creatorpay.config import settings
from creatorpay.logging_config import get_logger
from creatorpay.models import (
    CreatorProfile,
    DMPayment,
    Payment,
    Product,
    Purchase,
    Subscription,
    utcnow,
)
from creatorpay.psp.types import PaymentConfig, PaymentProvider
from creatorpay.services import dm_ledger
from creatorpay.services.audit_service import log_audit
from creatorpay.services.downloads import generate_download_token
from creatorpay.services.pricing_service import calculate_earnings

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class PaymentFulfillment:
    """Owns every write that follows from a provider's answer."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ---------------------------------------------------------
    # Payment records
    # ---------------------------------------------------------

    def record_pending_payment(
        self,
        provider: PaymentProvider,
        order_id: str,
        config: PaymentConfig,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Store the provider order we just created. Repeated calls return the existing row."""
        purpose = config.purpose
        payment = Payment(
            user_id=config.user_id,
            provider=provider.value,
            provider_order_id=order_id,
            amount=config.amount,
            currency=config.currency,
            status="PENDING",
            purpose=purpose,
            subscription_id=config.reference_id if purpose == "subscription" else None,
            purchase_id=config.reference_id if purpose == "product" else None,
            dm_payment_id=config.reference_id if purpose == "dm" else None,
            meta={**config.metadata, **(meta or {})},
        )
        with self.session_factory() as db:
            db.add(payment)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return self._find(db, provider, order_id)

            if purpose == "dm":
                db.query(DMPayment).filter(DMPayment.id == config.reference_id).update(
                    {DMPayment.provider: provider.value, DMPayment.provider_order_id: order_id},
                    synchronize_session=False,
                )
                db.commit()

        logger.info(
            "payment_recorded",
            provider=provider.value,
            order_id=order_id,
            purpose=purpose,
            amount=config.amount,
            currency=config.currency,
        )
        return payment

    def get_payment(self, provider: PaymentProvider, order_id: str) -> Optional[Payment]:
        with self.session_factory() as db:
            return self._find(db, provider, order_id)

    @staticmethod
    def _find(db: Session, provider: PaymentProvider, order_id: Optional[str]) -> Optional[Payment]:
        if not order_id:
            return None
        return (
            db.query(Payment)
            .filter(Payment.provider == PaymentProvider(provider).value, Payment.provider_order_id == order_id)
            .first()
        )

    # ---------------------------------------------------------
    # Transitions
    # ---------------------------------------------------------

    def complete_payment(
        self,
        provider: PaymentProvider,
        order_id: Optional[str],
        payment_id: Optional[str] = None,
        amount: Optional[int] = None,
        provider_subscription_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None,
    ) -> bool:
        """
        PENDING -> COMPLETED and grant what was paid for.

        Returns True only for the call that performed the transition. An
        amount that differs from the stored order fails the payment instead.
        """
        provider = PaymentProvider(provider)
        with self.session_factory() as db:
            payment = self._find(db, provider, order_id)
            if payment is None:
                logger.warning("payment_not_found", provider=provider.value, order_id=order_id)
                return False

            if amount is not None and int(amount) != payment.amount:
                logger.error(
                    "payment_amount_mismatch",
                    provider=provider.value,
                    order_id=order_id,
                    expected=payment.amount,
                    received=amount,
                    integrity_failure=True,
                )
                db.close()
                self.fail_payment(
                    provider,
                    order_id,
                    payment_id=payment_id,
                    reason=f"amount mismatch: expected {payment.amount}, got {amount}",
                    integrity_failure=True,
                )
                return False

            now = utcnow()
            breakdown = calculate_earnings(
                payment.amount,
                provider,
                self._commission_tier(db, payment),
                payment.currency,
            )
            updated = (
                db.query(Payment)
                .filter(Payment.id == payment.id, Payment.status == "PENDING")
                .update(
                    {
                        Payment.status: "COMPLETED",
                        Payment.provider_payment_id: payment_id or payment.provider_payment_id,
                        Payment.completed_at: now,
                        Payment.payment_fee: breakdown.payment_fee,
                        Payment.platform_commission: breakdown.platform_commission,
                        Payment.creator_earnings: breakdown.net_earnings,
                        Payment.meta: {**(payment.meta or {}), **(meta or {})},
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                db.rollback()
                logger.info("payment_already_final", provider=provider.value, order_id=order_id, status=payment.status)
                return False

            self._grant(db, payment, payment_id, provider_subscription_id, now)
            log_audit(
                db,
                actor_id or payment.user_id,
                "payment_completed",
                "payment",
                payment.id,
                changes={
                    "status": {"old": "PENDING", "new": "COMPLETED"},
                    "provider_payment_id": payment_id,
                    "creator_earnings": breakdown.net_earnings,
                },
                commit=False,
            )
            db.commit()

        logger.info(
            "payment_completed",
            provider=provider.value,
            order_id=order_id,
            payment_id=payment_id,
            purpose=payment.purpose,
            amount=payment.amount,
            creator_earnings=breakdown.net_earnings,
        )
        return True

    def fail_payment(
        self,
        provider: PaymentProvider,
        order_id: Optional[str],
        payment_id: Optional[str] = None,
        reason: Optional[str] = None,
        integrity_failure: bool = False,
        actor_id: Optional[str] = None,
    ) -> bool:
        """PENDING -> FAILED. Returns True only for the call that performed it."""
        provider = PaymentProvider(provider)
        with self.session_factory() as db:
            payment = self._find(db, provider, order_id)
            if payment is None:
                logger.warning("payment_not_found", provider=provider.value, order_id=order_id)
                return False

            updated = (
                db.query(Payment)
                .filter(Payment.id == payment.id, Payment.status == "PENDING")
                .update(
                    {
                        Payment.status: "FAILED",
                        Payment.provider_payment_id: payment_id or payment.provider_payment_id,
                        Payment.failure_reason: (reason or "")[:255] or None,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                db.rollback()
                return False

            if payment.purchase_id:
                db.query(Purchase).filter(
                    Purchase.id == payment.purchase_id, Purchase.status == "PENDING"
                ).update({Purchase.status: "FAILED"}, synchronize_session=False)
            if payment.dm_payment_id:
                dm_ledger.fail_credit(db, payment.dm_payment_id)

            log_audit(
                db,
                actor_id or payment.user_id,
                "payment_failed",
                "payment",
                payment.id,
                changes={"status": {"old": "PENDING", "new": "FAILED"}, "reason": reason},
                commit=False,
            )
            db.commit()

        log = logger.error if integrity_failure else logger.warning
        log(
            "payment_failed",
            provider=provider.value,
            order_id=order_id,
            reason=reason,
            integrity_failure=integrity_failure,
        )
        return True

    def _commission_tier(self, db: Session, payment: Payment) -> str:
        creator_id = None
        if payment.subscription_id:
            creator_id = db.query(Subscription.creator_id).filter(Subscription.id == payment.subscription_id).scalar()
        elif payment.purchase_id:
            creator_id = (
                db.query(Product.creator_id)
                .join(Purchase, Purchase.product_id == Product.id)
                .filter(Purchase.id == payment.purchase_id)
                .scalar()
            )
        elif payment.dm_payment_id:
            creator_id = db.query(DMPayment.creator_id).filter(DMPayment.id == payment.dm_payment_id).scalar()

        tier = None
        if creator_id:
            tier = db.query(CreatorProfile.commission_tier).filter(CreatorProfile.id == creator_id).scalar()
        return tier or "STANDARD"

    def _grant(
        self,
        db: Session,
        payment: Payment,
        payment_id: Optional[str],
        provider_subscription_id: Optional[str],
        now: datetime,
    ) -> None:
        if payment.subscription_id:
            subscription = db.get(Subscription, payment.subscription_id)
            if subscription is not None:
                self._extend(subscription, now)
                if provider_subscription_id:
                    subscription.provider_subscription_id = provider_subscription_id

        if payment.purchase_id:
            purchase = db.get(Purchase, payment.purchase_id)
            if purchase is not None and purchase.status == "PENDING":
                purchase.status = "COMPLETED"
                purchase.provider_payment_id = payment_id
                purchase.completed_at = now
                purchase.download_token = generate_download_token(
                    purchase.id, purchase.product_id, purchase.user_id
                )

        if payment.dm_payment_id:
            dm_ledger.activate_credit(db, payment.dm_payment_id, now)

    @staticmethod
    def _extend(subscription: Subscription, now: datetime) -> None:
        """Activate, or push the period end out by one period from whichever is later."""
        period = timedelta(days=settings.SUBSCRIPTION_PERIOD_DAYS)
        current_end = _as_utc(subscription.end_date)
        if subscription.status == "ACTIVE" and current_end and current_end > now:
            subscription.end_date = current_end + period
        else:
            subscription.status = "ACTIVE"
            subscription.start_date = now
            subscription.end_date = now + period

    # ---------------------------------------------------------
    # Subscription lifecycle (provider-driven)
    # ---------------------------------------------------------

    @staticmethod
    def _find_subscription(
        db: Session,
        provider_subscription_id: Optional[str],
        subscription_id: Optional[str],
    ) -> Optional[Subscription]:
        if provider_subscription_id:
            found = (
                db.query(Subscription)
                .filter(Subscription.provider_subscription_id == provider_subscription_id)
                .first()
            )
            if found is not None:
                return found
        if subscription_id:
            return db.get(Subscription, subscription_id)
        return None

    def renew_subscription(
        self,
        provider_subscription_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> bool:
        with self.session_factory() as db:
            subscription = self._find_subscription(db, provider_subscription_id, subscription_id)
            if subscription is None:
                logger.warning(
                    "subscription_not_found",
                    provider_subscription_id=provider_subscription_id,
                    subscription_id=subscription_id,
                )
                return False
            if subscription.status == "CANCELLED":
                logger.warning("renewal_for_cancelled_subscription", subscription_id=subscription.id)
                return False

            self._extend(subscription, utcnow())
            if provider_subscription_id and not subscription.provider_subscription_id:
                subscription.provider_subscription_id = provider_subscription_id
            log_audit(
                db,
                subscription.user_id,
                "subscription_renewed",
                "subscription",
                subscription.id,
                changes={"end_date": subscription.end_date.isoformat()},
                commit=False,
            )
            db.commit()
            logger.info("subscription_renewed", subscription_id=subscription.id)
            return True

    def _set_subscription_status(
        self,
        status: str,
        provider_subscription_id: Optional[str],
        subscription_id: Optional[str],
    ) -> bool:
        with self.session_factory() as db:
            subscription = self._find_subscription(db, provider_subscription_id, subscription_id)
            if subscription is None:
                logger.warning(
                    "subscription_not_found",
                    provider_subscription_id=provider_subscription_id,
                    subscription_id=subscription_id,
                )
                return False
            if subscription.status == status:
                return False

            old_status = subscription.status
            subscription.status = status
            log_audit(
                db,
                subscription.user_id,
                f"subscription_{status.lower()}",
                "subscription",
                subscription.id,
                changes={"status": {"old": old_status, "new": status}},
                commit=False,
            )
            db.commit()
            logger.info("subscription_status_changed", subscription_id=subscription.id, old=old_status, new=status)
            return True

    def mark_subscription_past_due(
        self,
        provider_subscription_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> bool:
        return self._set_subscription_status("PAST_DUE", provider_subscription_id, subscription_id)

    def cancel_subscription(
        self,
        provider_subscription_id: Optional[str] = None,
        subscription_id: Optional[str] = None,
    ) -> bool:
        return self._set_subscription_status("CANCELLED", provider_subscription_id, subscription_id)
