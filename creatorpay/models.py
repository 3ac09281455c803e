"""
CreatorPay – SQLAlchemy Models

This file defines the data model for:
- Creator Profiles
- Subscriptions
- Products & Purchases
- Payments (one row per provider order)
- DM Payments (paid-message credits) & Messages
- PSP Events
- Webhook Events
- Audit Logs

Money columns are integers in the smallest currency unit (paise/cents).
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text,
    JSON, func, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from .db import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =====================================================
# CREATOR PROFILE MODEL
# =====================================================

class CreatorProfile(Base):
    __tablename__ = "creator_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), unique=True, nullable=False, index=True)
    display_name = Column(String(128), nullable=False)

    # 0 means DMs are free
    dm_price = Column(Integer, nullable=False, default=0)
    dm_currency = Column(String(3), nullable=False, default="INR")

    commission_tier = Column(String(16), nullable=False, default="STANDARD")  # STANDARD, PREMIUM, PROMOTIONAL
    country = Column(String(2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    subscriptions = relationship("Subscription", back_populates="creator")
    products = relationship("Product", back_populates="creator")

    def __repr__(self):
        return f"<CreatorProfile(id={self.id}, user_id={self.user_id})>"


# =====================================================
# SUBSCRIPTION MODEL
# =====================================================

class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    creator_id = Column(String(36), ForeignKey("creator_profiles.id", ondelete="CASCADE"),
                        nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(String(16), nullable=False, default="PENDING", index=True)  # PENDING, ACTIVE, PAST_DUE, CANCELLED, EXPIRED

    # Stripe sub_..., Razorpay sub_...
    provider_subscription_id = Column(String(128), nullable=True, index=True)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    creator = relationship("CreatorProfile", back_populates="subscriptions")

    def __repr__(self):
        return f"<Subscription(id={self.id}, status={self.status})>"


# =====================================================
# PRODUCT & PURCHASE MODELS
# =====================================================

class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    creator_id = Column(String(36), ForeignKey("creator_profiles.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    title = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    file_url = Column(String(1024), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    creator = relationship("CreatorProfile", back_populates="products")
    purchases = relationship("Purchase", back_populates="product")


class Purchase(Base):
    __tablename__ = "purchases"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"),
                        nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")  # PENDING, COMPLETED, FAILED

    provider_payment_id = Column(String(128), nullable=True)
    download_token = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    product = relationship("Product", back_populates="purchases")


# =====================================================
# PAYMENT MODEL
# =====================================================

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)

    provider = Column(String(32), nullable=False)  # stripe, razorpay, esewa, khalti, bank_transfer
    provider_order_id = Column(String(128), nullable=False)
    provider_payment_id = Column(String(128), nullable=True)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING", index=True)  # PENDING, COMPLETED, FAILED

    purpose = Column(String(16), nullable=False, default="subscription")  # subscription, product, dm
    subscription_id = Column(String(36), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True, index=True)
    purchase_id = Column(String(36), ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True, index=True)
    dm_payment_id = Column(String(36), ForeignKey("dm_payments.id", ondelete="SET NULL"), nullable=True, index=True)

    # Split, stamped when the payment completes
    payment_fee = Column(Integer, nullable=True)
    platform_commission = Column(Integer, nullable=True)
    creator_earnings = Column(Integer, nullable=True)

    meta = Column(JSON, nullable=True, default=dict)
    failure_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("provider", "provider_order_id", name="uq_payments_provider_order"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, provider={self.provider}, status={self.status})>"


# =====================================================
# DM PAYMENT (MESSAGE CREDIT) MODEL
# =====================================================

class DMPayment(Base):
    __tablename__ = "dm_payments"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False)
    creator_id = Column(String(36), ForeignKey("creator_profiles.id", ondelete="CASCADE"), nullable=False)

    amount = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")  # PENDING, COMPLETED, FAILED

    messages_allowed = Column(Integer, nullable=False, default=1)
    messages_used = Column(Integer, nullable=False, default=0)

    # Stamped on activation
    expires_at = Column(DateTime(timezone=True), nullable=True)

    provider = Column(String(32), nullable=True)
    provider_order_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "messages_used >= 0 AND messages_used <= messages_allowed",
            name="ck_dm_payments_usage",
        ),
        Index("ix_dm_payments_lookup", "user_id", "creator_id", "status", "created_at"),
    )

    def __repr__(self):
        return f"<DMPayment(id={self.id}, used={self.messages_used}/{self.messages_allowed})>"


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    sender_id = Column(String(64), nullable=False, index=True)
    creator_id = Column(String(36), ForeignKey("creator_profiles.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    content = Column(Text, nullable=False)

    is_paid = Column(Boolean, default=False, nullable=False)
    price = Column(Integer, nullable=False, default=0)
    dm_payment_id = Column(String(36), ForeignKey("dm_payments.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# =====================================================
# PSP EVENT MODEL
# =====================================================

class PspEvent(Base):
    __tablename__ = "psp_events"

    id = Column(Integer, primary_key=True)
    provider = Column(String(32), nullable=False)
    event_type = Column(String(64), nullable=False)

    psp_event_id = Column(String(160), nullable=False, unique=True, index=True)
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# =====================================================
# WEBHOOK EVENT LOG (Dead Letter Queue)
# =====================================================

class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(32), nullable=False, index=True)

    headers = Column(JSON, nullable=True)
    payload = Column(JSON, nullable=False)

    status = Column(String(32), default="received", nullable=False, index=True)  # received, processed, duplicate, failed
    error = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookEvent(id={self.id}, provider={self.provider}, status={self.status})>"


# =====================================================
# AUDIT LOG MODEL
# =====================================================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=True, index=True)

    action = Column(String(64), nullable=False)  # e.g., "payment_completed", "bank_transfer_verified"
    resource_type = Column(String(64), nullable=False)  # e.g., "payment", "subscription"
    resource_id = Column(String(64), nullable=True)

    changes = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, user={self.user_id})>"
