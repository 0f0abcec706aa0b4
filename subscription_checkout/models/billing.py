import enum
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from subscription_checkout.db import Base


class SubscriptionStatus(enum.Enum):
    active = "ACTIVE"
    trial = "TRIAL"
    cancelled = "CANCELLED"
    expired = "EXPIRED"


class BillingEntity(Base):
    __tablename__ = "billing_entities"
    __table_args__ = (
        UniqueConstraint("tenant_id", "billing_id", name="uq_billing_entities_tenant_billing"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[str] = mapped_column(String(80), nullable=False)
    billing_id: Mapped[str] = mapped_column(String(80), nullable=False)

    name: Mapped[str | None] = mapped_column(String(200))
    fname: Mapped[str | None] = mapped_column(String(120))
    lname: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(255))
    mobile: Mapped[str | None] = mapped_column(String(40))

    billing_address: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(String(120))
    country: Mapped[str | None] = mapped_column(String(120))
    state_name: Mapped[str | None] = mapped_column(String(120))
    state_code: Mapped[str | None] = mapped_column(String(10))

    gst_number: Mapped[str | None] = mapped_column(String(20))
    gst_state_code: Mapped[str | None] = mapped_column(String(10))
    pricebook_id: Mapped[str | None] = mapped_column(String(80))

    zoho_customer_id: Mapped[str | None] = mapped_column(String(80))
    is_zoho_linked: Mapped[bool] = mapped_column(Boolean, default=False)
    has_complete_billing_profile: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    subscriptions = relationship("BillingEntitySubscription", back_populates="billing_entity")


class BillingEntitySubscription(Base):
    __tablename__ = "billing_entity_subscriptions"
    __table_args__ = (
        UniqueConstraint(
            "activation_order_id",
            name="uq_billing_entity_subscriptions_activation_order",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    billing_entity_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("billing_entities.id"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus), default=SubscriptionStatus.active
    )
    is_paid_plan: Mapped[bool] = mapped_column(Boolean, default=False)
    is_zoho_linked: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)

    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    purchase_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    trial_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    currency: Mapped[str | None] = mapped_column(String(3))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    zoho_subscription_id: Mapped[str | None] = mapped_column(String(80))
    # orderId of the hosted checkout that provisioned this row
    activation_order_id: Mapped[str | None] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )

    billing_entity = relationship("BillingEntity", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan", back_populates="subscriptions")
    feature_usages = relationship("FeatureUsage", back_populates="subscription")


class FeatureUsage(Base):
    __tablename__ = "feature_usages"
    __table_args__ = (
        UniqueConstraint(
            "subscription_id", "feature_key", name="uq_feature_usages_subscription_key"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("billing_entity_subscriptions.id"), nullable=False
    )
    feature_key: Mapped[str] = mapped_column(String(80), nullable=False)
    limit_count: Mapped[int | None] = mapped_column(Integer)
    used_count: Mapped[int] = mapped_column(Integer, default=0)
    is_exhausted: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    subscription = relationship("BillingEntitySubscription", back_populates="feature_usages")
