import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from subscription_checkout.db import Base


class PaymentStatus(enum.Enum):
    """Canonical payment outcome shared by polling, webhooks and responses."""

    pending = "PENDING"
    success = "SUCCESS"
    failed = "FAILED"
    expired = "EXPIRED"
    unknown = "UNKNOWN"


class CheckoutStatus(enum.Enum):
    created = "CREATED"
    pending = "PENDING"
    completed = "COMPLETED"
    failed = "FAILED"
    expired = "EXPIRED"


class HostedCheckout(Base):
    __tablename__ = "hosted_checkouts"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_hosted_checkouts_order_id"),
        Index("ix_hosted_checkouts_tenant_billing", "tenant_id", "billing_id"),
        Index("ix_hosted_checkouts_provider_hostedpage", "provider_hostedpage_id"),
        Index(
            "ix_hosted_checkouts_decrypted_hostedpage",
            "provider_decrypted_hostedpage_id",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    gateway: Mapped[str] = mapped_column(String(40), nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(80), nullable=False)
    billing_id: Mapped[str] = mapped_column(String(80), nullable=False)
    plan_code: Mapped[str] = mapped_column(String(80), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    pricebook_id: Mapped[str | None] = mapped_column(String(80))
    status: Mapped[CheckoutStatus] = mapped_column(
        Enum(CheckoutStatus), default=CheckoutStatus.created
    )
    redirect_url: Mapped[str | None] = mapped_column(String(500))

    provider_hostedpage_id: Mapped[str | None] = mapped_column(String(255))
    provider_decrypted_hostedpage_id: Mapped[str | None] = mapped_column(String(255))
    provider_status: Mapped[str | None] = mapped_column(String(60))
    hosted_url: Mapped[str | None] = mapped_column(String(1000))
    expiring_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    zoho_subscription_id: Mapped[str | None] = mapped_column(String(80))

    request_payload_json: Mapped[str | None] = mapped_column(Text)
    # Append-only provider audit trail, blocks separated by AUDIT_DELIMITER
    response_payload_json: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), onupdate=lambda: datetime.now(UTC)
    )
