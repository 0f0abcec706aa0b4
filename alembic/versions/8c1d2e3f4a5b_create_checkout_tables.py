"""Create catalog, billing entity, subscription and hosted checkout tables.

Revision ID: 8c1d2e3f4a5b
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "8c1d2e3f4a5b"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    subscription_status = postgresql.ENUM(
        "active", "trial", "cancelled", "expired", name="subscriptionstatus"
    )
    checkout_status = postgresql.ENUM(
        "created", "pending", "completed", "failed", "expired", name="checkoutstatus"
    )
    bind = op.get_bind()
    subscription_status.create(bind, checkfirst=True)
    checkout_status.create(bind, checkfirst=True)
    subscription_status = postgresql.ENUM(name="subscriptionstatus", create_type=False)
    checkout_status = postgresql.ENUM(name="checkoutstatus", create_type=False)

    inspector = sa.inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "pricebooks" not in existing_tables:
        op.create_table(
            "pricebooks",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("pricebook_id", sa.String(80), nullable=False, unique=True),
            sa.Column("currency", sa.String(3), nullable=False, unique=True),
            sa.Column("name", sa.String(160), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        )

    if "subscription_plans" not in existing_tables:
        op.create_table(
            "subscription_plans",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("external_plan_code", sa.String(80), nullable=False, unique=True),
            sa.Column("name", sa.String(160), nullable=False),
            sa.Column("category", sa.String(60), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("interval_unit", sa.String(40), nullable=True),
            sa.Column("trial_period_days", sa.Integer(), nullable=True),
            sa.Column("license_limit", sa.Integer(), nullable=True),
            sa.Column("is_enterprise", sa.Boolean(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            *_timestamps(),
        )

    if "plan_features" not in existing_tables:
        op.create_table(
            "plan_features",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "plan_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("subscription_plans.id"),
                nullable=False,
            ),
            sa.Column("feature_key", sa.String(80), nullable=False),
            sa.Column("name", sa.String(160), nullable=True),
            sa.Column("limit_count", sa.Integer(), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.UniqueConstraint("plan_id", "feature_key", name="uq_plan_features_plan_key"),
        )

    if "plan_prices" not in existing_tables:
        op.create_table(
            "plan_prices",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "plan_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("subscription_plans.id"),
                nullable=False,
            ),
            sa.Column("currency", sa.String(3), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.UniqueConstraint("plan_id", "currency", name="uq_plan_prices_plan_currency"),
        )

    if "billing_entities" not in existing_tables:
        op.create_table(
            "billing_entities",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("tenant_id", sa.String(80), nullable=False),
            sa.Column("billing_id", sa.String(80), nullable=False),
            sa.Column("name", sa.String(200), nullable=True),
            sa.Column("fname", sa.String(120), nullable=True),
            sa.Column("lname", sa.String(120), nullable=True),
            sa.Column("email", sa.String(255), nullable=True),
            sa.Column("mobile", sa.String(40), nullable=True),
            sa.Column("billing_address", sa.Text(), nullable=True),
            sa.Column("city", sa.String(120), nullable=True),
            sa.Column("country", sa.String(120), nullable=True),
            sa.Column("state_name", sa.String(120), nullable=True),
            sa.Column("state_code", sa.String(10), nullable=True),
            sa.Column("gst_number", sa.String(20), nullable=True),
            sa.Column("gst_state_code", sa.String(10), nullable=True),
            sa.Column("pricebook_id", sa.String(80), nullable=True),
            sa.Column("zoho_customer_id", sa.String(80), nullable=True),
            sa.Column("is_zoho_linked", sa.Boolean(), nullable=True),
            sa.Column("has_complete_billing_profile", sa.Boolean(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint(
                "tenant_id", "billing_id", name="uq_billing_entities_tenant_billing"
            ),
        )

    if "billing_entity_subscriptions" not in existing_tables:
        op.create_table(
            "billing_entity_subscriptions",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "billing_entity_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("billing_entities.id"),
                nullable=False,
            ),
            sa.Column(
                "plan_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("subscription_plans.id"),
                nullable=False,
            ),
            sa.Column("status", subscription_status, nullable=True),
            sa.Column("is_paid_plan", sa.Boolean(), nullable=True),
            sa.Column("is_zoho_linked", sa.Boolean(), nullable=True),
            sa.Column("auto_renew", sa.Boolean(), nullable=True),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("currency", sa.String(3), nullable=True),
            sa.Column("amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("zoho_subscription_id", sa.String(80), nullable=True),
            sa.Column("activation_order_id", sa.String(64), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint(
                "activation_order_id",
                name="uq_billing_entity_subscriptions_activation_order",
            ),
        )
        op.create_index(
            "ix_billing_entity_subscriptions_billing_entity_id",
            "billing_entity_subscriptions",
            ["billing_entity_id"],
        )

    if "feature_usages" not in existing_tables:
        op.create_table(
            "feature_usages",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column(
                "subscription_id",
                postgresql.UUID(as_uuid=True),
                sa.ForeignKey("billing_entity_subscriptions.id"),
                nullable=False,
            ),
            sa.Column("feature_key", sa.String(80), nullable=False),
            sa.Column("limit_count", sa.Integer(), nullable=True),
            sa.Column("used_count", sa.Integer(), nullable=True),
            sa.Column("is_exhausted", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.UniqueConstraint(
                "subscription_id", "feature_key", name="uq_feature_usages_subscription_key"
            ),
        )

    if "hosted_checkouts" not in existing_tables:
        op.create_table(
            "hosted_checkouts",
            sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
            sa.Column("order_id", sa.String(64), nullable=False),
            sa.Column("gateway", sa.String(40), nullable=False),
            sa.Column("tenant_id", sa.String(80), nullable=False),
            sa.Column("billing_id", sa.String(80), nullable=False),
            sa.Column("plan_code", sa.String(80), nullable=False),
            sa.Column("currency", sa.String(3), nullable=False),
            sa.Column("pricebook_id", sa.String(80), nullable=True),
            sa.Column("status", checkout_status, nullable=True),
            sa.Column("redirect_url", sa.String(500), nullable=True),
            sa.Column("provider_hostedpage_id", sa.String(255), nullable=True),
            sa.Column("provider_decrypted_hostedpage_id", sa.String(255), nullable=True),
            sa.Column("provider_status", sa.String(60), nullable=True),
            sa.Column("hosted_url", sa.String(1000), nullable=True),
            sa.Column("expiring_time", sa.DateTime(timezone=True), nullable=True),
            sa.Column("zoho_subscription_id", sa.String(80), nullable=True),
            sa.Column("request_payload_json", sa.Text(), nullable=True),
            sa.Column("response_payload_json", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("order_id", name="uq_hosted_checkouts_order_id"),
        )
        op.create_index(
            "ix_hosted_checkouts_tenant_billing",
            "hosted_checkouts",
            ["tenant_id", "billing_id"],
        )
        op.create_index(
            "ix_hosted_checkouts_provider_hostedpage",
            "hosted_checkouts",
            ["provider_hostedpage_id"],
        )
        op.create_index(
            "ix_hosted_checkouts_decrypted_hostedpage",
            "hosted_checkouts",
            ["provider_decrypted_hostedpage_id"],
        )


def downgrade() -> None:
    op.drop_table("hosted_checkouts")
    op.drop_table("feature_usages")
    op.drop_table("billing_entity_subscriptions")
    op.drop_table("billing_entities")
    op.drop_table("plan_prices")
    op.drop_table("plan_features")
    op.drop_table("subscription_plans")
    op.drop_table("pricebooks")
    bind = op.get_bind()
    postgresql.ENUM(name="checkoutstatus").drop(bind, checkfirst=True)
    postgresql.ENUM(name="subscriptionstatus").drop(bind, checkfirst=True)
