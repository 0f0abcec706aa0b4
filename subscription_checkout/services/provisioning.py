"""Paid subscription provisioning after a successful hosted checkout.

``activate_from_successful_checkout`` is idempotent on the checkout's
``order_id``: the subscription row carries it as ``activation_order_id``
under a unique constraint, so repeated webhook deliveries and client polls
resolve to the same single subscription.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subscription_checkout.models.billing import (
    BillingEntitySubscription,
    FeatureUsage,
    SubscriptionStatus,
)
from subscription_checkout.models.checkout import CheckoutStatus, HostedCheckout
from subscription_checkout.services.billing_profiles import billing_profiles
from subscription_checkout.services.catalog import plans
from subscription_checkout.services.common import add_months

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """Checkout data references a billing entity, plan or price that does not exist."""


def compute_term_end(start: datetime, interval_unit: str | None) -> datetime | None:
    """Term end by interval prefix; unrecognised units are open-ended."""
    if not interval_unit:
        return None
    unit = interval_unit.strip().lower()
    if unit.startswith("mon"):
        return add_months(start, 1)
    if unit.startswith(("y", "ann")):
        return add_months(start, 12)
    if unit.startswith("week"):
        return start + timedelta(weeks=1)
    if unit.startswith("day"):
        return start + timedelta(days=1)
    return None


def normalize_interval_unit(interval_unit: str | None) -> str:
    if not interval_unit or not interval_unit.strip():
        return "NONE"
    unit = interval_unit.strip().lower()
    if unit.startswith(("y", "ann")):
        return "YEAR"
    if unit.startswith("mon"):
        return "MONTH"
    if unit.startswith("week"):
        return "WEEK"
    if unit.startswith("day"):
        return "DAY"
    if unit.startswith("none"):
        return "NONE"
    return interval_unit.strip().upper()


class SubscriptionProvisioner:
    @staticmethod
    def get_by_activation_order(db: Session, order_id: str) -> BillingEntitySubscription | None:
        return (
            db.query(BillingEntitySubscription)
            .filter(BillingEntitySubscription.activation_order_id == order_id)
            .first()
        )

    @staticmethod
    def activate_from_successful_checkout(
        db: Session, checkout: HostedCheckout
    ) -> BillingEntitySubscription | None:
        if checkout.status != CheckoutStatus.completed:
            logger.debug(
                "provisioning_skipped order_id=%s status=%s",
                checkout.order_id,
                checkout.status.value if checkout.status else None,
            )
            return None

        existing = SubscriptionProvisioner.get_by_activation_order(db, checkout.order_id)
        if existing is not None:
            logger.info(
                "provisioning_already_done order_id=%s subscription_id=%s",
                checkout.order_id,
                existing.id,
            )
            if not existing.zoho_subscription_id and checkout.zoho_subscription_id:
                existing.zoho_subscription_id = checkout.zoho_subscription_id
            billing_profiles.enrich_from_checkout(db, checkout)
            return existing

        entity = billing_profiles.get(db, checkout.tenant_id, checkout.billing_id)
        if entity is None:
            raise ProvisioningError(
                f"BillingEntity not found for tenant={checkout.tenant_id}, "
                f"billing_id={checkout.billing_id}"
            )
        plan = plans.get_by_code(db, checkout.plan_code)
        if plan is None:
            raise ProvisioningError(f"Plan not found: {checkout.plan_code}")
        price = plans.get_price(db, plan.id, checkout.currency)
        if price is None:
            raise ProvisioningError(
                f"Plan price not found for plan={checkout.plan_code}, currency={checkout.currency}"
            )

        billing_profiles.enrich_from_checkout(db, checkout)

        now = datetime.now(UTC).replace(microsecond=0)
        active_same_plan = (
            db.query(BillingEntitySubscription)
            .filter(BillingEntitySubscription.billing_entity_id == entity.id)
            .filter(BillingEntitySubscription.plan_id == plan.id)
            .filter(BillingEntitySubscription.status == SubscriptionStatus.active)
            .with_for_update()
            .all()
        )
        for previous in active_same_plan:
            previous.status = SubscriptionStatus.cancelled
            previous.end_date = now
            if previous.is_paid_plan and previous.activation_order_id:
                # Two paid checkouts for one plan both passed the creation guard
                logger.warning(
                    "paid_subscription_replaced subscription_id=%s replaced_by_order_id=%s "
                    "previous_order_id=%s",
                    previous.id,
                    checkout.order_id,
                    previous.activation_order_id,
                )
            logger.info(
                "Closed ACTIVE subscription id=%s same planCode=%s tenant_id=%s billing_id=%s",
                previous.id,
                plan.external_plan_code,
                checkout.tenant_id,
                checkout.billing_id,
            )

        trial_end = None
        if plan.trial_period_days and plan.trial_period_days > 0:
            trial_end = now + timedelta(days=plan.trial_period_days)

        subscription = BillingEntitySubscription(
            billing_entity_id=entity.id,
            plan_id=plan.id,
            status=SubscriptionStatus.active,
            is_paid_plan=True,
            is_zoho_linked=True,
            auto_renew=False,
            start_date=now,
            purchase_date=now,
            end_date=compute_term_end(now, plan.interval_unit),
            trial_end_date=trial_end,
            currency=checkout.currency,
            amount=price.amount,
            zoho_subscription_id=checkout.zoho_subscription_id,
            activation_order_id=checkout.order_id,
        )
        db.add(subscription)
        db.flush()
        logger.info(
            "subscription_provisioned subscription_id=%s order_id=%s plan=%s interval=%s "
            "amount=%s currency=%s",
            subscription.id,
            checkout.order_id,
            plan.external_plan_code,
            normalize_interval_unit(plan.interval_unit),
            price.amount,
            checkout.currency,
        )

        features = plans.features(db, plan.id)
        if not features:
            logger.warning(
                "plan_has_no_features plan=%s subscription_id=%s",
                plan.external_plan_code,
                subscription.id,
            )
            return subscription
        for feature in features:
            db.add(
                FeatureUsage(
                    subscription_id=subscription.id,
                    feature_key=feature.feature_key,
                    limit_count=feature.limit_count,
                    used_count=0,
                    is_exhausted=False,
                )
            )
        db.flush()
        logger.info(
            "feature_usage_initialized subscription_id=%s count=%s",
            subscription.id,
            len(features),
        )
        return subscription

    @staticmethod
    def safe_activate(db: Session, checkout: HostedCheckout) -> BillingEntitySubscription | None:
        """Provision inside a savepoint; failures are logged and rolled back.

        The caller's own changes to the checkout row survive a failed attempt
        and the next webhook or poll retries provisioning.
        """
        try:
            with db.begin_nested():
                return SubscriptionProvisioner.activate_from_successful_checkout(db, checkout)
        except IntegrityError:
            logger.info(
                "provisioning_concurrent_duplicate order_id=%s", checkout.order_id
            )
            return SubscriptionProvisioner.get_by_activation_order(db, checkout.order_id)
        except Exception:
            logger.exception(
                "provisioning_failed order_id=%s tenant_id=%s billing_id=%s plan=%s",
                checkout.order_id,
                checkout.tenant_id,
                checkout.billing_id,
                checkout.plan_code,
            )
            return None


provisioner = SubscriptionProvisioner()
