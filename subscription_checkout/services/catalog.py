"""Read-only access to plans, plan prices and pricebooks."""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from subscription_checkout.models.catalog import (
    PlanFeature,
    PlanPrice,
    Pricebook,
    SubscriptionPlan,
)
from subscription_checkout.schemas.catalog import PlanFeatureRead, PlanPriceRead, PlanView


class Plans:
    @staticmethod
    def get_by_code(db: Session, plan_code: str | None) -> SubscriptionPlan | None:
        if not plan_code:
            return None
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.external_plan_code == plan_code)
            .first()
        )

    @staticmethod
    def get_active_by_code(db: Session, plan_code: str | None) -> SubscriptionPlan | None:
        if not plan_code:
            return None
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.external_plan_code == plan_code)
            .filter(SubscriptionPlan.is_active.is_(True))
            .first()
        )

    @staticmethod
    def get_price(db: Session, plan_id, currency: str | None) -> PlanPrice | None:
        if not currency:
            return None
        return (
            db.query(PlanPrice)
            .filter(PlanPrice.plan_id == plan_id)
            .filter(func.upper(PlanPrice.currency) == currency.upper())
            .first()
        )

    @staticmethod
    def features(db: Session, plan_id) -> list[PlanFeature]:
        return (
            db.query(PlanFeature)
            .filter(PlanFeature.plan_id == plan_id)
            .order_by(PlanFeature.sort_order.asc(), PlanFeature.feature_key.asc())
            .all()
        )

    @staticmethod
    def view(db: Session, plan: SubscriptionPlan | None) -> PlanView | None:
        if plan is None:
            return None
        features = Plans.features(db, plan.id)
        prices = (
            db.query(PlanPrice)
            .filter(PlanPrice.plan_id == plan.id)
            .order_by(PlanPrice.currency.asc())
            .all()
        )
        return PlanView(
            id=plan.id,
            plan_code=plan.external_plan_code,
            name=plan.name,
            category=plan.category,
            interval_unit=plan.interval_unit,
            trial_period_days=plan.trial_period_days,
            license_limit=plan.license_limit,
            is_active=bool(plan.is_active),
            features=[PlanFeatureRead.model_validate(item) for item in features],
            prices=[PlanPriceRead.model_validate(item) for item in prices],
        )


class Pricebooks:
    @staticmethod
    def get_by_currency(db: Session, currency: str | None) -> Pricebook | None:
        if not currency:
            return None
        return (
            db.query(Pricebook)
            .filter(func.upper(Pricebook.currency) == currency.strip().upper())
            .filter(Pricebook.is_active.is_(True))
            .first()
        )


plans = Plans()
pricebooks = Pricebooks()
