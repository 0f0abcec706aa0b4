import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ["ZOHO_WEBHOOK_SECRET"] = ""

import json
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from subscription_checkout.db import Base
from subscription_checkout.gateways import registry
from subscription_checkout.models.billing import (
    BillingEntity,
    BillingEntitySubscription,
    SubscriptionStatus,
)
from subscription_checkout.models.catalog import (
    PlanFeature,
    PlanPrice,
    Pricebook,
    SubscriptionPlan,
)
from subscription_checkout.models.checkout import CheckoutStatus, HostedCheckout
from tests.mocks import FakePaymentGateway


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={
            "check_same_thread": False,
        },
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN on its own; take it over so SAVEPOINT works
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)

    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        autocommit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def fake_gateway(monkeypatch):
    gateway = FakePaymentGateway()
    monkeypatch.setitem(registry._factories, "ZOHOBILLING", lambda: gateway)
    return gateway


@pytest.fixture()
def pricebook(db_session):
    pricebook = Pricebook(pricebook_id="PB-USD", currency="USD", name="US Dollar")
    db_session.add(pricebook)
    db_session.commit()
    return pricebook


def _make_plan(db_session, code, interval_unit, amount, features=(), **kwargs):
    plan = SubscriptionPlan(
        external_plan_code=code,
        name=kwargs.pop("name", code),
        interval_unit=interval_unit,
        **kwargs,
    )
    db_session.add(plan)
    db_session.flush()
    for sort_order, (key, limit) in enumerate(features):
        db_session.add(
            PlanFeature(
                plan_id=plan.id,
                feature_key=key,
                name=key.replace("_", " ").title(),
                limit_count=limit,
                sort_order=sort_order,
            )
        )
    if amount is not None:
        db_session.add(PlanPrice(plan_id=plan.id, currency="USD", amount=Decimal(amount)))
    db_session.commit()
    return plan


@pytest.fixture()
def pro_plan(db_session, pricebook):
    return _make_plan(
        db_session,
        "PRO-M",
        "months",
        "49.00",
        features=(("job_posts", 10), ("recruiter_seats", 3), ("ai_screening", None)),
        name="Pro Monthly",
        category="PRO",
        license_limit=3,
    )


@pytest.fixture()
def enterprise_plan(db_session, pricebook):
    return _make_plan(
        db_session,
        "ENT-Y",
        "annual",
        "499.00",
        features=(("job_posts", 100),),
        name="Enterprise Yearly",
        category="ENTERPRISE",
        trial_period_days=14,
    )


@pytest.fixture()
def bare_plan(db_session, pricebook):
    return _make_plan(db_session, "LITE-W", "weeks", "5.00", name="Lite Weekly")


@pytest.fixture()
def billing_entity(db_session):
    entity = BillingEntity(
        tenant_id="tenant-1",
        billing_id="billing-1",
        name="Acme Hiring",
        email="billing@acme.test",
        is_zoho_linked=False,
        has_complete_billing_profile=False,
    )
    db_session.add(entity)
    db_session.commit()
    return entity


@pytest.fixture()
def make_checkout(db_session):
    def _make(plan_code="PRO-M", status=CheckoutStatus.pending, **kwargs):
        request_payload = kwargs.pop("request_payload", {"plan": {"plan_code": plan_code}})
        checkout = HostedCheckout(
            order_id=kwargs.pop("order_id", str(uuid.uuid4())),
            gateway=kwargs.pop("gateway", "ZOHOBILLING"),
            tenant_id=kwargs.pop("tenant_id", "tenant-1"),
            billing_id=kwargs.pop("billing_id", "billing-1"),
            plan_code=plan_code,
            currency=kwargs.pop("currency", "USD"),
            pricebook_id=kwargs.pop("pricebook_id", "PB-USD"),
            status=status,
            request_payload_json=json.dumps(request_payload),
            **kwargs,
        )
        db_session.add(checkout)
        db_session.commit()
        return checkout

    return _make


@pytest.fixture()
def active_subscription(db_session, billing_entity):
    def _make(plan, **kwargs):
        subscription = BillingEntitySubscription(
            billing_entity_id=billing_entity.id,
            plan_id=plan.id,
            status=kwargs.pop("status", SubscriptionStatus.active),
            is_paid_plan=kwargs.pop("is_paid_plan", False),
            currency="USD",
            **kwargs,
        )
        db_session.add(subscription)
        db_session.commit()
        return subscription

    return _make
