import json

import pytest
from fastapi import HTTPException

from subscription_checkout.gateways import GatewayConfigurationError, GatewayError
from subscription_checkout.models.billing import BillingEntity, BillingEntitySubscription
from subscription_checkout.models.checkout import CheckoutStatus, HostedCheckout, PaymentStatus
from subscription_checkout.schemas.checkout import (
    AddressDetails,
    CustomerDetails,
    GstDetails,
    HostedPageCreate,
    PaymentStatusRequest,
)
from subscription_checkout.services import checkout as checkout_service
from subscription_checkout.services.payload_extractor import AUDIT_DELIMITER


def _create_payload(**overrides):
    values = {
        "tenant_id": "tenant-1",
        "billing_id": "billing-1",
        "plan_code": "PRO-M",
        "currency": "usd",
        "redirect_url": "https://app.example.com/billing/return",
        "customer": CustomerDetails(
            display_name="Acme",
            company_name="Acme Hiring",
            email="billing@acme.test",
            mobile="+15550100",
        ),
        "billing_address": AddressDetails(
            street="1 Main St", city="Springfield", state="Illinois", state_code="il",
            zip="62701", country="US",
        ),
    }
    values.update(overrides)
    return HostedPageCreate(**values)


def test_create_session_persists_pending_checkout(db_session, pro_plan, fake_gateway):
    response = checkout_service.checkout_sessions.create_session(db_session, _create_payload())

    assert response.gateway == "ZOHOBILLING"
    assert response.hostedpage_id == "2-enc-hostedpage"
    assert response.url == fake_gateway.url
    assert response.status == "fresh"

    checkout = checkout_service.checkout_sessions.get_session(db_session, response.order_id)
    assert checkout.status == CheckoutStatus.pending
    assert checkout.currency == "USD"
    assert checkout.pricebook_id == "PB-USD"
    assert checkout.provider_hostedpage_id == "2-enc-hostedpage"
    assert checkout.provider_decrypted_hostedpage_id == "HP123"
    assert checkout.expiring_time is not None
    assert "hostedpage" in checkout.response_payload_json

    sent = fake_gateway.created_payloads[0]
    assert sent["plan"] == {"plan_code": "PRO-M"}
    assert sent["pricebook_id"] == "PB-USD"
    assert sent["gst_treatment"] == "consumer"
    assert sent["place_of_supply"] == "IL"
    assert sent["customer"]["pricebook_id"] == "PB-USD"
    assert sent["customer"]["billing_address"]["city"] == "Springfield"
    assert json.loads(checkout.request_payload_json) == sent


def test_create_session_creates_minimal_billing_entity(db_session, pro_plan, fake_gateway):
    checkout_service.checkout_sessions.create_session(db_session, _create_payload())

    entity = (
        db_session.query(BillingEntity)
        .filter(BillingEntity.tenant_id == "tenant-1")
        .filter(BillingEntity.billing_id == "billing-1")
        .one()
    )
    assert entity.name == "Acme Hiring"
    assert entity.pricebook_id == "PB-USD"
    assert entity.billing_address == "1 Main St, Springfield, 62701, US"
    assert entity.has_complete_billing_profile is False


def test_create_session_uses_linked_customer(db_session, pro_plan, fake_gateway, billing_entity):
    billing_entity.is_zoho_linked = True
    billing_entity.zoho_customer_id = "ZC-77"
    db_session.commit()

    checkout_service.checkout_sessions.create_session(
        db_session, _create_payload(gst=GstDetails(gst_no="29ABCDE1234F1Z5", gst_state_code="ka"))
    )

    sent = fake_gateway.created_payloads[0]
    assert sent["customer_id"] == "ZC-77"
    assert "customer" not in sent
    assert sent["gst_treatment"] == "business_gst"
    assert sent["gst_no"] == "29ABCDE1234F1Z5"
    assert sent["place_of_supply"] == "KA"


@pytest.mark.parametrize("missing", ["tenant_id", "billing_id", "plan_code", "currency"])
def test_create_session_requires_fields(db_session, pro_plan, fake_gateway, missing):
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(
            db_session, _create_payload(**{missing: "  "})
        )
    assert exc.value.status_code == 400
    assert db_session.query(HostedCheckout).count() == 0


def test_create_session_unknown_currency(db_session, pro_plan, fake_gateway):
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(
            db_session, _create_payload(currency="EUR")
        )
    assert exc.value.status_code == 400
    assert "EUR" in exc.value.detail


def test_create_session_unknown_plan(db_session, pricebook, fake_gateway):
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(
            db_session, _create_payload(plan_code="NOPE")
        )
    assert exc.value.status_code == 404
    assert exc.value.detail == "Unknown planCode: NOPE"


def test_create_session_inactive_plan(db_session, pro_plan, fake_gateway):
    pro_plan.is_active = False
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(db_session, _create_payload())
    assert exc.value.status_code == 400


def test_create_session_rejects_active_subscription(
    db_session, pro_plan, fake_gateway, active_subscription
):
    active_subscription(pro_plan)
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(db_session, _create_payload())
    assert exc.value.status_code == 409
    assert "ACTIVE subscription already exists" in exc.value.detail
    assert fake_gateway.created_payloads == []
    assert db_session.query(HostedCheckout).count() == 0


def test_create_session_missing_price(db_session, bare_plan, fake_gateway):
    db_session.delete(bare_plan.prices[0])
    db_session.commit()
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(
            db_session, _create_payload(plan_code="LITE-W")
        )
    assert exc.value.status_code == 400
    assert exc.value.detail == "No plan price for planCode=LITE-W currency=USD"


def test_create_session_unsupported_gateway(db_session, pro_plan, fake_gateway):
    with pytest.raises(GatewayConfigurationError):
        checkout_service.checkout_sessions.create_session(
            db_session, _create_payload(gateway="PAYPAL")
        )
    assert db_session.query(HostedCheckout).count() == 0


def test_create_session_gateway_failure_leaves_created_row(db_session, pro_plan, fake_gateway):
    fake_gateway.fail_with = GatewayError("Zoho Billing returned HTTP 500")
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.create_session(db_session, _create_payload())
    assert exc.value.status_code == 502

    checkout = db_session.query(HostedCheckout).one()
    assert checkout.status == CheckoutStatus.created
    assert checkout.provider_hostedpage_id is None


def test_get_session_not_found(db_session):
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.get_session(db_session, "missing")
    assert exc.value.status_code == 404


def test_live_status_success_provisions(
    db_session, pro_plan, billing_entity, fake_gateway, make_checkout
):
    checkout = make_checkout(provider_hostedpage_id="2-enc-hostedpage")
    fake_gateway.status = "paid"

    response = checkout_service.checkout_sessions.check_payment_status(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )

    assert response.status == PaymentStatus.success
    assert response.message == "Fetched from provider"
    assert response.provider_status_raw == "paid"
    assert response.paid_plan is True
    assert response.subscription_status == "ACTIVE"
    assert response.plan.plan_code == "PRO-M"
    assert fake_gateway.status_requests == ["2-enc-hostedpage"]

    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.completed
    assert db_session.query(BillingEntitySubscription).count() == 1


def test_live_status_appends_audit_trail(db_session, pro_plan, fake_gateway, make_checkout):
    checkout = make_checkout(
        provider_hostedpage_id="2-enc-hostedpage",
        response_payload_json='{"hostedpage":{"status":"fresh"}}',
    )
    fake_gateway.status = "fresh"

    response = checkout_service.checkout_sessions.check_payment_status(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )

    assert response.status == PaymentStatus.pending
    assert response.subscription_id is None
    db_session.refresh(checkout)
    assert checkout.response_payload_json.count(AUDIT_DELIMITER) == 1


def test_live_status_unrecognized_stays_pending(db_session, pro_plan, fake_gateway, make_checkout):
    checkout = make_checkout(provider_hostedpage_id="2-enc-hostedpage")
    fake_gateway.status = "on_hold"

    response = checkout_service.checkout_sessions.check_payment_status(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )

    assert response.status == PaymentStatus.unknown
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.pending
    assert checkout.provider_status == "on_hold"


def test_live_status_without_hostedpage(db_session, pro_plan, fake_gateway, make_checkout):
    checkout = make_checkout(status=CheckoutStatus.created)
    response = checkout_service.checkout_sessions.check_payment_status(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )
    assert response.status == PaymentStatus.unknown
    assert response.message == "Hosted page not yet created"
    assert fake_gateway.status_requests == []


def test_live_status_terminal_skips_provider(
    db_session, pro_plan, billing_entity, fake_gateway, make_checkout
):
    checkout = make_checkout(
        status=CheckoutStatus.completed, provider_hostedpage_id="2-enc-hostedpage"
    )
    response = checkout_service.checkout_sessions.check_payment_status(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )
    assert response.status == PaymentStatus.success
    assert response.message == "Resolved from local record"
    assert response.paid_plan is True
    assert fake_gateway.status_requests == []


def test_live_status_gateway_failure(db_session, pro_plan, fake_gateway, make_checkout):
    checkout = make_checkout(provider_hostedpage_id="2-enc-hostedpage")
    fake_gateway.fail_with = GatewayError("Zoho Billing is unreachable")
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.check_payment_status(
            db_session, PaymentStatusRequest(order_id=checkout.order_id)
        )
    assert exc.value.status_code == 502
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.pending


def test_status_unknown_order(db_session):
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.check_payment_status(
            db_session, PaymentStatusRequest(order_id="missing")
        )
    assert exc.value.status_code == 404
    assert exc.value.detail == "Unknown orderId"


def test_status_gateway_mismatch(db_session, pro_plan, make_checkout):
    checkout = make_checkout()
    with pytest.raises(HTTPException) as exc:
        checkout_service.checkout_sessions.check_payment_status_local(
            db_session, PaymentStatusRequest(order_id=checkout.order_id, gateway="stripe")
        )
    assert exc.value.status_code == 400
    assert exc.value.detail == "Gateway mismatch for this orderId"


def test_status_gateway_match_is_case_insensitive(db_session, pro_plan, make_checkout):
    checkout = make_checkout()
    response = checkout_service.checkout_sessions.check_payment_status_local(
        db_session, PaymentStatusRequest(order_id=checkout.order_id, gateway="zohobilling")
    )
    assert response.status == PaymentStatus.pending


def test_local_status_pending(db_session, pro_plan, fake_gateway, make_checkout):
    checkout = make_checkout(provider_hostedpage_id="2-enc-hostedpage")
    response = checkout_service.checkout_sessions.check_payment_status_local(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )
    assert response.status == PaymentStatus.pending
    assert response.message == "Pending payment or awaiting provider confirmation"
    assert fake_gateway.status_requests == []


def test_local_status_completed_provisions(db_session, pro_plan, billing_entity, make_checkout):
    checkout = make_checkout(status=CheckoutStatus.completed, zoho_subscription_id="Z1")
    response = checkout_service.checkout_sessions.check_payment_status_local(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )
    assert response.status == PaymentStatus.success
    assert response.message == "Resolved from local record (no live provider check)"
    assert response.zoho_subscription_id == "Z1"


def test_local_status_failed(db_session, pro_plan, make_checkout):
    checkout = make_checkout(status=CheckoutStatus.failed)
    response = checkout_service.checkout_sessions.check_payment_status_local(
        db_session, PaymentStatusRequest(order_id=checkout.order_id)
    )
    assert response.status == PaymentStatus.failed
    assert response.subscription_id is None


def test_append_audit_keeps_tail():
    assert checkout_service.append_audit(None, "first", 100) == "first"
    assert checkout_service.append_audit("first", None, 100) == "first"
    merged = checkout_service.append_audit("first", "second", 100)
    assert merged == f"first{AUDIT_DELIMITER}second"
    trimmed = checkout_service.append_audit("a" * 50, "b" * 50, 60)
    assert len(trimmed) == 60
    assert trimmed.endswith("b" * 50)
