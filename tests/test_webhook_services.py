import json

from subscription_checkout.models.billing import BillingEntitySubscription, FeatureUsage
from subscription_checkout.models.checkout import CheckoutStatus, PaymentStatus
from subscription_checkout.services import webhooks as webhooks_service
from subscription_checkout.services.payload_extractor import AUDIT_DELIMITER


def _payment_body(hostedpage_id="HP123", status="success", subscription_id="Z1"):
    return json.dumps(
        {
            "payment": {
                "payment_id": "P-1",
                "payment_status": status,
                "payment_mode": "creditcard",
                "amount": 49.0,
                "currency_code": "USD",
                "date": "2026-10-01",
                "autotransaction": {"payment_gateway": "razorpay"},
                "invoices": [
                    {
                        "invoice_id": "INV-9",
                        "hosted_page_id": hostedpage_id,
                        "subscription_ids": [subscription_id],
                    }
                ],
            }
        }
    ).encode()


def _hostedpage_body(order_id, status):
    return json.dumps(
        {"data": {"hostedpage": {"reference_id": order_id, "hostedpage_id": "HP123", "status": status}}}
    ).encode()


def _reconciler(secret=None):
    return webhooks_service.WebhookReconciler(webhook_secret=secret)


def test_payment_webhook_completes_and_provisions(
    db_session, pro_plan, billing_entity, make_checkout
):
    checkout = make_checkout(
        provider_hostedpage_id="2-enc-hostedpage",
        provider_decrypted_hostedpage_id="HP123",
    )

    result = _reconciler().process_payment_webhook(db_session, {}, _payment_body())

    assert result.accepted is True
    assert result.message == "ok"
    assert result.order_id == checkout.order_id
    assert result.provider == "razorpay"
    assert result.normalized_status == PaymentStatus.success

    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.completed
    assert checkout.provider_status == "success"
    assert checkout.zoho_subscription_id == "Z1"
    assert '"INV-9"' in checkout.response_payload_json

    subscription = (
        db_session.query(BillingEntitySubscription)
        .filter(BillingEntitySubscription.activation_order_id == checkout.order_id)
        .one()
    )
    assert subscription.zoho_subscription_id == "Z1"
    assert subscription.is_paid_plan is True
    assert (
        db_session.query(FeatureUsage)
        .filter(FeatureUsage.subscription_id == subscription.id)
        .count()
        == 3
    )


def test_payment_webhook_correlates_by_raw_hostedpage_id(
    db_session, pro_plan, billing_entity, make_checkout
):
    checkout = make_checkout(provider_hostedpage_id="2-enc-hostedpage")

    result = _reconciler().process_payment_webhook(
        db_session, {}, _payment_body(hostedpage_id="2-enc-hostedpage", status="failed")
    )

    assert result.accepted is True
    assert result.order_id == checkout.order_id
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.failed
    assert db_session.query(BillingEntitySubscription).count() == 0


def test_hostedpage_webhook_by_order_id(db_session, pro_plan, billing_entity, make_checkout):
    checkout = make_checkout()

    result = _reconciler().process_payment_webhook(
        db_session, {"X-Provider": "ZOHOBILLING"}, _hostedpage_body(checkout.order_id, "paid")
    )

    assert result.accepted is True
    assert result.provider == "ZOHOBILLING"
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.completed
    # first observed hosted page id is recorded
    assert checkout.provider_decrypted_hostedpage_id == "HP123"
    assert checkout.provider_hostedpage_id == "HP123"


def test_webhook_keeps_first_hostedpage_id(db_session, pro_plan, make_checkout, caplog):
    checkout = make_checkout(provider_decrypted_hostedpage_id="HP-ORIGINAL")

    with caplog.at_level("WARNING"):
        _reconciler().process_payment_webhook(
            db_session, {}, _hostedpage_body(checkout.order_id, "fresh")
        )

    db_session.refresh(checkout)
    assert checkout.provider_decrypted_hostedpage_id == "HP-ORIGINAL"
    assert "webhook_hostedpage_mismatch" in caplog.text


def test_webhook_unknown_status_persists_pending(db_session, pro_plan, make_checkout, caplog):
    checkout = make_checkout(status=CheckoutStatus.created)

    with caplog.at_level("WARNING"):
        result = _reconciler().process_payment_webhook(
            db_session, {}, _hostedpage_body(checkout.order_id, "on_hold")
        )

    assert result.accepted is True
    assert result.normalized_status == PaymentStatus.pending
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.pending
    assert checkout.provider_status == "on_hold"
    assert "webhook_provider_status_unrecognized" in caplog.text


def test_webhook_terminal_checkout_is_audit_only(
    db_session, pro_plan, billing_entity, make_checkout
):
    checkout = make_checkout(
        status=CheckoutStatus.failed,
        provider_status="failed",
        response_payload_json='{"status":"failed"}',
    )

    result = _reconciler().process_payment_webhook(
        db_session, {}, _hostedpage_body(checkout.order_id, "paid")
    )

    assert result.accepted is True
    assert result.message == "already terminal"
    assert result.normalized_status == PaymentStatus.failed
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.failed
    assert checkout.provider_status == "failed"
    assert checkout.response_payload_json.count(AUDIT_DELIMITER) == 1
    assert db_session.query(BillingEntitySubscription).count() == 0


def test_webhook_terminal_success_retries_provisioning(
    db_session, pro_plan, billing_entity, make_checkout
):
    checkout = make_checkout(status=CheckoutStatus.completed)

    first = _reconciler().process_payment_webhook(
        db_session, {}, _hostedpage_body(checkout.order_id, "paid")
    )
    second = _reconciler().process_payment_webhook(
        db_session, {}, _hostedpage_body(checkout.order_id, "paid")
    )

    assert first.message == second.message == "already terminal"
    assert db_session.query(BillingEntitySubscription).count() == 1


def test_webhook_signature_accepted(db_session, pro_plan, make_checkout):
    checkout = make_checkout()
    body = _hostedpage_body(checkout.order_id, "fresh")
    signature = webhooks_service.compute_signature("s3cret", body)

    result = _reconciler("s3cret").process_payment_webhook(
        db_session, {"x-zoho-webhook-signature": signature.upper()}, body
    )

    assert result.accepted is True
    assert result.message == "ok"


def test_webhook_signature_rejected(db_session, pro_plan, make_checkout):
    checkout = make_checkout()
    body = _hostedpage_body(checkout.order_id, "paid")

    bad = _reconciler("s3cret").process_payment_webhook(
        db_session, {"X-Zoho-Webhook-Signature": "deadbeef"}, body
    )
    missing = _reconciler("s3cret").process_payment_webhook(db_session, {}, body)

    assert bad.accepted is False
    assert bad.message == "invalid signature"
    assert missing.message == "invalid signature"
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.pending


def test_webhook_invalid_json(db_session):
    result = _reconciler().process_payment_webhook(db_session, {}, b"not-json")
    assert result.accepted is False
    assert result.message == "invalid json"

    array = _reconciler().process_payment_webhook(db_session, {}, b"[1, 2]")
    assert array.message == "invalid json"


def test_webhook_missing_order_id(db_session):
    result = _reconciler().process_payment_webhook(db_session, {}, b'{"event": "ping"}')
    assert result.accepted is False
    assert result.message == "missing orderId"


def test_webhook_payment_with_unknown_hostedpage(db_session):
    result = _reconciler().process_payment_webhook(
        db_session, {}, _payment_body(hostedpage_id="HP-UNKNOWN")
    )
    assert result.accepted is False
    assert result.message == "missing orderId"


def test_webhook_checkout_not_found(db_session):
    result = _reconciler().process_payment_webhook(
        db_session, {}, _hostedpage_body("no-such-order", "paid")
    )
    assert result.accepted is False
    assert result.message == "hosted checkout not found"
    assert result.order_id == "no-such-order"


def test_webhook_processing_error_is_reported(db_session, pro_plan, make_checkout, monkeypatch):
    checkout = make_checkout()

    def boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(webhooks_service.WebhookReconciler, "_apply", boom)
    result = _reconciler().process_payment_webhook(
        db_session, {}, _hostedpage_body(checkout.order_id, "paid")
    )
    assert result.accepted is False
    assert result.message == "processing error"


def test_detect_provider_precedence():
    reconciler = _reconciler()
    payment = json.loads(_payment_body())
    assert reconciler.detect_provider({"X-Provider": "other"}, payment) == "razorpay"
    assert reconciler.detect_provider({"x-provider": "other"}, {"status": "paid"}) == "other"
    assert reconciler.detect_provider(None, None) == "ZOHOBILLING"


def test_verify_signature():
    body = b'{"a":1}'
    signature = webhooks_service.compute_signature("k", body)
    assert webhooks_service.verify_signature("k", body, signature)
    assert webhooks_service.verify_signature("k", body, f"  {signature.upper()} ")
    assert not webhooks_service.verify_signature("k", body, "00")
    assert not webhooks_service.verify_signature("k", body, None)


def test_webhook_non_ascii_signature_is_rejected(db_session, pro_plan, make_checkout):
    checkout = make_checkout()

    result = _reconciler("s3cret").process_payment_webhook(
        db_session,
        {"X-Zoho-Webhook-Signature": "caf\xe9"},
        _hostedpage_body(checkout.order_id, "paid"),
    )

    assert result.accepted is False
    assert result.message == "invalid signature"
    assert not webhooks_service.verify_signature("s3cret", b"{}", "\xe9\xe9")


def test_payment_webhook_ignores_generic_hostedpage_id(db_session, pro_plan, make_checkout):
    checkout = make_checkout(provider_decrypted_hostedpage_id="HP-GENERIC")
    document = json.loads(_payment_body())
    document["payment"]["invoices"][0].pop("hosted_page_id")
    document["hostedpage"] = {"id": "HP-GENERIC"}

    result = _reconciler().process_payment_webhook(
        db_session, {}, json.dumps(document).encode()
    )

    assert result.accepted is False
    assert result.message == "missing orderId"
    db_session.refresh(checkout)
    assert checkout.status == CheckoutStatus.pending
