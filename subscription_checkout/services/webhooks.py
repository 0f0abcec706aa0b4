"""Provider webhook reconciliation.

A delivery is authenticated, parsed, correlated to a hosted checkout and
applied as one transaction. Terminal checkouts only collect the payload in
their audit trail. Expected rejections come back as ``accepted=False`` results
rather than exceptions.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Mapping

from sqlalchemy.orm import Session

from subscription_checkout.config import settings
from subscription_checkout.models.checkout import HostedCheckout, PaymentStatus
from subscription_checkout.schemas.checkout import WebhookResult
from subscription_checkout.services import payment_status
from subscription_checkout.services import payload_extractor as extractor
from subscription_checkout.services.checkout import CheckoutSessionManager, checkout_sessions
from subscription_checkout.services.common import clean_text
from subscription_checkout.services.provisioning import provisioner

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Zoho-Webhook-Signature"
PROVIDER_HEADER = "X-Provider"


def header_value(headers: Mapping[str, str] | None, name: str) -> str | None:
    if not headers:
        return None
    value = headers.get(name)
    if value is None:
        wanted = name.lower()
        for key, candidate in headers.items():
            if key.lower() == wanted:
                value = candidate
                break
    return clean_text(value)


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, provided: str | None) -> bool:
    if not provided:
        return False
    computed = compute_signature(secret, body)
    # header values may carry arbitrary latin-1 text; compare as bytes
    if hmac.compare_digest(
        provided.strip().lower().encode("utf-8"), computed.encode("utf-8")
    ):
        return True
    logger.warning("webhook_signature_mismatch provided=%s computed=%s", provided, computed)
    return False


class WebhookReconciler:
    def __init__(
        self,
        webhook_secret: str | None = None,
        default_provider: str | None = None,
        sessions: CheckoutSessionManager | None = None,
    ):
        self.webhook_secret = webhook_secret
        self.default_provider = default_provider or settings.default_gateway
        self.sessions = sessions or checkout_sessions

    @classmethod
    def from_settings(cls) -> "WebhookReconciler":
        return cls(
            webhook_secret=settings.zoho_webhook_secret,
            default_provider=settings.default_gateway,
        )

    def detect_provider(self, headers: Mapping[str, str] | None, document) -> str:
        if extractor.is_payment_payload(document):
            from_payment = extractor.extract(document).provider
            if from_payment:
                return from_payment
        return header_value(headers, PROVIDER_HEADER) or self.default_provider

    def _correlate(self, db: Session, document) -> tuple[str | None, HostedCheckout | None]:
        data = extractor.extract(document)
        if data.order_id:
            return data.order_id, self.sessions.find_session(db, data.order_id, for_update=True)
        hostedpage_id = extractor.payment_hostedpage_id(document)
        if hostedpage_id:
            checkout = self.sessions.find_by_hostedpage_id(db, hostedpage_id, for_update=True)
            if checkout is not None:
                return checkout.order_id, checkout
        return None, None

    def process_payment_webhook(
        self,
        db: Session,
        headers: Mapping[str, str] | None,
        raw_body: bytes | str,
    ) -> WebhookResult:
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else (raw_body or b"")
        document = extractor.parse_document(body)
        provider = self.detect_provider(headers, document)

        if self.webhook_secret:
            provided = header_value(headers, SIGNATURE_HEADER)
            if not verify_signature(self.webhook_secret, body, provided):
                logger.warning("webhook_rejected reason=invalid_signature provider=%s", provider)
                return WebhookResult(accepted=False, message="invalid signature", provider=provider)
        else:
            logger.warning("webhook_secret_not_configured accepting_without_signature=true")

        if not isinstance(document, dict):
            logger.warning("webhook_rejected reason=invalid_json provider=%s", provider)
            return WebhookResult(accepted=False, message="invalid json", provider=provider)

        try:
            return self._apply(db, document, body, provider)
        except Exception as exc:
            db.rollback()
            logger.error(
                "webhook_processing_error provider=%s error=%s payload=%s",
                provider,
                exc,
                extractor.redact(body),
            )
            return WebhookResult(accepted=False, message="processing error", provider=provider)

    def _apply(self, db: Session, document: dict, body: bytes, provider: str) -> WebhookResult:
        raw_text = body.decode("utf-8", errors="replace")
        order_id, checkout = self._correlate(db, document)
        if not order_id:
            logger.warning("webhook_missing_correlator payload=%s", extractor.redact(raw_text))
            return WebhookResult(accepted=False, message="missing orderId", provider=provider)
        if checkout is None:
            logger.warning(
                "webhook_checkout_not_found order_id=%s payload=%s",
                order_id,
                extractor.redact(raw_text),
            )
            return WebhookResult(
                accepted=False,
                message="hosted checkout not found",
                order_id=order_id,
                provider=provider,
            )

        current = payment_status.normalize_local(checkout.status)
        if payment_status.is_terminal(current):
            self.sessions.record_provider_payload(checkout, raw_text)
            db.flush()
            if current == PaymentStatus.success:
                provisioner.safe_activate(db, checkout)
            db.commit()
            logger.info(
                "webhook_already_terminal order_id=%s status=%s",
                checkout.order_id,
                current.value,
            )
            return WebhookResult(
                accepted=True,
                message="already terminal",
                order_id=checkout.order_id,
                provider=provider,
                normalized_status=current,
            )

        data = extractor.extract(document)
        normalized = payment_status.normalize_provider(data.provider_status)
        if normalized == PaymentStatus.unknown:
            logger.warning(
                "webhook_provider_status_unrecognized order_id=%s provider_status=%s "
                "persisted_as=PENDING",
                checkout.order_id,
                data.provider_status,
            )
            normalized = PaymentStatus.pending

        observed = data.hostedpage_id
        if observed:
            if not checkout.provider_decrypted_hostedpage_id:
                checkout.provider_decrypted_hostedpage_id = observed
            elif observed != checkout.provider_decrypted_hostedpage_id:
                logger.warning(
                    "webhook_hostedpage_mismatch order_id=%s stored=%s observed=%s",
                    checkout.order_id,
                    checkout.provider_decrypted_hostedpage_id,
                    observed,
                )
            if not checkout.provider_hostedpage_id:
                checkout.provider_hostedpage_id = observed

        checkout.provider_status = data.provider_status
        checkout.status = payment_status.to_checkout_status(normalized)
        if extractor.is_payment_payload(document) and data.subscription_id:
            checkout.zoho_subscription_id = data.subscription_id
        self.sessions.record_provider_payload(checkout, raw_text)
        db.flush()
        logger.info(
            "Webhook updated orderId=%s status=%s providerStatus=%s",
            checkout.order_id,
            normalized.value,
            data.provider_status,
        )

        if normalized == PaymentStatus.success:
            provisioner.safe_activate(db, checkout)
        db.commit()
        return WebhookResult(
            accepted=True,
            message="ok",
            order_id=checkout.order_id,
            provider=provider,
            normalized_status=normalized,
        )


webhook_reconciler = WebhookReconciler.from_settings()
