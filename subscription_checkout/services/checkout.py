"""Hosted checkout sessions: creation, live and local status checks."""

from __future__ import annotations

import json
import logging
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from subscription_checkout import gateways
from subscription_checkout.config import settings
from subscription_checkout.gateways import GatewayError
from subscription_checkout.models.billing import (
    BillingEntity,
    BillingEntitySubscription,
    SubscriptionStatus,
)
from subscription_checkout.models.checkout import CheckoutStatus, HostedCheckout, PaymentStatus
from subscription_checkout.schemas.checkout import (
    AddressDetails,
    HostedPageCreate,
    HostedPageResponse,
    PaymentStatusRequest,
    PaymentStatusResponse,
)
from subscription_checkout.services import payment_status
from subscription_checkout.services.billing_profiles import billing_profiles
from subscription_checkout.services.catalog import plans, pricebooks
from subscription_checkout.services.common import clean_text
from subscription_checkout.services.payload_extractor import (
    AUDIT_DELIMITER,
    parse_provider_time,
)
from subscription_checkout.services.provisioning import provisioner

logger = logging.getLogger(__name__)


def append_audit(existing: str | None, raw: str | None, max_chars: int) -> str | None:
    """Append a provider payload to the audit trail, dropping the oldest text."""
    if not raw:
        return existing
    merged = raw if not existing else f"{existing}{AUDIT_DELIMITER}{raw}"
    if len(merged) > max_chars:
        merged = merged[-max_chars:]
    return merged


def _put_if_text(target: dict, key: str, value) -> None:
    text = clean_text(value)
    if text:
        target[key] = text


def _address_block(address: AddressDetails | None) -> dict:
    block: dict = {}
    if address is None:
        return block
    for key in ("attention", "street", "city", "state", "state_code", "zip", "country", "fax"):
        _put_if_text(block, key, getattr(address, key))
    return block


def build_provider_payload(
    payload: HostedPageCreate,
    plan_code: str,
    pricebook_id: str,
    entity: BillingEntity | None = None,
) -> dict:
    body: dict = {"pricebook_id": pricebook_id, "plan": {"plan_code": plan_code}}
    _put_if_text(body, "redirect_url", payload.redirect_url)

    gst_no = clean_text(payload.gst.gst_no) if payload.gst else None
    if gst_no:
        body["gst_treatment"] = "business_gst"
        body["gst_no"] = gst_no
    else:
        body["gst_treatment"] = "consumer"

    place_of_supply = (payload.gst and clean_text(payload.gst.gst_state_code)) or (
        payload.billing_address and clean_text(payload.billing_address.state_code)
    )
    if place_of_supply:
        body["place_of_supply"] = place_of_supply.upper()

    customer_id = None
    if payload.is_zoho_linked:
        customer_id = clean_text(payload.zoho_customer_id)
    elif entity is not None and entity.is_zoho_linked:
        customer_id = clean_text(entity.zoho_customer_id)
    if customer_id:
        body["customer_id"] = customer_id
        return body

    customer: dict = {}
    if payload.customer is not None:
        for key in (
            "display_name",
            "first_name",
            "last_name",
            "email",
            "phone",
            "mobile",
            "company_name",
            "website",
        ):
            _put_if_text(customer, key, getattr(payload.customer, key))
    billing_address = _address_block(payload.billing_address)
    if billing_address:
        customer["billing_address"] = billing_address
    shipping_address = _address_block(payload.shipping_address)
    if shipping_address:
        customer["shipping_address"] = shipping_address
    customer["pricebook_id"] = pricebook_id
    body["customer"] = customer
    return body


class CheckoutSessionManager:
    def __init__(self, default_gateway: str | None = None, audit_max_chars: int | None = None):
        self.default_gateway = default_gateway or settings.default_gateway
        self.audit_max_chars = audit_max_chars or settings.audit_payload_max_chars

    def _gateway_name(self, value: str | None) -> str:
        return clean_text(value) or self.default_gateway

    def record_provider_payload(self, checkout: HostedCheckout, raw: str | None) -> None:
        checkout.response_payload_json = append_audit(
            checkout.response_payload_json, raw, self.audit_max_chars
        )

    @staticmethod
    def get_session(db: Session, order_id: str) -> HostedCheckout:
        checkout = CheckoutSessionManager.find_session(db, order_id)
        if checkout is None:
            raise HTTPException(status_code=404, detail="Hosted checkout not found")
        return checkout

    @staticmethod
    def find_session(
        db: Session, order_id: str | None, for_update: bool = False
    ) -> HostedCheckout | None:
        order_id = clean_text(order_id)
        if not order_id:
            return None
        query = db.query(HostedCheckout).filter(HostedCheckout.order_id == order_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def find_by_hostedpage_id(
        db: Session, hostedpage_id: str | None, for_update: bool = False
    ) -> HostedCheckout | None:
        """Decrypted hosted page id first, then the provider's raw id."""
        hostedpage_id = clean_text(hostedpage_id)
        if not hostedpage_id:
            return None
        for column in (
            HostedCheckout.provider_decrypted_hostedpage_id,
            HostedCheckout.provider_hostedpage_id,
        ):
            query = db.query(HostedCheckout).filter(column == hostedpage_id)
            if for_update:
                query = query.with_for_update()
            checkout = query.order_by(HostedCheckout.created_at.desc()).first()
            if checkout is not None:
                return checkout
        return None

    @staticmethod
    def has_active_subscription(db: Session, tenant_id: str, billing_id: str, plan_id) -> bool:
        return (
            db.query(BillingEntitySubscription.id)
            .join(BillingEntity, BillingEntity.id == BillingEntitySubscription.billing_entity_id)
            .filter(BillingEntity.tenant_id == tenant_id)
            .filter(BillingEntity.billing_id == billing_id)
            .filter(BillingEntitySubscription.plan_id == plan_id)
            .filter(BillingEntitySubscription.status == SubscriptionStatus.active)
            .first()
            is not None
        )

    def create_session(self, db: Session, payload: HostedPageCreate) -> HostedPageResponse:
        tenant_id = clean_text(payload.tenant_id)
        billing_id = clean_text(payload.billing_id)
        plan_code = clean_text(payload.plan_code)
        currency = (clean_text(payload.currency) or "").upper()
        gateway_name = self._gateway_name(payload.gateway)
        redirect_url = clean_text(payload.redirect_url)

        if not tenant_id or not billing_id or not plan_code or not currency:
            raise HTTPException(
                status_code=400,
                detail="tenant_id, billing_id, plan_code and currency are required",
            )

        pricebook = pricebooks.get_by_currency(db, currency)
        if pricebook is None:
            raise HTTPException(
                status_code=400, detail=f"No pricebook configured for currency={currency}"
            )
        plan = plans.get_by_code(db, plan_code)
        if plan is None:
            raise HTTPException(status_code=404, detail=f"Unknown planCode: {plan_code}")
        if not plan.is_active:
            raise HTTPException(status_code=400, detail=f"Plan {plan_code} is not active")
        if self.has_active_subscription(db, tenant_id, billing_id, plan.id):
            raise HTTPException(
                status_code=409,
                detail=(
                    "An ACTIVE subscription already exists for this tenant/billing on plan "
                    f"{plan_code}. Hosted checkout is not allowed."
                ),
            )
        if plans.get_price(db, plan.id, currency) is None:
            raise HTTPException(
                status_code=400,
                detail=f"No plan price for planCode={plan_code} currency={currency}",
            )
        gateway = gateways.resolve(gateway_name)

        entity = billing_profiles.ensure_for_checkout(
            db, tenant_id, billing_id, payload, pricebook.pricebook_id
        )
        provider_payload = build_provider_payload(
            payload, plan_code, pricebook.pricebook_id, entity
        )

        checkout = HostedCheckout(
            order_id=str(uuid.uuid4()),
            gateway=gateway_name,
            tenant_id=tenant_id,
            billing_id=billing_id,
            plan_code=plan_code,
            currency=currency,
            pricebook_id=pricebook.pricebook_id,
            status=CheckoutStatus.created,
            redirect_url=redirect_url,
            request_payload_json=json.dumps(provider_payload),
        )
        db.add(checkout)
        db.commit()
        db.refresh(checkout)
        logger.info(
            "hosted_checkout_created order_id=%s tenant_id=%s billing_id=%s plan=%s gateway=%s",
            checkout.order_id,
            tenant_id,
            billing_id,
            plan_code,
            gateway_name,
        )

        try:
            result = gateway.create_hosted_page(provider_payload)
        except GatewayError as exc:
            logger.error(
                "hosted_page_create_failed order_id=%s gateway=%s error=%s",
                checkout.order_id,
                gateway_name,
                exc,
            )
            raise HTTPException(
                status_code=502, detail=f"Payment gateway error: {exc}"
            ) from exc

        checkout.provider_hostedpage_id = result.hostedpage_id
        checkout.provider_decrypted_hostedpage_id = result.decrypted_hostedpage_id
        checkout.provider_status = result.status
        checkout.hosted_url = result.url
        checkout.status = CheckoutStatus.pending
        self.record_provider_payload(checkout, result.raw_response_json)
        checkout.expiring_time = parse_provider_time(result.expiring_time)
        db.commit()
        db.refresh(checkout)
        logger.info(
            "hosted_checkout_pending order_id=%s hostedpage_id=%s provider_status=%s",
            checkout.order_id,
            checkout.provider_hostedpage_id,
            checkout.provider_status,
        )
        return HostedPageResponse(
            order_id=checkout.order_id,
            gateway=gateway_name,
            hostedpage_id=result.hostedpage_id,
            url=result.url,
            status=result.status,
            expiring_time=checkout.expiring_time,
        )

    def _load_for_status(
        self, db: Session, payload: PaymentStatusRequest
    ) -> HostedCheckout:
        checkout = self.find_session(db, payload.order_id, for_update=True)
        if checkout is None:
            raise HTTPException(status_code=404, detail="Unknown orderId")
        requested = self._gateway_name(payload.gateway)
        if checkout.gateway and checkout.gateway.upper() != requested.upper():
            raise HTTPException(status_code=400, detail="Gateway mismatch for this orderId")
        return checkout

    @staticmethod
    def _status_response(
        db: Session,
        checkout: HostedCheckout,
        status: PaymentStatus,
        message: str,
        include_subscription: bool = True,
    ) -> PaymentStatusResponse:
        subscription = provisioner.get_by_activation_order(db, checkout.order_id)
        plan = subscription.plan if subscription is not None else None
        if plan is None:
            plan = plans.get_active_by_code(db, checkout.plan_code)
        response = PaymentStatusResponse(
            order_id=checkout.order_id,
            gateway=checkout.gateway,
            status=status,
            provider_status_raw=checkout.provider_status,
            hosted_url=checkout.hosted_url,
            expiring_time=checkout.expiring_time,
            message=message,
            plan=plans.view(db, plan),
        )
        if include_subscription and subscription is not None:
            response.subscription_id = subscription.id
            response.subscription_status = subscription.status.value
            response.start_date = subscription.start_date
            response.end_date = subscription.end_date
            response.purchase_date = subscription.purchase_date
            response.paid_plan = subscription.is_paid_plan
            response.zoho_subscription_id = subscription.zoho_subscription_id
        return response

    def check_payment_status(
        self, db: Session, payload: PaymentStatusRequest
    ) -> PaymentStatusResponse:
        checkout = self._load_for_status(db, payload)
        local = payment_status.normalize_local(checkout.status)

        if payment_status.is_terminal(local):
            if local == PaymentStatus.success:
                provisioner.safe_activate(db, checkout)
            db.commit()
            return self._status_response(db, checkout, local, "Resolved from local record")

        if not checkout.provider_hostedpage_id:
            db.commit()
            return self._status_response(
                db,
                checkout,
                PaymentStatus.unknown,
                "Hosted page not yet created",
                include_subscription=False,
            )

        gateway = gateways.resolve(checkout.gateway)
        try:
            result = gateway.get_hosted_page_status(checkout.provider_hostedpage_id)
        except GatewayError as exc:
            db.rollback()
            logger.error(
                "hosted_page_status_failed order_id=%s gateway=%s error=%s",
                checkout.order_id,
                checkout.gateway,
                exc,
            )
            raise HTTPException(
                status_code=502, detail=f"Payment gateway error: {exc}"
            ) from exc

        normalized = payment_status.normalize_provider(result.status)
        if normalized == PaymentStatus.unknown:
            logger.warning(
                "provider_status_unrecognized order_id=%s provider_status=%s",
                checkout.order_id,
                result.status,
            )
        checkout.provider_status = result.status
        if clean_text(result.url):
            checkout.hosted_url = result.url
        expiring_time = parse_provider_time(result.expiring_time)
        if expiring_time is not None:
            checkout.expiring_time = expiring_time
        checkout.status = payment_status.to_checkout_status(normalized)
        self.record_provider_payload(checkout, result.raw_response_json)
        db.flush()

        if normalized == PaymentStatus.success:
            provisioner.safe_activate(db, checkout)
        db.commit()
        logger.info(
            "payment_status_fetched order_id=%s status=%s provider_status=%s",
            checkout.order_id,
            normalized.value,
            result.status,
        )
        return self._status_response(db, checkout, normalized, "Fetched from provider")

    def check_payment_status_local(
        self, db: Session, payload: PaymentStatusRequest
    ) -> PaymentStatusResponse:
        checkout = self._load_for_status(db, payload)
        local = payment_status.normalize_local(checkout.status)

        if payment_status.is_terminal(local):
            if local == PaymentStatus.success:
                provisioner.safe_activate(db, checkout)
            db.commit()
            return self._status_response(
                db, checkout, local, "Resolved from local record (no live provider check)"
            )

        db.commit()
        status = PaymentStatus.unknown if local == PaymentStatus.unknown else PaymentStatus.pending
        return self._status_response(
            db,
            checkout,
            status,
            "Pending payment or awaiting provider confirmation",
            include_subscription=False,
        )


checkout_sessions = CheckoutSessionManager()
