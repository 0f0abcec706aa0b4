"""Billing entity lookup, minimal creation and opportunistic enrichment."""

from __future__ import annotations

import json
import logging

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subscription_checkout.models.billing import BillingEntity
from subscription_checkout.models.checkout import HostedCheckout
from subscription_checkout.schemas.billing import (
    BillingDetailsResponse,
    BillingDetailsState,
    BillingEntityRead,
)
from subscription_checkout.schemas.checkout import HostedPageCreate
from subscription_checkout.services.common import clean_text, first_text

logger = logging.getLogger(__name__)


def _join_text(separator: str, *parts) -> str | None:
    joined = separator.join(text for text in (clean_text(p) for p in parts) if text)
    return joined or None


def _set_if_blank(entity: BillingEntity, field: str, value) -> bool:
    value = clean_text(value)
    if value and not clean_text(getattr(entity, field)):
        setattr(entity, field, value)
        return True
    return False


def is_profile_complete(entity: BillingEntity) -> bool:
    return bool(
        clean_text(entity.name)
        and (clean_text(entity.email) or clean_text(entity.mobile))
        and clean_text(entity.billing_address)
        and clean_text(entity.state_code)
    )


class BillingProfiles:
    @staticmethod
    def get(db: Session, tenant_id: str, billing_id: str) -> BillingEntity | None:
        return (
            db.query(BillingEntity)
            .filter(BillingEntity.tenant_id == tenant_id)
            .filter(BillingEntity.billing_id == billing_id)
            .first()
        )

    @staticmethod
    def get_billing_details(db: Session, tenant_id: str, billing_id: str) -> BillingDetailsResponse:
        tenant_id = clean_text(tenant_id)
        billing_id = clean_text(billing_id)
        if not tenant_id or not billing_id:
            raise HTTPException(status_code=400, detail="tenant_id and billing_id are required")
        entity = BillingProfiles.get(db, tenant_id, billing_id)
        if entity is None:
            return BillingDetailsResponse(
                tenant_id=tenant_id,
                billing_id=billing_id,
                state=BillingDetailsState.not_found,
                message="No billing profile found for tenantId and billingId.",
            )
        profile = BillingEntityRead.model_validate(entity)
        if not entity.has_complete_billing_profile:
            return BillingDetailsResponse(
                tenant_id=tenant_id,
                billing_id=billing_id,
                state=BillingDetailsState.incomplete_profile,
                message="Billing profile is incomplete. Please provide remaining details.",
                profile=profile,
            )
        return BillingDetailsResponse(
            tenant_id=tenant_id,
            billing_id=billing_id,
            state=BillingDetailsState.complete,
            message="Billing profile is complete.",
            profile=profile,
        )

    @staticmethod
    def ensure_for_checkout(
        db: Session,
        tenant_id: str,
        billing_id: str,
        payload: HostedPageCreate,
        pricebook_id: str,
    ) -> BillingEntity:
        """Return the billing entity, creating a minimal one when absent.

        A concurrent creator wins the unique (tenant_id, billing_id) race; the
        losing insert is rolled back to its savepoint and the winner's row is
        re-read.
        """
        entity = BillingProfiles.get(db, tenant_id, billing_id)
        if entity is not None:
            if not clean_text(entity.pricebook_id):
                entity.pricebook_id = pricebook_id
            return entity

        customer = payload.customer
        address = payload.billing_address
        gst = payload.gst
        name = first_text(
            customer.company_name if customer else None,
            customer.display_name if customer else None,
        ) or f"Tenant {tenant_id}"
        entity = BillingEntity(
            tenant_id=tenant_id,
            billing_id=billing_id,
            name=name,
            email=clean_text(customer.email) if customer else None,
            mobile=clean_text(customer.mobile) if customer else None,
            fname=clean_text(customer.first_name) if customer else None,
            lname=clean_text(customer.last_name) if customer else None,
            billing_address=_join_text(
                ", ",
                *((address.street, address.city, address.zip, address.country) if address else ()),
            ),
            city=clean_text(address.city) if address else None,
            country=clean_text(address.country) if address else None,
            state_name=clean_text(address.state) if address else None,
            state_code=clean_text(address.state_code) if address else None,
            gst_number=clean_text(gst.gst_no) if gst else None,
            gst_state_code=clean_text(gst.gst_state_code) if gst else None,
            is_zoho_linked=False,
            has_complete_billing_profile=False,
            pricebook_id=pricebook_id,
        )
        try:
            with db.begin_nested():
                db.add(entity)
                db.flush()
        except IntegrityError:
            logger.info(
                "billing_entity_create_race tenant_id=%s billing_id=%s",
                tenant_id,
                billing_id,
            )
            entity = BillingProfiles.get(db, tenant_id, billing_id)
            if entity is None:
                raise HTTPException(
                    status_code=409,
                    detail="Billing profile could not be created; please retry",
                )
            return entity
        logger.info(
            "billing_entity_created tenant_id=%s billing_id=%s", tenant_id, billing_id
        )
        return entity

    @staticmethod
    def enrich_from_checkout(db: Session, checkout: HostedCheckout) -> BillingEntity | None:
        """Fill blank profile fields from the checkout's stored request payload."""
        entity = BillingProfiles.get(db, checkout.tenant_id, checkout.billing_id)
        if entity is None:
            return None

        changed = _set_if_blank(entity, "pricebook_id", checkout.pricebook_id)

        try:
            root = json.loads(checkout.request_payload_json or "{}")
        except ValueError:
            logger.debug("checkout_request_payload_unparseable order_id=%s", checkout.order_id)
            root = {}
        if not isinstance(root, dict):
            root = {}

        customer = root.get("customer")
        if isinstance(customer, dict):
            first_name = clean_text(customer.get("first_name"))
            last_name = clean_text(customer.get("last_name"))
            best_name = first_text(
                customer.get("company_name"),
                customer.get("display_name"),
                _join_text(" ", first_name, last_name),
            )
            changed |= _set_if_blank(entity, "name", best_name)
            changed |= _set_if_blank(entity, "fname", first_name)
            changed |= _set_if_blank(entity, "lname", last_name)
            changed |= _set_if_blank(entity, "email", customer.get("email"))
            changed |= _set_if_blank(
                entity, "mobile", first_text(customer.get("mobile"), customer.get("phone"))
            )

            bill = customer.get("billing_address")
            if isinstance(bill, dict):
                changed |= _set_if_blank(
                    entity,
                    "billing_address",
                    _join_text(
                        ", ",
                        bill.get("street"),
                        bill.get("city"),
                        bill.get("zip"),
                        bill.get("country"),
                    ),
                )
                changed |= _set_if_blank(entity, "city", bill.get("city"))
                changed |= _set_if_blank(entity, "country", bill.get("country"))
                changed |= _set_if_blank(entity, "state_name", bill.get("state"))
                changed |= _set_if_blank(entity, "state_code", bill.get("state_code"))

        place_of_supply = clean_text(root.get("place_of_supply"))
        changed |= _set_if_blank(entity, "gst_number", root.get("gst_no"))
        changed |= _set_if_blank(entity, "gst_state_code", place_of_supply)
        changed |= _set_if_blank(entity, "state_code", place_of_supply)

        if not entity.has_complete_billing_profile and is_profile_complete(entity):
            entity.has_complete_billing_profile = True
            changed = True

        if changed:
            db.flush()
            logger.info(
                "billing_entity_enriched tenant_id=%s billing_id=%s complete=%s",
                entity.tenant_id,
                entity.billing_id,
                entity.has_complete_billing_profile,
            )
        return entity


billing_profiles = BillingProfiles()
