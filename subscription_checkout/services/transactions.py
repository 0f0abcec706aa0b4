from __future__ import annotations

import logging
import math

from sqlalchemy.orm import Session

from subscription_checkout.models.checkout import CheckoutStatus, HostedCheckout
from subscription_checkout.schemas.transactions import TransactionPage, TransactionView
from subscription_checkout.services.catalog import plans
from subscription_checkout.services.common import apply_pagination, clean_text
from subscription_checkout.services.payload_extractor import extract_from_audit
from subscription_checkout.services.provisioning import normalize_interval_unit

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 200

_SETTLED_STATUSES = (CheckoutStatus.completed, CheckoutStatus.failed)


class Transactions:
    @staticmethod
    def to_view(db: Session, checkout: HostedCheckout) -> TransactionView:
        plan = plans.get_by_code(db, checkout.plan_code)
        data = extract_from_audit(checkout.response_payload_json)
        purchase_date = data.payment_date
        if not purchase_date and checkout.created_at is not None:
            purchase_date = checkout.created_at.isoformat()
        return TransactionView(
            order_id=checkout.order_id,
            plan_code=checkout.plan_code,
            plan_category=plan.category if plan else None,
            interval_unit=normalize_interval_unit(plan.interval_unit) if plan else None,
            purchase_date=purchase_date,
            invoice_id=data.invoice_id,
            amount=data.amount,
            currency=clean_text(checkout.currency) or data.currency,
            status="SUCCESS" if checkout.status == CheckoutStatus.completed else "FAILED",
            expiring_time=checkout.expiring_time,
            email=data.email,
            payment_method=data.payment_method,
        )

    @staticmethod
    def list_transactions(
        db: Session,
        tenant_id: str | None,
        billing_id: str | None,
        page: int | None = 0,
        size: int | None = DEFAULT_PAGE_SIZE,
    ) -> TransactionPage:
        """Settled checkouts for a tenant billing account, newest first.

        ``page`` is 0-based; an invalid or oversized ``size`` falls back to
        the default.
        """
        tenant_id = clean_text(tenant_id)
        billing_id = clean_text(billing_id)
        if not tenant_id or not billing_id:
            return TransactionPage(page=0, size=0, total_elements=0, total_pages=0, items=[])

        page = page if page is not None and page >= 0 else 0
        size = size if size is not None and 0 < size <= MAX_PAGE_SIZE else DEFAULT_PAGE_SIZE

        query = (
            db.query(HostedCheckout)
            .filter(HostedCheckout.tenant_id == tenant_id)
            .filter(HostedCheckout.billing_id == billing_id)
            .filter(HostedCheckout.status.in_(_SETTLED_STATUSES))
        )
        total = query.count()
        rows = apply_pagination(
            query.order_by(HostedCheckout.created_at.desc()), size, page * size
        ).all()
        logger.debug(
            "transactions_listed tenant_id=%s billing_id=%s page=%s total=%s",
            tenant_id,
            billing_id,
            page,
            total,
        )
        return TransactionPage(
            page=page,
            size=size,
            total_elements=total,
            total_pages=math.ceil(total / size) if total else 0,
            items=[Transactions.to_view(db, row) for row in rows],
        )


transactions = Transactions()
