"""Tolerant extraction of correlators and payment facts from provider payloads.

Providers post two document shapes:

* a *payment* document, discriminated by a top-level ``payment`` object,
  carrying ``invoices[0]`` with the hosted page id, invoice id and
  provider subscription ids;
* a *hosted page* document (or anything else), read through a short list
  of dotted paths.

Extraction runs an ordered list of strategies and, field by field, the first
strategy that yields a non-empty value wins. Lookups never raise: a missing
key, a non-container intermediate or an empty value simply means "not found".
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

AUDIT_DELIMITER = "\n\n---\n\n"
REDACT_LIMIT = 4000

ORDER_ID_PATHS = (
    "data.hostedpage.reference_id",
    "hostedpage.reference_id",
    "orderId",
    "data.order_id",
)
HOSTEDPAGE_ID_PATHS = (
    "data.hostedpage.hostedpage_id",
    "data.hostedpage.id",
    "hostedpage_id",
    "hostedpage.id",
)
STATUS_PATHS = (
    "data.hostedpage.status",
    "hostedpage.status",
    "status",
)


@dataclass
class PaymentExtract:
    order_id: str | None = None
    hostedpage_id: str | None = None
    provider_status: str | None = None
    provider: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    invoice_id: str | None = None
    subscription_id: str | None = None
    email: str | None = None
    payment_method: str | None = None
    payment_date: str | None = None

    def merge_missing(self, other: "PaymentExtract") -> None:
        for item in fields(self):
            if getattr(self, item.name) is None:
                setattr(self, item.name, getattr(other, item.name))


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _as_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None


def resolve_path(document: Any, path: str) -> Any:
    """Walk ``a.b.0.c`` through dicts and lists; ``None`` when anything is off."""
    node = document
    for segment in path.split("."):
        if isinstance(node, dict):
            node = node.get(segment)
        elif isinstance(node, list) and segment.isdigit():
            index = int(segment)
            node = node[index] if index < len(node) else None
        else:
            return None
        if node is None:
            return None
    return node


def resolve_text(document: Any, path: str) -> str | None:
    return _as_text(resolve_path(document, path))


def first_text(document: Any, paths: tuple[str, ...]) -> str | None:
    for path in paths:
        value = resolve_text(document, path)
        if value:
            return value
    return None


def is_payment_payload(document: Any) -> bool:
    return isinstance(document, dict) and isinstance(document.get("payment"), dict)


def payment_hostedpage_id(document: Any) -> str | None:
    """Hosted page id carried by a payment document's first invoice, if any."""
    if not is_payment_payload(document):
        return None
    return resolve_text(document["payment"], "invoices.0.hosted_page_id")


def _payment_strategy(document: Any) -> PaymentExtract:
    extract = PaymentExtract()
    if not is_payment_payload(document):
        return extract
    payment = document["payment"]
    extract.provider_status = resolve_text(payment, "payment_status") or resolve_text(
        payment, "status"
    )
    extract.hostedpage_id = payment_hostedpage_id(document)
    extract.invoice_id = resolve_text(payment, "invoices.0.invoice_id")
    extract.subscription_id = resolve_text(payment, "invoices.0.subscription_ids.0")
    extract.provider = resolve_text(
        payment, "autotransaction.payment_gateway"
    ) or resolve_text(payment, "payment_mode")
    extract.amount = _as_decimal(payment.get("amount"))
    if extract.amount is None:
        extract.amount = _as_decimal(resolve_path(payment, "invoices.0.invoice_amount"))
    extract.currency = resolve_text(payment, "currency_code")
    extract.email = resolve_text(payment, "email")
    extract.payment_date = resolve_text(payment, "date")
    extract.payment_method = resolve_text(payment, "payment_mode") or resolve_text(
        payment, "autotransaction.payment_gateway"
    )
    return extract


def _generic_strategy(document: Any) -> PaymentExtract:
    return PaymentExtract(
        order_id=first_text(document, ORDER_ID_PATHS),
        hostedpage_id=first_text(document, HOSTEDPAGE_ID_PATHS),
        provider_status=first_text(document, STATUS_PATHS),
        amount=_as_decimal(resolve_path(document, "data.amount")),
        currency=resolve_text(document, "data.currency"),
        invoice_id=resolve_text(document, "data.invoice_id"),
        subscription_id=resolve_text(document, "data.subscription.subscription_id"),
        email=resolve_text(document, "data.customer_email"),
        payment_method=resolve_text(document, "data.payment_mode"),
        payment_date=resolve_text(document, "data.date"),
    )


STRATEGIES: tuple[Callable[[Any], PaymentExtract], ...] = (
    _payment_strategy,
    _generic_strategy,
)


def extract(document: Any) -> PaymentExtract:
    result = PaymentExtract()
    for strategy in STRATEGIES:
        result.merge_missing(strategy(document))
    return result


def parse_document(raw: str | bytes | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def last_json_block(audit: str | None) -> Any:
    """Parse the rightmost block of an audit trail that is valid JSON."""
    if not audit:
        return None
    for block in reversed(audit.split(AUDIT_DELIMITER)):
        block = block.strip()
        if not block or block[0] not in "{[":
            continue
        parsed = parse_document(block)
        if parsed is not None:
            return parsed
    return None


def extract_from_audit(audit: str | None) -> PaymentExtract:
    document = last_json_block(audit)
    if document is None:
        return PaymentExtract()
    return extract(document)


def parse_provider_time(value: str | None) -> datetime | None:
    """Accepts ``+05:30``, ``+0530`` and ``Z`` offsets; naive values are UTC."""
    text = _as_text(value)
    if not text:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S.%f%z"):
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def redact(text: str | bytes | None, limit: int = REDACT_LIMIT) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    if len(text) > limit:
        return text[:limit] + "...(truncated)"
    return text
