"""Map local and provider status vocabularies onto ``PaymentStatus``.

Every function here is pure and total: unrecognised or empty input yields
``PaymentStatus.unknown`` rather than raising.
"""

from subscription_checkout.models.checkout import CheckoutStatus, PaymentStatus

_LOCAL_STATUS_MAP = {
    "CREATED": PaymentStatus.pending,
    "PENDING": PaymentStatus.pending,
    "COMPLETED": PaymentStatus.success,
    "PAID": PaymentStatus.success,
    "FAILED": PaymentStatus.failed,
    "EXPIRED": PaymentStatus.expired,
}

_PROVIDER_STATUS_MAP = {
    "success": PaymentStatus.success,
    "paid": PaymentStatus.success,
    "completed": PaymentStatus.success,
    "used": PaymentStatus.success,
    "expired": PaymentStatus.expired,
    "failed": PaymentStatus.failed,
    "fresh": PaymentStatus.pending,
    "created": PaymentStatus.pending,
    "initiated": PaymentStatus.pending,
    "inprogress": PaymentStatus.pending,
    "pending": PaymentStatus.pending,
}

_CHECKOUT_STATUS_MAP = {
    PaymentStatus.success: CheckoutStatus.completed,
    PaymentStatus.failed: CheckoutStatus.failed,
    PaymentStatus.expired: CheckoutStatus.expired,
}

TERMINAL_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.success, PaymentStatus.failed, PaymentStatus.expired}
)


def normalize_local(status: str | CheckoutStatus | None) -> PaymentStatus:
    if isinstance(status, CheckoutStatus):
        status = status.value
    if not status:
        return PaymentStatus.unknown
    return _LOCAL_STATUS_MAP.get(status.strip().upper(), PaymentStatus.unknown)


def normalize_provider(status: str | None) -> PaymentStatus:
    if not status:
        return PaymentStatus.unknown
    return _PROVIDER_STATUS_MAP.get(status.strip().lower(), PaymentStatus.unknown)


def to_checkout_status(status: PaymentStatus) -> CheckoutStatus:
    """Local persistence vocabulary; PENDING and UNKNOWN both stay PENDING."""
    return _CHECKOUT_STATUS_MAP.get(status, CheckoutStatus.pending)


def is_terminal(status: PaymentStatus | CheckoutStatus | None) -> bool:
    if isinstance(status, CheckoutStatus):
        status = normalize_local(status)
    return status in TERMINAL_PAYMENT_STATUSES
