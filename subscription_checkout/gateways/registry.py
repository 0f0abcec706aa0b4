"""Name-keyed lookup of ``PaymentGateway`` adapters."""

from __future__ import annotations

import logging
from typing import Callable

from subscription_checkout.gateways.base import PaymentGateway

logger = logging.getLogger(__name__)

GatewayFactory = Callable[[], PaymentGateway]

_factories: dict[str, GatewayFactory] = {}


class GatewayConfigurationError(RuntimeError):
    """No adapter is registered under the requested gateway name."""


def register(name: str, factory: GatewayFactory) -> None:
    key = name.strip().upper()
    if key in _factories:
        logger.info("gateway_registration_replaced name=%s", key)
    _factories[key] = factory


def unregister(name: str) -> None:
    _factories.pop(name.strip().upper(), None)


def registered_names() -> list[str]:
    return sorted(_factories)


def resolve(name: str | None) -> PaymentGateway:
    key = (name or "").strip().upper()
    factory = _factories.get(key)
    if factory is None:
        raise GatewayConfigurationError(f"Unsupported payment gateway: {name}")
    return factory()
