from subscription_checkout.gateways import registry
from subscription_checkout.gateways.base import (  # noqa: F401
    GatewayError,
    HostedPageResult,
    HostedPageStatusResult,
    PaymentGateway,
)
from subscription_checkout.gateways.registry import (  # noqa: F401
    GatewayConfigurationError,
    resolve,
)
from subscription_checkout.gateways.zoho import GATEWAY_NAME, ZohoBillingGateway

registry.register(GATEWAY_NAME, ZohoBillingGateway)
