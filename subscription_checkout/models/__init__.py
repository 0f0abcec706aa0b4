from subscription_checkout.models.billing import (  # noqa: F401
    BillingEntity,
    BillingEntitySubscription,
    FeatureUsage,
    SubscriptionStatus,
)
from subscription_checkout.models.catalog import (  # noqa: F401
    PlanFeature,
    PlanPrice,
    Pricebook,
    SubscriptionPlan,
)
from subscription_checkout.models.checkout import (  # noqa: F401
    CheckoutStatus,
    HostedCheckout,
    PaymentStatus,
)
