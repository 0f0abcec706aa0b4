from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from subscription_checkout.models.checkout import CheckoutStatus, PaymentStatus
from subscription_checkout.schemas.catalog import PlanView


class CustomerDetails(BaseModel):
    display_name: str | None = Field(default=None, max_length=200)
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=40)
    mobile: str | None = Field(default=None, max_length=40)
    company_name: str | None = Field(default=None, max_length=200)
    website: str | None = Field(default=None, max_length=255)


class AddressDetails(BaseModel):
    attention: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    state_code: str | None = Field(default=None, max_length=10)
    zip: str | None = Field(default=None, max_length=20)
    country: str | None = None
    fax: str | None = None


class GstDetails(BaseModel):
    gst_no: str | None = Field(default=None, max_length=20)
    gst_state_code: str | None = Field(default=None, max_length=10)


class HostedPageCreate(BaseModel):
    # Blank values are rejected by the service with a 400 so the message
    # names the offending field.
    tenant_id: str = ""
    billing_id: str = ""
    plan_code: str = ""
    currency: str = ""
    gateway: str | None = None
    redirect_url: str | None = Field(default=None, max_length=500)
    customer: CustomerDetails | None = None
    billing_address: AddressDetails | None = None
    shipping_address: AddressDetails | None = None
    gst: GstDetails | None = None
    # Existing provider customer; when set the payload references it instead
    # of sending a customer block.
    is_zoho_linked: bool = False
    zoho_customer_id: str | None = Field(default=None, max_length=80)


class HostedPageResponse(BaseModel):
    order_id: str
    gateway: str
    hostedpage_id: str | None = None
    url: str | None = None
    status: str | None = None
    expiring_time: datetime | None = None


class HostedCheckoutRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: str
    gateway: str
    tenant_id: str
    billing_id: str
    plan_code: str
    currency: str
    pricebook_id: str | None = None
    status: CheckoutStatus
    redirect_url: str | None = None
    provider_hostedpage_id: str | None = None
    provider_decrypted_hostedpage_id: str | None = None
    provider_status: str | None = None
    hosted_url: str | None = None
    expiring_time: datetime | None = None
    zoho_subscription_id: str | None = None
    created_at: datetime
    updated_at: datetime


class PaymentStatusRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=64)
    gateway: str | None = None


class PaymentStatusResponse(BaseModel):
    order_id: str
    gateway: str
    status: PaymentStatus
    provider_status_raw: str | None = None
    hosted_url: str | None = None
    expiring_time: datetime | None = None
    message: str | None = None
    plan: PlanView | None = None
    subscription_id: UUID | None = None
    subscription_status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    purchase_date: datetime | None = None
    paid_plan: bool | None = None
    zoho_subscription_id: str | None = None


class WebhookResult(BaseModel):
    accepted: bool
    message: str
    order_id: str | None = None
    provider: str | None = None
    normalized_status: PaymentStatus | None = None
