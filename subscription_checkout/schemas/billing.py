from __future__ import annotations

import enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BillingDetailsState(enum.Enum):
    not_found = "NOT_FOUND"
    incomplete_profile = "INCOMPLETE_PROFILE"
    complete = "COMPLETE"


class BillingEntityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    billing_id: str
    name: str | None = None
    fname: str | None = None
    lname: str | None = None
    email: str | None = None
    mobile: str | None = None
    billing_address: str | None = None
    city: str | None = None
    country: str | None = None
    state_name: str | None = None
    state_code: str | None = None
    gst_number: str | None = None
    gst_state_code: str | None = None
    pricebook_id: str | None = None
    zoho_customer_id: str | None = None
    is_zoho_linked: bool = False
    has_complete_billing_profile: bool = False


class BillingDetailsResponse(BaseModel):
    tenant_id: str
    billing_id: str
    state: BillingDetailsState
    message: str
    profile: BillingEntityRead | None = None
