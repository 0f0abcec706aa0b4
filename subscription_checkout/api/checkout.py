from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from subscription_checkout.db import get_db
from subscription_checkout.schemas.billing import BillingDetailsResponse
from subscription_checkout.schemas.checkout import (
    HostedCheckoutRead,
    HostedPageCreate,
    HostedPageResponse,
    PaymentStatusRequest,
    PaymentStatusResponse,
)
from subscription_checkout.schemas.transactions import TransactionPage
from subscription_checkout.services import billing_profiles as billing_profiles_service
from subscription_checkout.services import checkout as checkout_service
from subscription_checkout.services import transactions as transactions_service

router = APIRouter()


@router.get(
    "/checkout/billing-details",
    response_model=BillingDetailsResponse,
    tags=["checkout"],
)
def get_billing_details(
    tenant_id: str = Query(min_length=1),
    billing_id: str = Query(min_length=1),
    db: Session = Depends(get_db),
):
    return billing_profiles_service.billing_profiles.get_billing_details(
        db, tenant_id, billing_id
    )


@router.post(
    "/checkout/hosted-page",
    response_model=HostedPageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["checkout"],
)
def create_hosted_page(payload: HostedPageCreate, db: Session = Depends(get_db)):
    return checkout_service.checkout_sessions.create_session(db, payload)


@router.post(
    "/checkout/payment-status",
    response_model=PaymentStatusResponse,
    tags=["checkout"],
)
def check_payment_status(payload: PaymentStatusRequest, db: Session = Depends(get_db)):
    return checkout_service.checkout_sessions.check_payment_status(db, payload)


@router.post(
    "/checkout/payment-status/local",
    response_model=PaymentStatusResponse,
    tags=["checkout"],
)
def check_payment_status_local(payload: PaymentStatusRequest, db: Session = Depends(get_db)):
    return checkout_service.checkout_sessions.check_payment_status_local(db, payload)


@router.get(
    "/checkout/{order_id}",
    response_model=HostedCheckoutRead,
    tags=["checkout"],
)
def get_checkout(order_id: str, db: Session = Depends(get_db)):
    return checkout_service.checkout_sessions.get_session(db, order_id)


@router.get(
    "/transactions",
    response_model=TransactionPage,
    tags=["transactions"],
)
def list_transactions(
    tenant_id: str = Query(min_length=1),
    billing_id: str = Query(min_length=1),
    page: int = Query(default=0),
    size: int = Query(default=transactions_service.DEFAULT_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    return transactions_service.transactions.list_transactions(
        db, tenant_id, billing_id, page, size
    )
