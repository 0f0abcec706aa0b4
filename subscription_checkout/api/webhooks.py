from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from subscription_checkout.db import get_db
from subscription_checkout.schemas.checkout import WebhookResult
from subscription_checkout.services import webhooks as webhooks_service

router = APIRouter()


@router.post(
    "/checkout/webhook",
    response_model=WebhookResult,
    tags=["checkout-webhooks"],
)
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    """Provider callback; rejections are reported in the body, always with HTTP 200."""
    body = await request.body()
    return webhooks_service.webhook_reconciler.process_payment_webhook(
        db, request.headers, body
    )
