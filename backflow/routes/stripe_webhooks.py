"""Inbound Stripe webhooks"""

import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from ..config import STRIPE_WEBHOOK_SECRET
from ..database import get_db
from ..domain.payments.service import StripeEventHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Stripe Webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """Verify the Stripe signature and apply the event"""
    if not STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Stripe webhooks are not configured")
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.warning(f"⚠️ Invalid Stripe payload: {e}")
        raise HTTPException(status_code=400, detail="Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning(f"🚫 Stripe signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    logger.info(f"📥 Stripe event {event['id']} ({event['type']})")
    try:
        handled = await StripeEventHandler(db).handle(event)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error handling Stripe event {event['id']}: {e}")
        raise HTTPException(status_code=500, detail="Webhook handler failed") from e

    return {"received": True, "handled": handled}
