"""
Thin wrapper over the Stripe SDK

Amounts are dollars everywhere in the app and cents only at this boundary.
"""

import logging
from typing import Optional

import stripe
from sqlalchemy.orm import Session

from ...config import STRIPE_CURRENCY, STRIPE_SECRET_KEY
from ...models import Customer

logger = logging.getLogger(__name__)

stripe.api_key = STRIPE_SECRET_KEY

PROCESSING_FEE_RATE = 0.029
PROCESSING_FEE_FIXED = 0.30


def stripe_active() -> bool:
    return bool(stripe.api_key)


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def from_cents(amount_cents: Optional[int]) -> float:
    return round((amount_cents or 0) / 100, 2)


def processing_fee(amount: float) -> float:
    """Card processing fee: 2.9% + $0.30"""
    return round(amount * PROCESSING_FEE_RATE + PROCESSING_FEE_FIXED, 2)


def describe_stripe_error(error: stripe.StripeError) -> str:
    return getattr(error, "user_message", None) or str(error) or "Payment provider error"


def ensure_stripe_customer(db: Session, customer: Customer) -> str:
    """Return the customer's Stripe id, creating the Stripe customer on first use"""
    if customer.stripe_customer_id:
        return customer.stripe_customer_id

    stripe_customer = stripe.Customer.create(
        name=customer.display_name,
        email=customer.email,
        phone=customer.phone,
        metadata={
            "customer_id": str(customer.id),
            "company_id": str(customer.company_id),
            "account_number": customer.account_number,
        },
    )
    customer.stripe_customer_id = stripe_customer.id
    db.flush()
    logger.info(f"💳 Stripe customer {stripe_customer.id} created for {customer.account_number}")
    return stripe_customer.id


def create_payment_intent(
    amount: float,
    stripe_customer_id: str,
    metadata: dict,
    description: Optional[str] = None,
    payment_method_id: Optional[str] = None,
):
    """Confirm immediately when a payment method is supplied, otherwise leave it for the browser"""
    params = {
        "amount": to_cents(amount),
        "currency": STRIPE_CURRENCY,
        "customer": stripe_customer_id,
        "metadata": {k: str(v) for k, v in metadata.items() if v is not None},
        "description": (description or "")[:220] or None,
        "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
    }
    if payment_method_id:
        params["payment_method"] = payment_method_id
        params["confirm"] = True
    return stripe.PaymentIntent.create(**{k: v for k, v in params.items() if v is not None})


def receipt_url_for(intent) -> Optional[str]:
    charge = getattr(intent, "latest_charge", None)
    if charge is None or isinstance(charge, str):
        return None
    return getattr(charge, "receipt_url", None)
