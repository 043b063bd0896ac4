"""Payment service - card payments, refunds and Stripe event handling"""

import logging
from datetime import datetime
from typing import Optional

import stripe
from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...audit_logger import log_request_event
from ...cache import invalidate_company_metrics
from ...config import FRONTEND_URL, STRIPE_PRICE_IDS
from ...email_service import EmailNotConfiguredError, send_payment_receipt
from ...models import Appointment, Company, Customer, TeamUser
from ...models_invoice import BillingInvoice, Invoice, Payment
from ...plan_limits import get_plan
from ...services.webhook_delivery import trigger_webhook
from ..invoices.service import InvoiceService, invoice_payload
from . import stripe_gateway

logger = logging.getLogger(__name__)

COMPLETABLE_STATUSES = ("pending", "processing", "failed")


def _require_stripe():
    if not stripe_gateway.stripe_active():
        raise HTTPException(status_code=503, detail="Payment processing is not configured")


class PaymentService:
    """Service layer for customer payments"""

    def __init__(self, db: Session):
        self.db = db
        self.invoices = InvoiceService(db)

    def get_payment(self, payment_id: int, company_id: int) -> Payment:
        payment = (
            self.db.query(Payment)
            .filter(Payment.id == payment_id, Payment.company_id == company_id)
            .first()
        )
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return payment

    def list_payments(self, company_id: int, customer_id: Optional[int] = None, status: Optional[str] = None):
        query = self.db.query(Payment).filter(Payment.company_id == company_id)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        if status:
            query = query.filter(Payment.status == status)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    # ------------------------------------------------------------------
    # Charging
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        company_id: int,
        customer_id: int,
        amount: float,
        invoice_id: Optional[int] = None,
        payment_method_id: Optional[str] = None,
        description: Optional[str] = None,
        actor_user_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> dict:
        """
        Charge a customer through a Stripe PaymentIntent.

        With a payment method the intent is confirmed right away; without one
        the client secret goes back to the browser to finish the payment.
        """
        if amount <= 0:
            raise HTTPException(status_code=400, detail="Payment amount must be greater than zero")
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.company_id == company_id)
            .first()
        )
        if not customer:
            raise HTTPException(status_code=404, detail="Customer not found")

        invoice = None
        if invoice_id:
            invoice = (
                self.db.query(Invoice)
                .filter(
                    Invoice.id == invoice_id,
                    Invoice.company_id == company_id,
                    Invoice.customer_id == customer.id,
                )
                .first()
            )
            if not invoice:
                raise HTTPException(status_code=404, detail="Invoice not found")
            if invoice.status in ("paid", "cancelled", "draft"):
                raise HTTPException(status_code=400, detail=f"Invoice is {invoice.status} and cannot be paid")
            if round(amount, 2) > round(invoice.balance_due, 2):
                raise HTTPException(status_code=400, detail="Payment amount exceeds invoice balance")

        _require_stripe()

        payment = Payment(
            company_id=company_id,
            customer_id=customer.id,
            invoice_id=invoice.id if invoice else None,
            appointment_id=invoice.appointment_id if invoice else None,
            amount=round(amount, 2),
            currency=stripe_gateway.STRIPE_CURRENCY.upper(),
            status="pending",
            payment_method="stripe",
            description=description or (f"Invoice {invoice.invoice_number}" if invoice else "Account payment"),
            payment_metadata={"source": "portal" if actor_user_id is None else "office"},
        )
        self.db.add(payment)
        self.db.flush()

        try:
            stripe_customer_id = stripe_gateway.ensure_stripe_customer(self.db, customer)
            intent = stripe_gateway.create_payment_intent(
                amount=payment.amount,
                stripe_customer_id=stripe_customer_id,
                metadata={
                    "payment_id": payment.id,
                    "invoice_id": payment.invoice_id,
                    "customer_id": customer.id,
                    "company_id": company_id,
                },
                description=payment.description,
                payment_method_id=payment_method_id,
            )
        except stripe.StripeError as e:
            payment.status = "failed"
            payment.failure_reason = stripe_gateway.describe_stripe_error(e)[:500]
            self.db.commit()
            logger.warning(f"⚠️ Stripe declined payment {payment.id}: {payment.failure_reason}")
            log_request_event(
                self.db,
                request,
                "payment.failed",
                company_id=company_id,
                user_id=actor_user_id,
                entity_type="payment",
                entity_id=payment.id,
                metadata={"reason": payment.failure_reason},
                success=False,
            )
            raise HTTPException(status_code=402, detail=payment.failure_reason) from e

        payment.stripe_payment_intent_id = intent.id
        payment.client_secret = getattr(intent, "client_secret", None)
        intent_status = getattr(intent, "status", "requires_payment_method")

        if intent_status == "succeeded":
            await self.complete_payment(payment, intent, request=request, actor_user_id=actor_user_id)
        elif intent_status == "processing":
            payment.status = "processing"
            self.db.commit()
        else:
            self.db.commit()
        self.db.refresh(payment)
        logger.info(f"💳 Payment {payment.id} for ${payment.amount} is {payment.status} ({intent_status})")

        return {
            "success": payment.status in ("completed", "processing", "pending"),
            "status": payment.status,
            "payment": payment,
            "client_secret": payment.client_secret if payment.status == "pending" else None,
            "requires_action": intent_status == "requires_action",
        }

    async def complete_payment(
        self,
        payment: Payment,
        intent=None,
        request: Optional[Request] = None,
        actor_user_id: Optional[int] = None,
    ) -> Payment:
        """Mark a payment completed and apply it; settled payments are left untouched"""
        if payment.status not in COMPLETABLE_STATUSES:
            logger.info(f"ℹ️ Payment {payment.id} already {payment.status}, skipping completion")
            return payment

        payment.status = "completed"
        payment.processed_at = datetime.utcnow()
        payment.processing_fee = stripe_gateway.processing_fee(payment.amount)
        payment.net_amount = round(payment.amount - payment.processing_fee, 2)
        if intent is not None:
            payment.receipt_url = stripe_gateway.receipt_url_for(intent)

        invoice = payment.invoice
        if invoice:
            self.invoices.apply_payment(invoice, payment.amount)
            if invoice.appointment_id and invoice.status == "paid":
                appointment = self.db.query(Appointment).filter(Appointment.id == invoice.appointment_id).first()
                if appointment:
                    appointment.payment_status = "paid"
        customer = payment.customer
        customer.balance = round((customer.balance or 0) - payment.amount, 2)
        self.db.commit()
        self.db.refresh(payment)

        log_request_event(
            self.db,
            request,
            "payment.completed",
            company_id=payment.company_id,
            user_id=actor_user_id,
            entity_type="payment",
            entity_id=payment.id,
            metadata={"amount": payment.amount, "invoice_id": payment.invoice_id},
        )
        if invoice and invoice.status == "paid":
            trigger_webhook(self.db, payment.company_id, "invoice.paid", invoice_payload(invoice))
        invalidate_company_metrics(payment.company_id)

        if customer.email:
            company = self.db.query(Company).filter(Company.id == payment.company_id).first()
            try:
                await send_payment_receipt(
                    to=customer.email,
                    customer_name=customer.display_name,
                    company_name=company.name,
                    amount=payment.amount,
                    invoice_number=invoice.invoice_number if invoice else None,
                    receipt_url=payment.receipt_url,
                )
            except EmailNotConfiguredError:
                logger.warning("⚠️ Email not configured, skipping payment receipt")
            except Exception as e:
                logger.error(f"❌ Receipt email failed for payment {payment.id}: {e}")
        return payment

    def refund_payment(
        self,
        payment_id: int,
        user: TeamUser,
        amount: Optional[float] = None,
        reason: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Payment:
        payment = self.get_payment(payment_id, user.company_id)
        if payment.status != "completed":
            raise HTTPException(status_code=400, detail="Only completed payments can be refunded")

        refundable = round(payment.amount - (payment.refund_amount or 0), 2)
        amount = round(amount if amount is not None else refundable, 2)
        if amount <= 0 or amount > refundable:
            raise HTTPException(
                status_code=400, detail=f"Refund amount exceeds refundable balance of ${refundable:.2f}"
            )
        _require_stripe()
        if not payment.stripe_payment_intent_id:
            raise HTTPException(status_code=400, detail="Payment has no Stripe charge to refund")

        try:
            refund = stripe.Refund.create(
                payment_intent=payment.stripe_payment_intent_id,
                amount=stripe_gateway.to_cents(amount),
                metadata={"payment_id": str(payment.id), "reason": (reason or "")[:200]},
            )
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe refund failed for payment {payment.id}: {e}")
            raise HTTPException(status_code=502, detail=stripe_gateway.describe_stripe_error(e)) from e

        payment.refund_amount = round((payment.refund_amount or 0) + amount, 2)
        payment.refund_reason = reason
        payment.refund_date = datetime.utcnow()
        if payment.refund_amount >= payment.amount:
            payment.status = "refunded"
        metadata = dict(payment.payment_metadata or {})
        metadata["refund_ids"] = [*metadata.get("refund_ids", []), getattr(refund, "id", None)]
        payment.payment_metadata = metadata

        if payment.invoice:
            self.invoices.reverse_payment(payment.invoice, amount)
        payment.customer.balance = round((payment.customer.balance or 0) + amount, 2)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"↩️ Refunded ${amount} of payment {payment.id}")

        log_request_event(
            self.db,
            request,
            "payment.refunded",
            company_id=user.company_id,
            user_id=user.id,
            entity_type="payment",
            entity_id=payment.id,
            metadata={"amount": amount, "reason": reason},
        )
        invalidate_company_metrics(user.company_id)
        return payment

    # ------------------------------------------------------------------
    # Subscription checkout
    # ------------------------------------------------------------------

    def create_checkout_session(self, plan: str, user: TeamUser) -> dict:
        _require_stripe()
        price_id = STRIPE_PRICE_IDS.get(plan)
        if not price_id:
            raise HTTPException(status_code=400, detail="Plan is not available for purchase")
        company = self.db.query(Company).filter(Company.id == user.company_id).first()

        params = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "client_reference_id": str(company.id),
            "metadata": {"company_id": str(company.id), "plan": plan},
            "subscription_data": {"metadata": {"company_id": str(company.id), "plan": plan}},
            "success_url": f"{FRONTEND_URL}/team-portal/billing?checkout=success",
            "cancel_url": f"{FRONTEND_URL}/team-portal/billing?checkout=cancelled",
        }
        if company.stripe_customer_id:
            params["customer"] = company.stripe_customer_id
        else:
            params["customer_email"] = company.email

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error(f"❌ Checkout session failed for company {company.id}: {e}")
            raise HTTPException(status_code=502, detail=stripe_gateway.describe_stripe_error(e)) from e

        logger.info(f"🛒 Checkout session {session.id} for company {company.id} ({plan})")
        return {"session_id": session.id, "url": session.url}


class StripeEventHandler:
    """Applies verified Stripe webhook events to local state"""

    def __init__(self, db: Session):
        self.db = db
        self.payments = PaymentService(db)
        self.handlers = {
            "payment_intent.succeeded": self.payment_intent_succeeded,
            "payment_intent.payment_failed": self.payment_intent_failed,
            "checkout.session.completed": self.checkout_completed,
            "customer.subscription.created": self.subscription_changed,
            "customer.subscription.updated": self.subscription_changed,
            "customer.subscription.deleted": self.subscription_deleted,
            "invoice.payment_succeeded": self.billing_invoice_paid,
            "invoice.payment_failed": self.billing_invoice_failed,
        }

    async def handle(self, event) -> bool:
        handler = self.handlers.get(event["type"])
        if not handler:
            logger.debug(f"Unhandled Stripe event type {event['type']}")
            return False
        await handler(event["data"]["object"])
        return True

    def _payment_for_intent(self, intent) -> Optional[Payment]:
        payment = self.db.query(Payment).filter(Payment.stripe_payment_intent_id == intent["id"]).first()
        if payment:
            return payment
        payment_id = (intent.get("metadata") or {}).get("payment_id")
        if payment_id:
            return self.db.query(Payment).filter(Payment.id == int(payment_id)).first()
        return None

    def _company_for(self, obj) -> Optional[Company]:
        metadata = obj.get("metadata") or {}
        company_id = metadata.get("company_id") or obj.get("client_reference_id")
        if company_id:
            company = self.db.query(Company).filter(Company.id == int(company_id)).first()
            if company:
                return company
        customer_id = obj.get("customer")
        if customer_id:
            return self.db.query(Company).filter(Company.stripe_customer_id == customer_id).first()
        return None

    async def payment_intent_succeeded(self, intent):
        payment = self._payment_for_intent(intent)
        if not payment:
            logger.warning(f"⚠️ No local payment for intent {intent['id']}")
            return
        if payment.status not in COMPLETABLE_STATUSES:
            return
        payment.stripe_payment_intent_id = intent["id"]
        await self.payments.complete_payment(payment)

    async def payment_intent_failed(self, intent):
        payment = self._payment_for_intent(intent)
        if not payment or payment.status not in COMPLETABLE_STATUSES:
            return
        error = intent.get("last_payment_error") or {}
        payment.status = "failed"
        payment.failure_reason = (error.get("message") or "Payment failed")[:500]
        if payment.appointment_id:
            appointment = self.db.query(Appointment).filter(Appointment.id == payment.appointment_id).first()
            if appointment:
                appointment.payment_status = "failed"
        self.db.commit()
        logger.warning(f"⚠️ Payment {payment.id} failed: {payment.failure_reason}")

    async def checkout_completed(self, session):
        if session.get("mode") != "subscription":
            return
        company = self._company_for(session)
        if not company:
            logger.warning(f"⚠️ Checkout {session.get('id')} has no matching company")
            return
        plan_key = (session.get("metadata") or {}).get("plan") or company.plan
        company.stripe_customer_id = session.get("customer") or company.stripe_customer_id
        company.stripe_subscription_id = session.get("subscription") or company.stripe_subscription_id
        company.subscription_status = "active"
        company.plan = plan_key
        company.max_users = get_plan(plan_key)["max_users"]
        self.db.commit()
        invalidate_company_metrics(company.id)
        logger.info(f"✅ Company {company.id} subscribed to {plan_key}")

    async def subscription_changed(self, subscription):
        company = self._company_for(subscription)
        if not company:
            return
        plan_key = (subscription.get("metadata") or {}).get("plan") or company.plan
        company.stripe_subscription_id = subscription.get("id")
        company.subscription_status = subscription.get("status") or company.subscription_status
        company.plan = plan_key
        company.max_users = get_plan(plan_key)["max_users"]
        self.db.commit()
        trigger_webhook(
            self.db,
            company.id,
            "subscription.updated",
            {"plan": company.plan, "status": company.subscription_status},
        )

    async def subscription_deleted(self, subscription):
        company = self._company_for(subscription)
        if not company:
            return
        company.subscription_status = "canceled"
        self.db.commit()
        trigger_webhook(
            self.db, company.id, "subscription.updated", {"plan": company.plan, "status": "canceled"}
        )
        logger.info(f"🛑 Subscription canceled for company {company.id}")

    async def billing_invoice_paid(self, stripe_invoice):
        company = self._company_for(stripe_invoice)
        if not company:
            return
        exists = (
            self.db.query(BillingInvoice)
            .filter(BillingInvoice.stripe_invoice_id == stripe_invoice["id"])
            .first()
        )
        if not exists:
            self.db.add(
                BillingInvoice(
                    company_id=company.id,
                    stripe_invoice_id=stripe_invoice["id"],
                    amount=stripe_gateway.from_cents(stripe_invoice.get("amount_paid")),
                    status="paid",
                    description=stripe_invoice.get("description") or f"{company.plan} plan",
                    paid_at=datetime.utcnow(),
                )
            )
        if company.subscription_status == "past_due":
            company.subscription_status = "active"
        self.db.commit()

    async def billing_invoice_failed(self, stripe_invoice):
        company = self._company_for(stripe_invoice)
        if not company:
            return
        company.subscription_status = "past_due"
        self.db.commit()
        logger.warning(f"⚠️ Subscription payment failed for company {company.id}")
