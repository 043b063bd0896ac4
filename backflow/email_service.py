"""
Email service using Resend
Templates are written in MJML and compiled to HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from .email_templates import (
    appointment_confirmation_template,
    appointment_rescheduled_template,
    district_submission_template,
    invoice_template,
    payment_receipt_template,
    payment_reminder_template,
    team_invitation_template,
    test_due_reminder_template,
    test_result_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfiguredError(Exception):
    """Raised when no email provider is configured"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise


def sender_for(company_name: Optional[str] = None) -> str:
    """Send as the testing company while keeping the verified address"""
    if not company_name:
        return EMAIL_FROM_ADDRESS
    address = EMAIL_FROM_ADDRESS.split("<")[-1].rstrip(">").strip()
    return f"{company_name} <{address}>"


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
    attachments: Optional[list[dict]] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address
        reply_to: Optional reply-to address (usually the company email)
        attachments: Optional list of {"filename", "content": bytes}

    Returns:
        Resend response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailNotConfiguredError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": compile_mjml_to_html(mjml_content),
    }
    if reply_to:
        email_data["reply_to"] = reply_to
    if attachments:
        email_data["attachments"] = [
            {"filename": a["filename"], "content": list(a["content"])} for a in attachments
        ]

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise


# ============================================
# Pre-built emails for common events
# ============================================


async def send_appointment_confirmation(
    to: str,
    customer_name: str,
    company_name: str,
    date_label: str,
    time_label: str,
    service_type: str,
    device_label: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> dict:
    mjml_content = appointment_confirmation_template(
        customer_name, company_name, date_label, time_label, service_type, device_label
    )
    return await send_email(
        to=to,
        subject=f"Appointment Confirmed - {date_label} at {time_label}",
        mjml_content=mjml_content,
        from_address=sender_for(company_name),
        reply_to=reply_to,
    )


async def send_appointment_rescheduled(
    to: str,
    customer_name: str,
    company_name: str,
    old_label: str,
    new_label: str,
    reason: Optional[str] = None,
) -> dict:
    return await send_email(
        to=to,
        subject="Your appointment has been rescheduled",
        mjml_content=appointment_rescheduled_template(
            customer_name, company_name, old_label, new_label, reason
        ),
        from_address=sender_for(company_name),
    )


async def send_test_result_email(
    to: str,
    customer_name: str,
    company_name: str,
    device_label: str,
    test_date: str,
    status: str,
    certification_number: Optional[str] = None,
    next_test_date: Optional[str] = None,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Backflow Test Results - {status}",
        mjml_content=test_result_template(
            customer_name,
            company_name,
            device_label,
            test_date,
            status,
            certification_number,
            next_test_date,
        ),
        from_address=sender_for(company_name),
    )


def payment_link(invoice_public_id: str) -> str:
    return f"{FRONTEND_URL}/pay/{invoice_public_id}"


async def send_invoice_email(
    to: str,
    customer_name: str,
    company_name: str,
    invoice_number: str,
    amount: float,
    due_date: str,
    invoice_public_id: str,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Invoice {invoice_number} from {company_name}",
        mjml_content=invoice_template(
            customer_name,
            company_name,
            invoice_number,
            amount,
            due_date,
            payment_link(invoice_public_id),
        ),
        from_address=sender_for(company_name),
    )


async def send_payment_reminder(
    to: str,
    customer_name: str,
    company_name: str,
    invoice_number: str,
    balance_due: float,
    days_overdue: int,
    invoice_public_id: str,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Payment Reminder - Invoice {invoice_number} ({days_overdue} days overdue)",
        mjml_content=payment_reminder_template(
            customer_name,
            company_name,
            invoice_number,
            balance_due,
            days_overdue,
            payment_link(invoice_public_id),
        ),
        from_address=sender_for(company_name),
    )


async def send_payment_receipt(
    to: str,
    customer_name: str,
    company_name: str,
    amount: float,
    invoice_number: Optional[str] = None,
    receipt_url: Optional[str] = None,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Payment received - ${amount:,.2f}",
        mjml_content=payment_receipt_template(
            customer_name, company_name, amount, invoice_number, receipt_url
        ),
        from_address=sender_for(company_name),
    )


async def send_team_invitation(
    to: str, company_name: str, inviter_name: str, role: str, token: str
) -> dict:
    accept_url = f"{FRONTEND_URL}/team-portal/accept-invite?token={token}"
    return await send_email(
        to=to,
        subject=f"Join {company_name} on Backflow Buddy",
        mjml_content=team_invitation_template(company_name, inviter_name, role, accept_url),
    )


async def send_test_due_reminder(
    to: str,
    customer_name: str,
    company_name: str,
    device_label: str,
    due_date: str,
    days_until: int,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Your backflow test is due {due_date}",
        mjml_content=test_due_reminder_template(
            customer_name, company_name, device_label, due_date, days_until
        ),
        from_address=sender_for(company_name),
    )


async def send_district_submission(
    to: str,
    company_name: str,
    customer_name: str,
    device_label: str,
    test_date: str,
    status: str,
    pdf_bytes: bytes,
    filename: str,
    reply_to: Optional[str] = None,
) -> dict:
    return await send_email(
        to=to,
        subject=f"Backflow Test Report - {customer_name} - {test_date}",
        mjml_content=district_submission_template(
            company_name, customer_name, device_label, test_date, status
        ),
        from_address=sender_for(company_name),
        reply_to=reply_to,
        attachments=[{"filename": filename, "content": pdf_bytes}],
    )
