"""
MJML Email Templates
Customer and team notifications rendered through one branded wrapper
"""

from typing import Optional

THEME = {
    "primary": "#0ea5e9",
    "primary_dark": "#0369a1",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#dc2626",
}

STATUS_COLORS = {
    "Passed": THEME["success"],
    "Failed": THEME["danger"],
    "Needs Repair": THEME["warning"],
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    company_name: str = "Backflow Buddy",
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px 0 20px">
          <mj-column>
            <mj-text font-size="20px" font-weight="700" color="{THEME['primary_dark']}">
              {company_name}
            </mj-text>
            <mj-divider border-color="{THEME['border']}" border-width="1px" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 40px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8">
              {company_name} - backflow testing and certification
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def appointment_confirmation_template(
    customer_name: str,
    company_name: str,
    date_label: str,
    time_label: str,
    service_type: str,
    device_label: Optional[str] = None,
) -> str:
    device_line = f"<br/>Device: {device_label}" if device_label else ""
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Your backflow test with <strong>{company_name}</strong> is booked.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Service: {service_type}<br/>
      Date: {date_label}<br/>
      Time: {time_label}{device_line}
    </mj-text>
    <mj-text>Please make sure the technician can reach the assembly and the water meter.</mj-text>
    """
    return get_base_template(
        title="Appointment Confirmed",
        preview_text=f"Backflow test on {date_label} at {time_label}",
        content_sections=content,
        company_name=company_name,
    )


def appointment_rescheduled_template(
    customer_name: str,
    company_name: str,
    old_label: str,
    new_label: str,
    reason: Optional[str] = None,
) -> str:
    reason_line = f"<mj-text>Reason: {reason}</mj-text>" if reason else ""
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Your appointment has moved.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Previously: {old_label}<br/>
      Now: <strong>{new_label}</strong>
    </mj-text>
    {reason_line}
    """
    return get_base_template(
        title="Appointment Rescheduled",
        preview_text=f"New appointment time: {new_label}",
        content_sections=content,
        company_name=company_name,
    )


def test_result_template(
    customer_name: str,
    company_name: str,
    device_label: str,
    test_date: str,
    status: str,
    certification_number: Optional[str] = None,
    next_test_date: Optional[str] = None,
) -> str:
    color = STATUS_COLORS.get(status, THEME["text_primary"])
    if status == "Passed":
        details = f"Certification number: <strong>{certification_number}</strong>"
        if next_test_date:
            details += f"<br/>Next test due: {next_test_date}"
    else:
        details = "Your assembly needs attention. We will contact you to schedule the repair and a retest."

    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>The annual test of your backflow assembly ({device_label}) on {test_date} is complete.</mj-text>
    <mj-text align="center" font-size="28px" font-weight="700" color="{color}" padding="16px 0">
      {status}
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">{details}</mj-text>
    """
    return get_base_template(
        title="Backflow Test Results",
        preview_text=f"Test result: {status}",
        content_sections=content,
        company_name=company_name,
    )


def invoice_template(
    customer_name: str,
    company_name: str,
    invoice_number: str,
    amount: float,
    due_date: str,
    payment_url: str = "",
) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Your invoice from <strong>{company_name}</strong> is ready.</mj-text>
    <mj-text align="center" font-size="32px" font-weight="700" color="{THEME['text_primary']}" padding="20px 0">
      ${amount:,.2f}
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Invoice: {invoice_number}<br/>Due Date: {due_date}
    </mj-text>
    """
    return get_base_template(
        title="Invoice Ready",
        preview_text=f"Invoice {invoice_number}",
        content_sections=content,
        company_name=company_name,
        cta_url=payment_url or None,
        cta_label="Pay Invoice" if payment_url else None,
    )


def payment_reminder_template(
    customer_name: str,
    company_name: str,
    invoice_number: str,
    balance_due: float,
    days_overdue: int,
    payment_url: str = "",
) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>
      Invoice {invoice_number} is <strong>{days_overdue} days overdue</strong>
      with a remaining balance of ${balance_due:,.2f}.
    </mj-text>
    <mj-text>If you have already paid, please disregard this reminder.</mj-text>
    """
    return get_base_template(
        title="Payment Reminder",
        preview_text=f"Invoice {invoice_number} ({days_overdue} days overdue)",
        content_sections=content,
        company_name=company_name,
        cta_url=payment_url or None,
        cta_label="Pay Now" if payment_url else None,
    )


def payment_receipt_template(
    customer_name: str,
    company_name: str,
    amount: float,
    invoice_number: Optional[str] = None,
    receipt_url: Optional[str] = None,
) -> str:
    invoice_line = f"<br/>Invoice: {invoice_number}" if invoice_number else ""
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Thank you, we received your payment.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Amount: ${amount:,.2f}{invoice_line}
    </mj-text>
    """
    return get_base_template(
        title="Payment Received",
        preview_text=f"Payment of ${amount:,.2f} received",
        content_sections=content,
        company_name=company_name,
        cta_url=receipt_url,
        cta_label="View Receipt" if receipt_url else None,
    )


def team_invitation_template(company_name: str, inviter_name: str, role: str, accept_url: str) -> str:
    content = f"""
    <mj-text>{inviter_name} invited you to join <strong>{company_name}</strong> as a {role}.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">This invitation expires in 7 days.</mj-text>
    """
    return get_base_template(
        title="You're invited",
        preview_text=f"Join {company_name}",
        content_sections=content,
        company_name=company_name,
        cta_url=accept_url,
        cta_label="Accept Invitation",
    )


def test_due_reminder_template(
    customer_name: str, company_name: str, device_label: str, due_date: str, days_until: int
) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>
      The annual test for your backflow assembly ({device_label}) is due on
      <strong>{due_date}</strong>, {days_until} days from now.
    </mj-text>
    <mj-text>Reply to this email or call us to book a time.</mj-text>
    """
    return get_base_template(
        title="Backflow Test Due",
        preview_text=f"Test due {due_date}",
        content_sections=content,
        company_name=company_name,
    )


def district_submission_template(
    company_name: str, customer_name: str, device_label: str, test_date: str, status: str
) -> str:
    content = f"""
    <mj-text>Please find attached the backflow assembly test report submitted by {company_name}.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      Customer: {customer_name}<br/>
      Assembly: {device_label}<br/>
      Test date: {test_date}<br/>
      Result: {status}
    </mj-text>
    """
    return get_base_template(
        title="Backflow Test Report Submission",
        preview_text=f"Test report for {customer_name}",
        content_sections=content,
        company_name=company_name,
    )
