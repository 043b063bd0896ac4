"""
Twilio SMS Service
Sends appointment notifications through the Twilio REST API
"""

import logging
import re
from typing import Optional

import httpx

from ..config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_FROM_NUMBER,
    TWILIO_MESSAGING_SERVICE_SID,
)

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(
        TWILIO_ACCOUNT_SID
        and TWILIO_AUTH_TOKEN
        and (TWILIO_FROM_NUMBER or TWILIO_MESSAGING_SERVICE_SID)
    )


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Convert a North American number to E.164, None when it cannot be"""
    if not phone:
        return None
    if phone.startswith("+"):
        digits = re.sub(r"\D", "", phone)
        return f"+{digits}" if 8 <= len(digits) <= 15 else None
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


async def send_sms(to_phone: Optional[str], message_body: str) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not is_configured():
        logger.debug("Twilio not configured, skipping SMS")
        return False, "Twilio not configured"

    e164 = normalize_phone(to_phone)
    if not e164:
        logger.warning(f"Phone number not convertible to E.164: {to_phone}")
        return False, "Phone number must be in E.164 format (e.g., +12535551234)"

    data = {"To": e164, "Body": message_body}
    if TWILIO_MESSAGING_SERVICE_SID:
        data["MessagingServiceSid"] = TWILIO_MESSAGING_SERVICE_SID
    else:
        data["From"] = TWILIO_FROM_NUMBER

    try:
        logger.info(f"🚀 Sending SMS to Twilio API for {e164}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
                auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
                data=data,
                timeout=10.0,
            )

        if response.status_code in [200, 201]:
            logger.info(f"✅ SMS sent: {response.json().get('sid')}")
            return True, None

        error = response.json().get("message", response.text) if response.content else response.text
        logger.error(f"❌ Twilio API error {response.status_code}: {error}")
        return False, f"Twilio error: {error}"
    except Exception as e:
        logger.error(f"❌ Failed to send SMS to {e164}: {str(e)}")
        return False, str(e)


def appointment_confirmation_sms(company_name: str, date_label: str, time_label: str) -> str:
    return (
        f"{company_name}: your backflow test is booked for {date_label} at {time_label}. "
        "Reply STOP to opt out."
    )
