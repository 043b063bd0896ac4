"""Shared validation utilities"""

import re
from datetime import date, datetime
from typing import Optional

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]
    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")
    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """Lower-case and check the address shape, raises ValueError when invalid"""
    if not email:
        return email

    email = email.strip().lower()
    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Invalid email format")
    return email


def validate_zip(zip_code: Optional[str]) -> Optional[str]:
    if not zip_code:
        return zip_code
    zip_code = zip_code.strip()
    if not re.match(r"^\d{5}(-\d{4})?$", zip_code):
        raise ValueError("ZIP code must be 5 digits or ZIP+4")
    return zip_code


def parse_iso_date(value: Optional[str], field: str = "date") -> Optional[date]:
    """Parse YYYY-MM-DD, raises ValueError naming the field"""
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError as e:
        raise ValueError(f"Invalid {field}, expected YYYY-MM-DD") from e
