"""Date helpers shared across scheduling and billing"""

import calendar
from datetime import date


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamping the day to the target month's length"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def format_date_label(value: date) -> str:
    """e.g. Monday, March 3, 2025"""
    return f"{value.strftime('%A, %B')} {value.day}, {value.year}"


def format_time_label(value: str) -> str:
    """'14:30:00' -> '2:30 PM'"""
    hour, minute = (int(p) for p in value.split(":")[:2])
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"
