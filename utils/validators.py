"""
Input normalisation helpers shared by the services and route handlers
"""
import math
import re
from datetime import date, datetime
from typing import Optional

PHONE_STRIP_PATTERN = re.compile(r'[\s\-\(\)]')
PHONE_PATTERN = re.compile(r'^\d{10,}$')
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
SLASH_DATE_PATTERN = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')


def clean_phone_number(phone_number: Optional[str]) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""
    if not phone_number:
        return ''
    return PHONE_STRIP_PATTERN.sub('', str(phone_number))


def is_valid_phone_number(phone_number: Optional[str]) -> bool:
    """A cleaned phone number must be at least 10 digits."""
    return bool(PHONE_PATTERN.match(clean_phone_number(phone_number)))


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email and EMAIL_PATTERN.match(email.strip()))


def is_email_identifier(identifier: str) -> bool:
    return '@' in identifier


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Normalise a submitted date to ISO format.

    DD/MM/YYYY input is rewritten to YYYY-MM-DD (day first, also when the
    value is ambiguous). Anything else is returned trimmed and unchanged.
    """
    if value is None:
        return None
    value = value.strip()
    match = SLASH_DATE_PATTERN.match(value)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    return value


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD into a date, or None when the value is not a date."""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def parse_amount(value) -> Optional[float]:
    """
    Parse a submitted numeric field.

    Blank input counts as 0. Returns None when the value is not a finite,
    non-negative number.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def clean_optional_text(value) -> Optional[str]:
    """Trim a text field; blank values become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
