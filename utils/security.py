"""
Security utilities for data sanitization and protection
"""
import re
from typing import Any, List


def mask_phone(phone: Any) -> str:
    """Mask phone number for privacy, keeping the last four digits"""
    if not phone:
        return 'none'
    digits = re.sub(r'\D', '', str(phone))
    if len(digits) >= 4:
        return f"***-***-{digits[-4:]}"
    return "*" * len(str(phone))


def mask_email(email: Any) -> str:
    """Mask email address for privacy"""
    if not email:
        return 'none'
    try:
        local, domain = str(email).split('@')
    except ValueError:
        return str(email)
    if len(local) <= 2:
        masked_local = '*' * len(local)
    else:
        masked_local = local[0] + '*' * (len(local) - 2) + local[-1]
    return f"{masked_local}@{domain}"


def mask_identifier(identifier: Any) -> str:
    if identifier and '@' in str(identifier):
        return mask_email(identifier)
    return mask_phone(identifier)


class CSVSanitizer:
    """Handles CSV injection protection"""

    INJECTION_PREFIXES = ['=', '+', '-', '@', '\t', '\r']

    @classmethod
    def sanitize_csv_cell(cls, value: Any) -> str:
        """
        Sanitize a single CSV cell to prevent formula injection.
        Quoting is left to the csv writer.
        """
        if value is None:
            return ""

        str_value = str(value)

        if str_value and str_value[0] in cls.INJECTION_PREFIXES:
            # Prefix with single quote to neutralize formula injection
            return f"'{str_value}"

        return str_value

    @classmethod
    def sanitize_csv_row(cls, row: List[Any]) -> List[str]:
        """Sanitize an entire CSV row"""
        return [cls.sanitize_csv_cell(cell) for cell in row]
