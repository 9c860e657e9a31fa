"""
Field-level normalization for checkout contact and address details.
"""
import re
from typing import Optional

from storefront.config import Config
from storefront.exceptions import ValidationError

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str, country_code: Optional[str] = None) -> str:
    """
    Reduce a mobile number to its 10 national digits.

    A leading country code is stripped only when the remaining digits are
    exactly 10 long ("+91 98765 43210" -> "9876543210").

    Raises:
        ValidationError: If the number is not reducible to exactly 10 digits
    """
    country_code = Config.PHONE_COUNTRY_CODE if country_code is None else country_code
    digits = _NON_DIGITS.sub("", raw or "")

    if country_code and len(digits) == 10 + len(country_code) and digits.startswith(country_code):
        digits = digits[len(country_code):]

    if len(digits) != 10:
        raise ValidationError("Invalid phone format - must be exactly 10 digits", field="customer.phone")
    return digits


def normalize_pincode(raw: str) -> str:
    """Strip separators from a postal code and require exactly 6 digits"""
    cleaned = _NON_DIGITS.sub("", raw or "")
    if len(cleaned) != 6:
        raise ValidationError("Invalid pincode format - must be exactly 6 digits", field="address.pincode")
    return cleaned


def require_address_line(value: Optional[str]) -> str:
    if not value or not value.strip():
        raise ValidationError("Shipping address line 1 is required", field="address.line1")
    return value.strip()
