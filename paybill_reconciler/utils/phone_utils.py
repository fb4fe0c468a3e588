"""Phone number normalization for payer account keys"""

from typing import Optional


def normalize_phone(phone: Optional[str], country_code: str = "254") -> Optional[str]:
    """
    Rewrite a phone number into the +<country><subscriber> form used as the
    payer account key.

    "0712 345 678"  -> "+254712345678"
    "254712345678"  -> "+254712345678"  (the form M-Pesa prints)
    "+254712345678" -> unchanged
    Anything else is returned without whitespace but otherwise untouched.
    """
    if not phone:
        return None
    cleaned = "".join(phone.split())
    if not cleaned:
        return None
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith("0"):
        return f"+{country_code}{cleaned[1:]}"
    if cleaned.startswith(country_code) and len(cleaned) == len(country_code) + 9:
        return f"+{cleaned}"
    return cleaned
