"""
PII (Personally Identifiable Information) masking for log context.
"""
import re
from typing import Any


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
PHONE_RE = re.compile(r"^[\d\s\+\-\(\)]{6,}$")

PII_FIELDS = {
    "email", "customer_email", "phone", "name", "first_name", "last_name",
    "customer_id", "user_id", "gifted_by",
}


def mask_email(email: str) -> str:
    """Mask email address, keeping the first two characters and the domain."""
    local, _, domain = email.partition("@")
    if len(local) <= 2:
        return f"**@{domain}"
    return f"{local[:2]}{'*' * (len(local) - 2)}@{domain}"


def mask_phone(phone: str) -> str:
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_identifier(value: str) -> str:
    """Keep the first 8 characters of a long identifier."""
    if len(value) <= 10:
        return value
    return value[:8] + "*" * 4


def mask_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if EMAIL_RE.match(value):
        return mask_email(value)
    if key not in PII_FIELDS:
        return value
    if PHONE_RE.match(value):
        return mask_phone(value)
    if "name" in key:
        return value[0] + "*" * (len(value) - 1) if value else value
    return mask_identifier(value)


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively. E-mail addresses are masked under any key."""
    masked = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [
                mask_pii_in_dict(item) if isinstance(item, dict) else mask_value(key.lower(), item)
                for item in value
            ]
        else:
            masked[key] = mask_value(key.lower(), value)
    return masked
