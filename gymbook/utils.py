"""Shared utilities used across the booking core."""

import re


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+66 (81) 234-5678")
        '+66812345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def normalize_email(value: str) -> str:
    """Lower-case and trim an e-mail address."""
    return value.strip().lower()


def mask_email(value: str) -> str:
    """Mask the local part of an e-mail address for log lines.

    Examples:
        >>> mask_email("somchai@example.com")
        's***@example.com'
    """
    local, _, domain = value.partition("@")
    if not domain:
        return "***"
    return f"{local[:1]}***@{domain}"
