"""
Input validation utilities for customer contact details.
"""

import re
from typing import Optional


def validate_name(name: str) -> bool:
    """
    Validate customer name.

    Args:
        name: Customer name

    Returns:
        True if the name has at least one non-space character
    """
    return isinstance(name, str) and bool(name.strip())


def validate_email(email: str) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address string

    Returns:
        True if valid format, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    # Basic email regex (RFC 5322 simplified)
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email.strip()))


def validate_phone(phone: str) -> bool:
    """
    Validate phone number format.
    Accepts international format with optional + prefix.

    Args:
        phone: Phone number string

    Returns:
        True if valid format, False otherwise
    """
    if not phone or not isinstance(phone, str):
        return False

    # Remove spaces, dashes, parentheses
    cleaned = re.sub(r'[\s\-\(\)]', '', phone)

    pattern = r'^\+?[1-9]\d{6,14}$'
    return bool(re.match(pattern, cleaned))


def normalize_phone(phone: str) -> str:
    """Strip formatting characters from a phone number."""
    return re.sub(r'[\s\-\(\)]', '', phone or "")


def sanitize_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Sanitize free-text input such as booking notes.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', str(text))
    sanitized = sanitized.strip()

    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
