"""Input validation helpers shared by request schemas."""
import re

PHONE_RE = re.compile(r'^[0-9+\-\s()]{10,}$')


def sanitize_user_input(text: str, max_length: int = 10000) -> str:
    """
    Strip null bytes and control characters and cap the length.

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length
    """
    if not text:
        return ""

    if len(text) > max_length:
        text = text[:max_length]

    text = text.replace('\x00', '')
    text = ''.join(char for char in text if ord(char) >= 32 or char in '\n\r\t')

    return text


def validate_phone_number(phone: str) -> str:
    """
    Accept digits, spaces, '+', '-' and parentheses, at least 10 characters.
    Returns the trimmed number or raises ValueError.
    """
    phone = (phone or "").strip()
    if not PHONE_RE.match(phone):
        raise ValueError("Please enter a valid phone number")
    return phone
