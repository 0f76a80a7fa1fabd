"""Pickup and delivery hand-off codes."""

import secrets
import string
from typing import Tuple

from django.conf import settings

CODE_ALPHABET = string.ascii_uppercase + string.digits


def code_length() -> int:
    return settings.AIRBAR.get("HANDOFF_CODE_LENGTH", 6)


def generate_handoff_code(length: int = None) -> str:
    """Random uppercase alphanumeric code from a CSPRNG."""
    length = length or code_length()
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_code_pair() -> Tuple[str, str]:
    """(pickup_code, delivery_code), never equal to each other."""
    pickup = generate_handoff_code()
    delivery = generate_handoff_code()
    while delivery == pickup:
        delivery = generate_handoff_code()
    return pickup, delivery


def codes_match(expected: str, supplied) -> bool:
    """Case-insensitive, constant-time code comparison."""
    if not supplied:
        return False
    return secrets.compare_digest(expected.upper().encode(), str(supplied).strip().upper().encode())
