"""
Domain: the 11-character plan identifier (MBI).

Rules implemented here:
- An identifier is compared trimmed and case-sensitive.
- A well-formed identifier is exactly 11 ASCII letters/digits and starts with
  a digit 1-9.
- Synthetic identifiers (generated when an imported record carries none) use
  a leading digit 1-9 followed by digits and letters, excluding the visually
  ambiguous letters S, L, O, I, B and Z.
"""

from __future__ import annotations

import random
import string
from typing import Optional

from .errors import ValidationError

MBI_LENGTH = 11
AMBIGUOUS_LETTERS = frozenset("SLOIBZ")
SYNTHETIC_ALPHABET = "".join(
    ch for ch in string.digits + string.ascii_uppercase if ch not in AMBIGUOUS_LETTERS
)

_rng = random.SystemRandom()


def clean_mbi(value: Optional[str]) -> Optional[str]:
    """Trim an identifier; blank values become None."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_well_formed_mbi(value: str) -> bool:
    return (
        len(value) == MBI_LENGTH
        and value.isascii()
        and value.isalnum()
        and value[0] in "123456789"
    )


def require_well_formed_mbi(value: Optional[str]) -> str:
    """
    Return the trimmed identifier or raise ValidationError.

    Raises:
        ValidationError: if the value is blank or malformed
    """

    mbi = clean_mbi(value)
    if mbi is None:
        raise ValidationError("Plan identifier (MBI) is required")
    if not is_well_formed_mbi(mbi):
        raise ValidationError(
            f"Malformed plan identifier {mbi!r}: expected {MBI_LENGTH} letters/digits "
            "starting with a digit 1-9"
        )
    return mbi


def generate_synthetic_mbi(rng: Optional[random.Random] = None) -> str:
    source = rng or _rng
    head = source.choice("123456789")
    tail = "".join(source.choice(SYNTHETIC_ALPHABET) for _ in range(MBI_LENGTH - 1))
    return head + tail


__all__ = [
    "MBI_LENGTH",
    "AMBIGUOUS_LETTERS",
    "SYNTHETIC_ALPHABET",
    "clean_mbi",
    "is_well_formed_mbi",
    "require_well_formed_mbi",
    "generate_synthetic_mbi",
]
