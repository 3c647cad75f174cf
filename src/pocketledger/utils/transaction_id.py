"""Human-readable transaction identifiers."""

import re
import secrets

PREFIX = "F"
# Uppercase letters and digits without the look-alikes 0/O and 1/I/L
ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
BODY_LENGTH = 12

_ID_PATTERN = re.compile(rf"^{PREFIX}[{ALPHABET}]{{{BODY_LENGTH}}}$")


def generate_transaction_id() -> str:
    """Generate a new transaction identifier.

    The value is ``F`` followed by 12 characters drawn from a 31-symbol
    alphabet (about 59 bits of randomness), which keeps it short enough to
    read out loud while making collisions negligible.

    Returns:
        Identifier such as ``F7KQ2MZX9HDA4``
    """
    body = "".join(secrets.choice(ALPHABET) for _ in range(BODY_LENGTH))
    return f"{PREFIX}{body}"


def is_transaction_id(value: str) -> bool:
    """Return True if value looks like an identifier produced by this module."""
    return bool(_ID_PATTERN.match(value or ""))


def format_transaction_id(value: str) -> str:
    """Group an identifier for display, e.g. ``F-7KQ2-MZX9-HDA4``.

    Values not produced by this module are returned unchanged.
    """
    if not is_transaction_id(value):
        return value
    body = value[len(PREFIX):]
    groups = [body[i:i + 4] for i in range(0, len(body), 4)]
    return "-".join([PREFIX, *groups])


def normalize_transaction_id(value: str) -> str:
    """Accept an identifier as typed or displayed and return the stored form."""
    return (value or "").strip().upper().replace("-", "")
