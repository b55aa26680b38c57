"""
Join codes: short, human-typeable session identifiers.
Generated codes avoid lookalike characters (0/O, 1/I); validation is looser so
hand-typed codes of 4-6 alphanumerics are still accepted at the join screen.
"""

import re
import secrets

JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 5

_JOIN_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,6}$")


def generate_join_code(length: int = JOIN_CODE_LENGTH) -> str:
    """Random code from JOIN_CODE_ALPHABET. No collision check; the session store owns that."""
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def normalize_join_code(code: str) -> str:
    return (code or "").strip().upper()


def validate_join_code(code: str) -> bool:
    return bool(_JOIN_CODE_PATTERN.match(normalize_join_code(code)))
