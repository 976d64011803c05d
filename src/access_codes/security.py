"""Access code generation.

Codes are human-readable so they can be read aloud or typed from a printout.
"""

import secrets
import string


# Alphabet for codes - excludes ambiguous characters (0, O, I, 1)
CODE_ALPHABET = string.ascii_uppercase.replace("O", "").replace(
    "I", ""
) + string.digits.replace("0", "").replace("1", "")
# Result: ABCDEFGHJKLMNPQRSTUVWXYZ23456789 (32 characters)

CODE_LENGTH = 8


def generate_code(length: int = CODE_LENGTH) -> str:
    """Generate a random access code (e.g., "K7PX2M9Q")."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Canonical form of a user-typed code: trimmed, upper case."""
    return code.strip().upper()
