"""
Case-password primitives: generation, lookup digest and credential hash.

Two independent one-way transforms of the same plaintext serve two purposes:

- ``lookup_digest`` is fast and deterministic. It only narrows the search
  to at most one candidate report and proves nothing by itself.
- ``hash_case_password`` is bcrypt, salted per record and deliberately slow.
  It is the actual proof of possession and what resists offline guessing if
  the database leaks.
"""
import hashlib
import hmac
import secrets
from typing import Optional

import bcrypt


def generate_case_password(nbytes: int = 3) -> str:
    """
    Mint a new case password, e.g. ``A9F4C2``.

    Upper-case hex keeps the alphabet unambiguous when read aloud or copied
    by hand. Entropy-source failures propagate.
    """
    return secrets.token_hex(nbytes).upper()


def normalize_case_password(candidate: Optional[str]) -> str:
    """Strip whitespace and upper-case, so ``a9f4c2 `` opens ``A9F4C2``."""
    return (candidate or "").strip().upper()


def lookup_digest(secret: str, pepper: Optional[str] = None) -> str:
    """
    Deterministic digest used as the indexed lookup key.

    SHA-256 of the normalized secret, or HMAC-SHA256 when a server-side
    pepper is configured. Never salted per record, or lookup would be a scan.
    """
    data = normalize_case_password(secret).encode("utf-8")
    if pepper:
        return hmac.new(pepper.encode("utf-8"), data, hashlib.sha256).hexdigest()
    return hashlib.sha256(data).hexdigest()


def hash_case_password(secret: str, rounds: int = 10) -> str:
    """Slow salted hash stored for verification."""
    data = normalize_case_password(secret).encode("utf-8")
    return bcrypt.hashpw(data, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_case_password(secret: str, hashed: str) -> bool:
    """Compare a candidate against a stored bcrypt hash."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(
            normalize_case_password(secret).encode("utf-8"),
            hashed.encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash; treat as a mismatch rather than a 500
        return False
