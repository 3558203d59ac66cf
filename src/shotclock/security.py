"""Salted PIN hashing for room access."""

import hashlib
import hmac
import secrets

_PBKDF2_ITERS = 100_000
_SALT_BYTES = 16


def _hash_pin(pin: str, salt: str) -> str:
    """PBKDF2-HMAC-SHA256 room PIN hash."""
    return hashlib.pbkdf2_hmac(
        "sha256", pin.encode("utf-8"), salt.encode("utf-8"), _PBKDF2_ITERS
    ).hex()


class PinHash:
    """A room PIN kept only as salt + digest."""

    __slots__ = ("salt", "digest")

    def __init__(self, pin: str):
        self.salt = secrets.token_hex(_SALT_BYTES)
        self.digest = _hash_pin(pin, self.salt)

    def matches(self, pin: str) -> bool:
        return hmac.compare_digest(_hash_pin(pin, self.salt), self.digest)

    def __repr__(self) -> str:
        return "PinHash(<redacted>)"
