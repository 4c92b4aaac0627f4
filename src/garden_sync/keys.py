"""Identifier and short-key generation.

Ids are UUID4 strings. Keys are short URL-safe strings drawn from a
64-character alphabet; 11 characters give 64**11 possible keys.
"""

import secrets
import uuid

KEY_ALPHABET = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
)
DEFAULT_KEY_LENGTH = 11


class KeyMaster:
    """Mint globally unique ids and short display keys."""

    def generate_id(self) -> str:
        return str(uuid.uuid4())

    def generate_key(self, length: int = DEFAULT_KEY_LENGTH) -> str:
        if length < 1:
            raise ValueError(f"Key length must be positive, got {length}")
        return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))
