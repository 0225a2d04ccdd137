"""API key generation and hashing utilities."""

from __future__ import annotations

import secrets

import bcrypt

from managed_files.errors import MalformedKeyHashError

DEFAULT_BCRYPT_ROUNDS = 12

# bcrypt only consumes the first 72 bytes of its input.
MAX_KEY_BYTES = 72


def generate_api_key(
    environment: str = "live",
    rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> tuple[str, str, str]:
    """Generate API key, return (full_key, key_hash, key_prefix).

    Full key is shown only once at creation time.
    Only hash and prefix are stored in DB.

    Args:
        environment: Key environment, typically 'live' or 'test'.
        rounds: bcrypt cost factor.

    Returns:
        Tuple of (full_key, key_hash, key_prefix).
    """
    random_part = secrets.token_hex(16)
    full_key = f"mf_{environment}_{random_part}"
    key_hash = hash_api_key(full_key, rounds=rounds)
    key_prefix = f"mf_{environment}_{random_part[:4]}"
    return full_key, key_hash, key_prefix


def hash_api_key(key: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash an API key with a salted bcrypt digest.

    Args:
        key: The full API key string.
        rounds: bcrypt cost factor.

    Returns:
        bcrypt hash string with the salt embedded.

    Raises:
        ValueError: if the key is empty or longer than 72 bytes.
    """
    raw = key.encode()
    if not raw.strip():
        raise ValueError("API key cannot be empty")
    if len(raw) > MAX_KEY_BYTES:
        raise ValueError(f"API key cannot exceed {MAX_KEY_BYTES} bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=rounds)).decode()


def verify_api_key(key: str, key_hash: str) -> bool:
    """Check a plaintext key against a stored bcrypt hash.

    bcrypt compares in constant time and reads the salt from the hash.

    Raises:
        MalformedKeyHashError: if ``key_hash`` is not a valid bcrypt hash.
    """
    raw = key.encode()
    if len(raw) > MAX_KEY_BYTES:
        return False
    try:
        return bcrypt.checkpw(raw, key_hash.encode())
    except ValueError as exc:
        raise MalformedKeyHashError(str(exc)) from exc
