"""Security utilities - password hashing and random secrets"""

import hashlib
import hmac
import re
import secrets

import bcrypt

from feedauth.core.exceptions import ValidationError

# $2a$, $2b$, $2x$, $2y$ followed by cost and 53 chars of salt+digest
_BCRYPT_HASH_RE = re.compile(r"^\$2[abxy]?\$\d{2}\$[./A-Za-z0-9]{53}$")

# bcrypt only reads the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72


def is_bcrypt_hash(value: object) -> bool:
    return isinstance(value, str) and bool(_BCRYPT_HASH_RE.match(value))


def get_password_hash(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt work factor

    Returns:
        str: Hashed password

    Raises:
        ValidationError: If the password is empty, not a string or too long
    """
    if not isinstance(password, str) or not password.strip():
        raise ValidationError("Password is required and cannot be empty")
    if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=rounds)
    ).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches

    Raises:
        ValidationError: If either argument is missing or the hash is not bcrypt
    """
    if not isinstance(plain_password, str) or not plain_password:
        raise ValidationError("Password is required")
    if not isinstance(hashed_password, str) or not hashed_password:
        raise ValidationError("Hash is required")
    if not is_bcrypt_hash(hashed_password):
        raise ValidationError("Invalid hash format")
    if len(plain_password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        return False

    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def generate_secure_token(nbytes: int = 32) -> str:
    """
    Generate a random hex token

    Returns:
        str: Random token
    """
    return secrets.token_hex(nbytes)


def digest_secret(value: str) -> str:
    """SHA-256 hex digest used to store reset tokens and backup codes at rest."""
    return hashlib.sha256(value.encode('utf-8')).hexdigest()


def secrets_match(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))
