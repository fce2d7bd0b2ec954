"""
OTP Hashing Utilities
=====================
Secure generation, hashing and binding functions for OTP codes.
"""

import secrets
import hashlib
import hmac
import json
from typing import Optional

import bcrypt

from otp_core.errors import OTPError, OTPErrorCode
from .models import RequestMeta

MIN_CODE_LENGTH = 4
MAX_CODE_LENGTH = 10
BCRYPT_ROUNDS = 12


def generate_code(length: int = 6) -> str:
    """
    Generate a numeric OTP from secure random bytes.

    Each byte is reduced with ``byte % 10``. 256 is not a multiple of 10,
    so digits 0-5 come up with probability 26/256 and 6-9 with 25/256.

    Args:
        length: Number of digits (4-10)

    Returns:
        OTP string
    """
    if not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
        raise OTPError(
            OTPErrorCode.INVALID_CONFIG,
            f"OTP length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH} digits",
        )
    return "".join(str(byte % 10) for byte in secrets.token_bytes(length))


def generate_session_id() -> str:
    """Generate a random 128-bit session identifier in UUID v4 form."""
    raw = bytearray(secrets.token_bytes(16))
    raw[6] = (raw[6] & 0x0F) | 0x40
    raw[8] = (raw[8] & 0x3F) | 0x80
    hex_id = raw.hex()
    return "-".join(
        (hex_id[:8], hex_id[8:12], hex_id[12:16], hex_id[16:20], hex_id[20:])
    )


def compute_tag(secret: str, code: str, context: str, session_id: str) -> str:
    """
    Compute the HMAC-SHA256 binding tag for a code.

    Args:
        secret: Server secret
        code: Plain OTP
        context: Purpose the code authorizes
        session_id: Session the code was issued for

    Returns:
        Hex-encoded tag
    """
    message = f"{code}:{context}:{session_id}"
    return hmac.new(
        secret.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()


def hash_code(code: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """
    Hash an OTP with bcrypt for storage.

    Args:
        code: Plain OTP
        rounds: bcrypt cost factor, never below 12

    Returns:
        bcrypt hash string
    """
    salt = bcrypt.gensalt(rounds=max(rounds, BCRYPT_ROUNDS))
    return bcrypt.hashpw(code.encode("utf-8"), salt).decode("utf-8")


def verify_code_hash(code: str, stored_hash: str) -> bool:
    """Check an OTP against its bcrypt hash."""
    if not code or not stored_hash:
        return False
    try:
        return bcrypt.checkpw(code.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def fingerprint_request_meta(meta: RequestMeta, reference: Optional[RequestMeta] = None) -> str:
    """
    Hash the canonical form of request metadata.

    Args:
        meta: Request metadata
        reference: Snapshot deciding which optional fields take part

    Returns:
        SHA-256 hex digest of the compact, key-sorted JSON form
    """
    canonical = json.dumps(meta.canonical(reference), separators=(",", ":"), sort_keys=True)
    return hashlib.sha256(canonical.encode()).hexdigest()
