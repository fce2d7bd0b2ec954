"""
Code Generator
==============
Holds the server secret and performs every cryptographic derivation.
"""

import asyncio
import hmac
from typing import Optional

from otp_core.errors import OTPError, OTPErrorCode
from .models import RequestMeta
from .hashing import (
    BCRYPT_ROUNDS,
    compute_tag,
    fingerprint_request_meta,
    generate_code,
    generate_session_id,
    hash_code,
    verify_code_hash,
)


MIN_SECRET_LENGTH = 32


class CodeGenerator:
    """
    Stateless apart from the server secret.

    Example:
        generator = CodeGenerator(secret)
        code = generator.generate_code(6)
        tag = generator.create_tag(code, "login", session_id)
    """

    def __init__(self, secret: str, bcrypt_rounds: int = BCRYPT_ROUNDS):
        if not secret or len(secret) < MIN_SECRET_LENGTH:
            raise OTPError(
                OTPErrorCode.MISCONFIGURED_SECRET,
                f"Server secret must be at least {MIN_SECRET_LENGTH} characters long",
            )
        self._secret = secret
        self.bcrypt_rounds = max(bcrypt_rounds, BCRYPT_ROUNDS)

    def __repr__(self) -> str:
        return f"CodeGenerator(bcrypt_rounds={self.bcrypt_rounds})"

    def generate_code(self, length: int = 6) -> str:
        return generate_code(length)

    def generate_session_id(self) -> str:
        return generate_session_id()

    def create_tag(self, code: str, context: str, session_id: str) -> str:
        """HMAC tag binding a code to its context and session."""
        return compute_tag(self._secret, code, context, session_id)

    def verify_tag(
        self,
        code: str,
        context: str,
        session_id: str,
        expected_tag: Optional[str],
    ) -> bool:
        """Constant-time check of a stored tag."""
        if not expected_tag:
            return False
        calculated = self.create_tag(code, context, session_id)
        return hmac.compare_digest(calculated, expected_tag)

    def hash_code_sync(self, code: str) -> str:
        return hash_code(code, self.bcrypt_rounds)

    def verify_hash_sync(self, code: str, stored_hash: str) -> bool:
        return verify_code_hash(code, stored_hash)

    async def hash_code(self, code: str) -> str:
        """
        Hash a code with bcrypt.

        Runs in the default executor so the event loop is not blocked.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hash_code_sync, code)

    async def verify_hash(self, code: str, stored_hash: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.verify_hash_sync, code, stored_hash)

    def fingerprint_request_meta(
        self,
        meta: RequestMeta,
        reference: Optional[RequestMeta] = None,
    ) -> str:
        return fingerprint_request_meta(meta, reference)

    def verify_request_meta(
        self,
        meta: RequestMeta,
        fingerprint: Optional[str],
        reference: Optional[RequestMeta] = None,
    ) -> bool:
        """
        Compare presented metadata with a stored fingerprint.

        Args:
            meta: Metadata presented now
            fingerprint: Fingerprint captured at issuance
            reference: Metadata snapshot stored at issuance

        Returns:
            True if the canonical forms match
        """
        if not fingerprint:
            return False
        return hmac.compare_digest(
            self.fingerprint_request_meta(meta, reference), fingerprint
        )
