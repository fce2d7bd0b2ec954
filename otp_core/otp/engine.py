"""
Secure Email OTP Engine
=======================
Issues codes by email and verifies them against stored records.

Record lifecycle: active -> used (verified), active -> locked (attempts
exhausted), active -> expired (detected lazily) and active -> superseded
(stored as used when a newer code is issued for the same key).
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, Optional, Union

import structlog

from otp_core.errors import DuplicateKeyError, OTPError, OTPErrorCode
from otp_core.health import HealthReport, build_report
from otp_core.logging import mask_destination
from otp_core.providers.base import BaseEmailProvider, EmailMessage
from otp_core.rate_limit.base import BaseRateLimiter
from otp_core.storage.base import BaseOTPStore
from .config import EmailTemplate, OTPConfig
from .events import OTPEvent, OTPEventType
from .generator import CodeGenerator
from .models import IssueResult, OTPChannel, OTPRecord, OTPStatus, RequestMeta, VerifyResult, utcnow
from .templates import build_template_data, render_email

logger = structlog.get_logger(__name__)

MAX_CREATE_ATTEMPTS = 3
HEALTH_CHECK_KEY = "otp:health-check"

SETTLED_ERRORS = {
    OTPStatus.USED: (OTPErrorCode.ALREADY_USED, "OTP has already been used"),
    OTPStatus.LOCKED: (OTPErrorCode.LOCKED, "OTP is locked due to too many failed attempts"),
    OTPStatus.EXPIRED: (OTPErrorCode.EXPIRED, "OTP has expired"),
}

MetaLike = Union[RequestMeta, Dict[str, Any]]


class SecureEmailOTP:
    """
    Issuance/verification orchestrator.

    Safe to share between concurrent tasks: all record state lives in the
    store, and same-key issuance races are resolved at the store's
    uniqueness constraint by regenerating the session id.

    Example:
        otp = SecureEmailOTP(store, provider, limiter, secret)
        issued = await otp.issue("a@example.com", "login", meta)
        await otp.verify("a@example.com", "login", issued.session_id, code, meta)
    """

    channel = OTPChannel.EMAIL

    def __init__(
        self,
        store: BaseOTPStore,
        provider: BaseEmailProvider,
        rate_limiter: BaseRateLimiter,
        secret: str,
        config: Optional[OTPConfig] = None,
    ):
        self.config = (config or OTPConfig()).validate()
        self.generator = CodeGenerator(secret)
        self.store = store
        self.provider = provider
        self.rate_limiter = rate_limiter

    async def __aenter__(self) -> "SecureEmailOTP":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(
        self,
        destination: str,
        context: str,
        request_meta: MetaLike,
        template: Optional[EmailTemplate] = None,
    ) -> IssueResult:
        """
        Generate a code, persist its record and email it.

        Args:
            destination: Email address
            context: Purpose the code authorizes (e.g. "login")
            request_meta: Request metadata captured for strict binding
            template: Per-call template overriding the configured one

        Returns:
            IssueResult with session id, expiry and whether a prior code
            was superseded

        Raises:
            OTPError: INVALID, RATE_LIMITED, STORAGE_ERROR or
                NOTIFICATION_FAILED
        """
        meta = _coerce_meta(request_meta)
        if not destination or not context or not meta:
            raise OTPError(OTPErrorCode.INVALID, "Missing required parameters")

        # Keyed per destination so varying the context cannot bypass the quota
        rate_key = f"otp:{destination}:{self.channel.value}"
        limits = self.config.rate_limit
        if not await self.rate_limiter.check_limit(rate_key, limits.max_per_window, limits.window_seconds):
            raise await self._rate_limited(rate_key, destination, context, meta)

        # Counted before any downstream work, so forced failures still consume quota.
        # Only the post-increment count is atomic across concurrent callers.
        if await self.rate_limiter.increment(rate_key, limits.window_seconds) > limits.max_per_window:
            raise await self._rate_limited(rate_key, destination, context, meta)

        await self._emit(OTPEventType.REQUEST, destination, context, meta)

        resent = await self._supersede_active(destination, context)

        code = self.generator.generate_code(self.config.code_length)
        code_hash = await self.generator.hash_code(code)
        expires_at = utcnow() + timedelta(seconds=self.config.expiry_seconds)

        record, superseded_on_retry = await self._create_record(
            destination, context, code, code_hash, expires_at, meta
        )
        resent = resent or superseded_on_retry

        try:
            await asyncio.wait_for(
                self._deliver(destination, context, code, template),
                timeout=self.config.send_timeout_seconds,
            )
        except asyncio.CancelledError:
            await self._rollback(record)
            raise
        except Exception as e:
            await self._rollback(record)
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e)
            logger.error(
                "OTP delivery failed",
                session_id=record.session_id,
                context=context,
                error=reason,
            )
            raise await self._failure(
                OTPErrorCode.NOTIFICATION_FAILED,
                "Failed to send email",
                destination, context, meta,
                session_id=record.session_id,
                details={"reason": reason or type(e).__name__},
                cause=e,
            ) from e

        await self._emit(OTPEventType.SEND, destination, context, meta, session_id=record.session_id)
        logger.info(
            "OTP issued",
            session_id=record.session_id,
            context=context,
            destination=mask_destination(destination),
            resent=resent,
        )

        return IssueResult(
            session_id=record.session_id,
            expires_at=expires_at,
            resent=resent,
            code=code if self.config.expose_code else None,
        )

    async def _supersede_active(self, destination: str, context: str) -> bool:
        """
        Neutralize open records for a key before creating a new one.

        Best effort: failures are logged and never block issuance. Expired
        but unsettled records are retired too, since they still occupy the
        store's one-open-record slot.

        Returns:
            True if a prior active record was invalidated
        """
        try:
            await self.store.reconcile_duplicates(destination, context, self.channel)
        except Exception as e:
            logger.warning("Failed to reconcile conflicting OTPs", context=context, error=str(e))

        superseded = False
        try:
            existing = await self.store.find_active(destination, context, self.channel)
            if existing is not None:
                superseded = await self.store.mark_used(existing.id)
                if superseded:
                    logger.info("Active OTP superseded", session_id=existing.session_id, context=context)
        except Exception as e:
            logger.warning("Failed to supersede active OTP", context=context, error=str(e))

        try:
            await self.store.retire_open(destination, context, self.channel)
        except Exception as e:
            logger.warning("Failed to retire open OTPs", context=context, error=str(e))

        return superseded

    async def _create_record(
        self,
        destination: str,
        context: str,
        code: str,
        code_hash: str,
        expires_at,
        meta: RequestMeta,
    ):
        """
        Persist a record, regenerating the session id on key conflicts.

        Returns:
            (stored record, whether a concurrent active record was superseded)
        """
        superseded = False
        fingerprint = self.generator.fingerprint_request_meta(meta)

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            session_id = self.generator.generate_session_id()
            record = OTPRecord(
                destination=destination,
                context=context,
                channel=self.channel,
                session_id=session_id,
                code_hash=code_hash,
                tag=self.generator.create_tag(code, context, session_id),
                expires_at=expires_at,
                max_attempts=self.config.max_attempts,
                request_meta=meta,
                meta_fingerprint=fingerprint,
            )
            try:
                return await self.store.create(record), superseded
            except DuplicateKeyError:
                logger.warning(
                    "OTP record key conflict, retrying with new session id",
                    attempt=attempt,
                    context=context,
                )
                if attempt < MAX_CREATE_ATTEMPTS:
                    superseded = await self._supersede_active(destination, context) or superseded
            except Exception as e:
                logger.error("Failed to create OTP record", context=context, error=str(e))
                raise OTPError(OTPErrorCode.STORAGE_ERROR, "Failed to create OTP record") from e

        raise OTPError(
            OTPErrorCode.STORAGE_ERROR,
            "Failed to create OTP record after multiple attempts",
            details={"attempts": MAX_CREATE_ATTEMPTS},
        )

    async def _deliver(
        self,
        destination: str,
        context: str,
        code: str,
        template: Optional[EmailTemplate],
    ) -> None:
        defaults = self.config.template
        effective = template or defaults
        data = build_template_data(
            code=code,
            destination=destination,
            context=context,
            expiry_seconds=self.config.expiry_seconds,
            company_name=effective.sender_name or defaults.sender_name,
            support_email=effective.sender_email or defaults.sender_email,
        )
        rendered = render_email(template, defaults, data)
        await self.provider.send(EmailMessage(
            to=destination,
            subject=rendered.subject,
            html=rendered.html,
            text=rendered.text,
            from_=rendered.sender_email,
        ))

    async def _rollback(self, record: OTPRecord) -> None:
        """Delete an undeliverable record so it cannot linger as active."""
        try:
            await self.store.delete(record.id)
        except Exception as e:
            logger.error(
                "Failed to roll back OTP record after delivery failure",
                session_id=record.session_id,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(
        self,
        destination: str,
        context: str,
        session_id: str,
        code: str,
        request_meta: MetaLike,
    ) -> VerifyResult:
        """
        Verify a submitted code.

        Args:
            destination: Email address the code was sent to
            context: Purpose the code was issued for
            session_id: Session id returned by ``issue()``
            code: Code entered by the user
            request_meta: Request metadata presented now

        Returns:
            VerifyResult with verified=True

        Raises:
            OTPError: INVALID, ALREADY_USED, LOCKED, EXPIRED,
                ATTEMPTS_EXCEEDED, CONTEXT_MISMATCH or STORAGE_ERROR
        """
        meta = _coerce_meta(request_meta)
        if not destination or not context or not session_id or not code or not meta:
            raise OTPError(OTPErrorCode.INVALID, "Missing required parameters")

        try:
            record = await self.store.find_by_session_key(destination, context, session_id, self.channel)
        except Exception as e:
            raise OTPError(OTPErrorCode.STORAGE_ERROR, "Failed to load OTP record") from e

        # Same error as a wrong code so lookups cannot enumerate sessions
        if record is None:
            raise await self._failure(
                OTPErrorCode.INVALID, "Invalid OTP", destination, context, meta, session_id=session_id,
            )

        if record.status is not OTPStatus.ACTIVE:
            raise await self._settled_failure(record, destination, context, meta)

        hash_ok = await self.generator.verify_hash(code, record.code_hash)
        tag_ok = self.generator.verify_tag(code, context, session_id, record.tag)

        if not (hash_ok and tag_ok):
            try:
                updated = await self.store.record_failed_attempt(record.id)
                if updated is None:
                    # settled by a concurrent verify since the read above
                    current = await self.store.find_by_session_key(destination, context, session_id, self.channel)
            except Exception as e:
                raise OTPError(OTPErrorCode.STORAGE_ERROR, "Failed to record OTP attempt") from e

            if updated is None:
                raise await self._settled_failure(current or record, destination, context, meta)

            logger.warning(
                "Invalid OTP attempt",
                session_id=session_id,
                attempts=updated.attempts,
                max_attempts=updated.max_attempts,
            )
            if updated.is_locked:
                raise await self._failure(
                    OTPErrorCode.ATTEMPTS_EXCEEDED, "Too many failed attempts. OTP is now locked.",
                    destination, context, meta, session_id=session_id,
                )
            raise await self._failure(
                OTPErrorCode.INVALID, "Invalid OTP", destination, context, meta, session_id=session_id,
            )

        # Only reachable with the right code, so binding cannot be tested blind
        if self.config.strict_mode and not self.generator.verify_request_meta(
            meta, record.meta_fingerprint, reference=record.request_meta
        ):
            logger.warning("OTP request context mismatch", session_id=session_id)
            raise await self._failure(
                OTPErrorCode.CONTEXT_MISMATCH, "Request context mismatch",
                destination, context, meta, session_id=session_id,
            )

        try:
            consumed = await self.store.mark_used(record.id)
            if not consumed:
                current = await self.store.find_by_session_key(destination, context, session_id, self.channel)
        except Exception as e:
            raise OTPError(OTPErrorCode.STORAGE_ERROR, "Failed to finalize OTP record") from e

        if not consumed:
            raise await self._settled_failure(current or record, destination, context, meta)

        await self._emit(OTPEventType.VERIFY, destination, context, meta, session_id=session_id)
        logger.info("OTP verified successfully", session_id=session_id, context=context)

        return VerifyResult(
            verified=True,
            session_id=session_id,
            destination=destination,
            context=context,
            channel=self.channel,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup(self) -> int:
        """
        Remove expired records and long-settled used/locked ones.

        Owner-triggered; nothing is scheduled internally.

        Returns:
            Number of records removed
        """
        cutoff = utcnow() - timedelta(seconds=self.config.settled_retention_seconds)
        try:
            expired = await self.store.delete_expired()
            settled = await self.store.delete_settled(cutoff)
        except Exception as e:
            raise OTPError(OTPErrorCode.STORAGE_ERROR, "Failed to clean up OTP records") from e

        logger.info("OTP cleanup finished", expired=expired, settled=settled)
        return expired + settled

    async def health_check(self) -> HealthReport:
        """
        Probe the store, email provider and rate limiter.

        Read-only: no message is sent and no counter changes.
        """
        from otp_core import __version__

        limits = self.config.rate_limit

        async def rate_limiter_ok() -> bool:
            if not await self.rate_limiter.ping():
                return False
            await self.rate_limiter.check_limit(HEALTH_CHECK_KEY, limits.max_per_window, limits.window_seconds)
            return True

        report = await build_report(
            {
                "database": self.store.ping,
                "email_provider": self.provider.verify_connection,
                "rate_limiter": rate_limiter_ok,
            },
            version=__version__,
        )
        logger.info("OTP health check", status=report.status.value)
        return report

    async def close(self) -> None:
        """Close the store, provider and rate limiter."""
        await self.provider.close()
        await self.rate_limiter.close()
        await self.store.close()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def _emit(
        self,
        event_type: OTPEventType,
        destination: str,
        context: str,
        meta: Optional[RequestMeta],
        session_id: str = "",
        error: Optional[Exception] = None,
    ) -> None:
        await self.config.events.dispatch(OTPEvent(
            type=event_type,
            destination=destination,
            context=context,
            request_meta=meta,
            session_id=session_id,
            channel=self.channel,
            error=error,
        ))

    async def _failure(
        self,
        code: OTPErrorCode,
        message: str,
        destination: str,
        context: str,
        meta: Optional[RequestMeta],
        session_id: str = "",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> OTPError:
        """Build an OTPError and report it to the on_fail hook."""
        error = OTPError(code, message, details=details)
        await self._emit(
            OTPEventType.FAIL, destination, context, meta,
            session_id=session_id,
            error=cause or error,
        )
        return error

    async def _rate_limited(
        self,
        rate_key: str,
        destination: str,
        context: str,
        meta: RequestMeta,
    ) -> OTPError:
        limits = self.config.rate_limit
        info = await self.rate_limiter.get_info(rate_key, limits.max_per_window, limits.window_seconds)
        logger.warning(
            "OTP rate limit exceeded",
            destination=mask_destination(destination),
            result=info.result.value,
            retry_after=info.retry_after,
        )
        return await self._failure(
            OTPErrorCode.RATE_LIMITED,
            "Too many OTP requests. Please try again later.",
            destination, context, meta,
            details={"retry_after": info.retry_after},
        )

    async def _settled_failure(
        self,
        record: OTPRecord,
        destination: str,
        context: str,
        meta: Optional[RequestMeta],
    ) -> OTPError:
        """Error for a record that can no longer be verified."""
        status = record.status
        logger.info("OTP rejected", session_id=record.session_id, status=status.value)
        code, message = SETTLED_ERRORS.get(status, (OTPErrorCode.INVALID, "Invalid OTP"))
        return await self._failure(code, message, destination, context, meta, session_id=record.session_id)


def _coerce_meta(request_meta: Optional[MetaLike]) -> Optional[RequestMeta]:
    if request_meta is None or isinstance(request_meta, RequestMeta):
        return request_meta
    if isinstance(request_meta, dict):
        return RequestMeta.from_dict(request_meta) if request_meta else None
    raise OTPError(OTPErrorCode.INVALID, "request_meta must be a RequestMeta or a mapping")
