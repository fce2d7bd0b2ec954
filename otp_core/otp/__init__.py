"""
OTP Issuance and Verification
=============================
Email one-time codes with rate limiting, brute-force lockout and
request-context binding.
"""

# Models must load before the engine pulls in storage and health
from .models import (
    OTPChannel,
    OTPStatus,
    OTPRecord,
    RequestMeta,
    IssueResult,
    VerifyResult,
)
from .events import OTPEvent, OTPEventType, EventHandlers
from .config import OTPConfig, RateLimitConfig, EmailTemplate
from .hashing import generate_code, generate_session_id, compute_tag, hash_code, verify_code_hash
from .generator import CodeGenerator
from .templates import RenderedEmail, build_template_data, render_email
from .engine import SecureEmailOTP

__all__ = [
    # Models
    "OTPChannel",
    "OTPStatus",
    "OTPRecord",
    "RequestMeta",
    "IssueResult",
    "VerifyResult",
    # Events
    "OTPEvent",
    "OTPEventType",
    "EventHandlers",
    # Config
    "OTPConfig",
    "RateLimitConfig",
    "EmailTemplate",
    # Hashing
    "generate_code",
    "generate_session_id",
    "compute_tag",
    "hash_code",
    "verify_code_hash",
    # Generator
    "CodeGenerator",
    # Templates
    "RenderedEmail",
    "build_template_data",
    "render_email",
    # Engine
    "SecureEmailOTP",
]
