"""
Unit Tests for Code Generation and Hashing
==========================================
"""

import pytest

from tests.conftest import SECRET


class TestGenerateCode:
    """Tests for numeric code generation."""

    def test_default_length(self):
        """Should generate six digits by default."""
        from otp_core.otp.hashing import generate_code

        code = generate_code()

        assert len(code) == 6
        assert code.isdigit()

    def test_length_bounds(self):
        """Should accept 4 to 10 digits."""
        from otp_core.otp.hashing import generate_code

        assert len(generate_code(4)) == 4
        assert len(generate_code(10)) == 10

    @pytest.mark.parametrize("length", [0, 3, 11])
    def test_rejects_out_of_range_length(self, length):
        """Should raise INVALID_CONFIG outside 4-10."""
        from otp_core.errors import OTPError, OTPErrorCode
        from otp_core.otp.hashing import generate_code

        with pytest.raises(OTPError) as exc_info:
            generate_code(length)

        assert exc_info.value.code == OTPErrorCode.INVALID_CONFIG

    def test_codes_vary(self):
        """Should not repeat the same code every call."""
        from otp_core.otp.hashing import generate_code

        codes = {generate_code(8) for _ in range(50)}

        assert len(codes) > 1


class TestSessionId:
    """Tests for session identifiers."""

    def test_uuid4_format(self):
        """Should produce a version 4 UUID string."""
        import uuid
        from otp_core.otp.hashing import generate_session_id

        session_id = generate_session_id()
        parsed = uuid.UUID(session_id)

        assert parsed.version == 4
        assert str(parsed) == session_id

    def test_unique(self):
        """Should not collide across calls."""
        from otp_core.otp.hashing import generate_session_id

        assert len({generate_session_id() for _ in range(100)}) == 100


class TestCodeGenerator:
    """Tests for the secret-holding generator."""

    def test_rejects_short_secret(self):
        """Should raise MISCONFIGURED_SECRET under 32 characters."""
        from otp_core.errors import OTPError, OTPErrorCode
        from otp_core.otp.generator import CodeGenerator

        with pytest.raises(OTPError) as exc_info:
            CodeGenerator("too-short")

        assert exc_info.value.code == OTPErrorCode.MISCONFIGURED_SECRET

    def test_repr_hides_secret(self):
        """Should never print the secret."""
        from otp_core.otp.generator import CodeGenerator

        assert SECRET not in repr(CodeGenerator(SECRET))

    def test_tag_roundtrip(self):
        """Should verify a tag only for the same code, context and session."""
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)
        tag = generator.create_tag("123456", "login", "session-1")

        assert len(tag) == 64
        assert generator.verify_tag("123456", "login", "session-1", tag) is True
        assert generator.verify_tag("654321", "login", "session-1", tag) is False
        assert generator.verify_tag("123456", "reset", "session-1", tag) is False
        assert generator.verify_tag("123456", "login", "session-2", tag) is False

    def test_missing_tag_fails(self):
        """Should reject an empty stored tag."""
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)

        assert generator.verify_tag("123456", "login", "session-1", "") is False
        assert generator.verify_tag("123456", "login", "session-1", None) is False

    def test_tag_depends_on_secret(self):
        """Should produce different tags under different secrets."""
        from otp_core.otp.generator import CodeGenerator

        first = CodeGenerator(SECRET).create_tag("123456", "login", "s")
        second = CodeGenerator(SECRET + "x").create_tag("123456", "login", "s")

        assert first != second

    @pytest.mark.asyncio
    async def test_hash_and_verify(self):
        """Should hash with bcrypt cost 12 and verify the right code only."""
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)
        code_hash = await generator.hash_code("482913")

        assert code_hash.startswith("$2b$12$")
        assert await generator.verify_hash("482913", code_hash) is True
        assert await generator.verify_hash("482914", code_hash) is False

    def test_cost_never_below_twelve(self):
        """Should clamp a lower requested cost."""
        from otp_core.otp.generator import CodeGenerator

        assert CodeGenerator(SECRET, bcrypt_rounds=4).bcrypt_rounds == 12

    def test_malformed_hash(self):
        """Should treat a corrupt stored hash as a mismatch."""
        from otp_core.otp.hashing import verify_code_hash

        assert verify_code_hash("123456", "not-a-bcrypt-hash") is False
        assert verify_code_hash("", "whatever") is False


class TestRequestMetaFingerprint:
    """Tests for request metadata binding."""

    def test_same_meta_matches(self, request_meta):
        """Should match identical metadata."""
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)
        fingerprint = generator.fingerprint_request_meta(request_meta)

        assert generator.verify_request_meta(request_meta, fingerprint, reference=request_meta)

    def test_ip_change_mismatches(self, request_meta):
        """Should reject a different IP."""
        from dataclasses import replace
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)
        fingerprint = generator.fingerprint_request_meta(request_meta)
        moved = replace(request_meta, ip="198.51.100.1")

        assert not generator.verify_request_meta(moved, fingerprint, reference=request_meta)

    def test_audit_fields_ignored(self, request_meta):
        """Browser and OS should never affect binding."""
        from dataclasses import replace
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)
        fingerprint = generator.fingerprint_request_meta(request_meta)
        changed = replace(request_meta, browser="Firefox", os="Linux")

        assert generator.verify_request_meta(changed, fingerprint, reference=request_meta)

    def test_optional_fields_bound_only_when_captured(self, request_meta):
        """Device id should bind only if it was present at issuance."""
        from dataclasses import replace
        from otp_core.otp.generator import CodeGenerator

        generator = CodeGenerator(SECRET)

        plain = generator.fingerprint_request_meta(request_meta)
        with_device = replace(request_meta, device_id="device-1")
        assert generator.verify_request_meta(with_device, plain, reference=request_meta)

        bound = generator.fingerprint_request_meta(with_device)
        other_device = replace(request_meta, device_id="device-2")
        assert not generator.verify_request_meta(other_device, bound, reference=with_device)
        assert not generator.verify_request_meta(request_meta, bound, reference=with_device)

    def test_empty_fingerprint(self, request_meta):
        """Should fail closed without a stored fingerprint."""
        from otp_core.otp.generator import CodeGenerator

        assert not CodeGenerator(SECRET).verify_request_meta(request_meta, "")

    def test_meta_truthiness(self):
        """Should require ip and user agent."""
        from otp_core.otp.models import RequestMeta

        assert not RequestMeta(ip="", user_agent="ua")
        assert not RequestMeta(ip="1.2.3.4", user_agent="")
        assert RequestMeta(ip="1.2.3.4", user_agent="ua")

    def test_from_dict(self):
        """Should build metadata from a mapping."""
        from otp_core.otp.models import RequestMeta

        meta = RequestMeta.from_dict({"ip": "1.2.3.4", "user_agent": "ua", "platform": "ios"})

        assert meta.platform == "ios"
        assert meta.to_dict()["ip"] == "1.2.3.4"
