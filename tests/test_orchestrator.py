import pytest
from pydantic import ValidationError

from veriface.gemini_client import JUDGMENT_SENTINEL, VerificationServiceError
from veriface.orchestrator import FAILED_MESSAGE, VERIFIED_MESSAGE, verify_identity
from veriface.schemas import ErrorResult, FailedResult, VerifiedResult

from conftest import CCTV_URI, ENHANCED_URI, SELFIE_URI, FakeVerificationService


class TestVerifyIdentity:
    def test_sentinel_is_verified_without_enhance(self):
        service = FakeVerificationService(judgment=JUDGMENT_SENTINEL)
        result = verify_identity(SELFIE_URI, CCTV_URI, service)

        assert isinstance(result, VerifiedResult)
        assert result.model_dump() == {"status": "verified", "message": "Identity verified successfully."}
        assert service.match_calls == [(SELFIE_URI, CCTV_URI)]
        assert service.enhance_calls == []

    def test_other_judgment_fails_with_enhanced_image(self):
        service = FakeVerificationService(judgment="No matching person found in both images.")
        result = verify_identity(SELFIE_URI, CCTV_URI, service)

        assert isinstance(result, FailedResult)
        assert result.summary == "No matching person found in both images."
        assert result.enhancedImageUri == ENHANCED_URI
        assert result.message == FAILED_MESSAGE
        assert service.enhance_calls == [CCTV_URI]

    def test_near_miss_phrase_is_not_verified(self):
        service = FakeVerificationService(judgment="Likely the same person.")
        result = verify_identity(SELFIE_URI, CCTV_URI, service)
        assert result.status == "failed"
        assert len(service.enhance_calls) == 1

    def test_match_error_skips_enhance(self):
        service = FakeVerificationService()
        service.match_error = VerificationServiceError("model unreachable")
        result = verify_identity(SELFIE_URI, CCTV_URI, service)

        assert isinstance(result, ErrorResult)
        assert result.message == "Failed to get AI insights: model unreachable"
        assert service.enhance_calls == []

    def test_enhance_error_is_reported(self):
        service = FakeVerificationService(judgment="The jawline contour is fundamentally different.")
        service.enhance_error = RuntimeError("quota exceeded")
        result = verify_identity(SELFIE_URI, CCTV_URI, service)

        assert result.status == "error"
        assert result.message == "Failed to get AI insights: quota exceeded"

    def test_invalid_selfie_never_calls_service(self):
        service = FakeVerificationService()
        result = verify_identity("not-a-data-uri", CCTV_URI, service)

        assert result.status == "error"
        assert result.message.startswith("Invalid input:")
        assert "Selfie" in result.message
        assert service.match_calls == []

    def test_both_invalid_are_reported(self):
        result = verify_identity("bad", "worse", FakeVerificationService())
        assert "Selfie" in result.message
        assert "CCTV frame" in result.message

    def test_verified_message_constant(self):
        assert VERIFIED_MESSAGE == "Identity verified successfully."

    def test_results_are_immutable(self):
        result = verify_identity(SELFIE_URI, CCTV_URI, FakeVerificationService())
        with pytest.raises(ValidationError):
            result.message = "changed"
