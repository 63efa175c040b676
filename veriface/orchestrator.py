import logging
from typing import List

from .data_uri import InvalidImagePayload, parse_image_data_uri
from .gemini_client import JUDGMENT_SENTINEL
from .schemas import ErrorResult, FailedResult, VerificationResult, VerifiedResult

logger = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Identity verified successfully."
FAILED_MESSAGE = "Identity verification did not confirm a match."


def verify_identity(selfie_data_uri: str, cctv_data_uri: str, service) -> VerificationResult:
    """
    Compare a selfie with a CCTV frame through the verification service.

    Enhancement is requested only when the service does not confirm a match.
    Never raises: every failure becomes an ErrorResult.

    Args:
        selfie_data_uri: Selfie image data URI
        cctv_data_uri: Captured camera frame data URI
        service: Object exposing summarize_match() and enhance_image()

    Returns:
        VerifiedResult, FailedResult or ErrorResult
    """
    problems: List[str] = []
    for value, field in ((selfie_data_uri, "selfieDataUri"), (cctv_data_uri, "cctvDataUri")):
        try:
            parse_image_data_uri(value, field)
        except InvalidImagePayload as e:
            problems.append(e.reason)
    if problems:
        message = f"Invalid input: {' '.join(problems)}"
        logger.warning(message)
        return ErrorResult(message=message)

    try:
        summary = service.summarize_match(selfie_data_uri, cctv_data_uri)

        if summary == JUDGMENT_SENTINEL:
            logger.info("✓ VERIFIED")
            return VerifiedResult(message=VERIFIED_MESSAGE)

        enhanced_uri = service.enhance_image(cctv_data_uri)
        logger.info(f"✗ NOT VERIFIED - {summary}")
        return FailedResult(summary=summary, enhancedImageUri=enhanced_uri, message=FAILED_MESSAGE)

    except Exception as e:
        logger.error(f"Error during AI processing: {str(e)}", exc_info=True)
        detail = str(e) or "An unknown error occurred during AI processing."
        return ErrorResult(message=f"Failed to get AI insights: {detail}")
