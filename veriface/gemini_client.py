"""
Gemini-backed verification service.

Two blocking calls to the hosted model: a face-match judgment over a selfie
and a CCTV frame, and an "enhanced" rendition of the CCTV frame.
"""

import logging
from typing import Dict, Optional

import google.generativeai as genai
from pydantic import ValidationError

from . import settings
from .data_uri import ImagePayload, encode_data_uri, parse_image_data_uri
from .schemas import MatchJudgment

logger = logging.getLogger(__name__)

# Judgment returned for a confirmed match
JUDGMENT_SENTINEL = "Verified successful: The same person is present in both images."

MATCH_PROMPT = """You are a senior security analyst specialized in face verification systems. Your primary goal is to prevent false positives by being highly critical of apparent matches.

Task: You are given a selfie followed by a separate CCTV image. Determine if any face in the CCTV image is convincingly and structurally the same as the person in the selfie.

The CCTV image may contain multiple people. Compare the selfie against each individual face present in the CCTV image.

Superficial variations to IGNORE (these are never reasons for failure):
- Lighting, shadows, exposure.
- Facial expressions.
- Minor skin tone shifts.
- Hairstyles, hats, non-obscuring glasses, accessories.
- Typical facial hair changes (stubble vs. clean-shaven, moderate beard growth).
- Apparent changes caused by moderate camera angle differences, unless a core structural feature is fundamentally different.

Critical structural features to FOCUS ON:
- Overall face shape (if clearly different and not an angle artifact).
- Relative spacing and proportions of eyes, nose and mouth.
- Fundamental nose structure (bridge, tip, nostrils).
- Jawline and chin contour.
- Ear shape and placement (if visible).

Decision criteria:
1. match: at least one face in the CCTV image shows a strong and unambiguous structural match to the selfie across multiple key landmarks, and you have high confidence it is the same person.
2. no_match: no face meets that bar, including when the closest-looking face still has at least one clear structural difference. If there is reasonable doubt, declare no_match.

Respond with a JSON object and nothing else:
{"verdict": "match" | "no_match", "reason": "<one sentence>"}
For no_match, "reason" must state the single most prominent structural difference (e.g. "The jawline contour is fundamentally different.").
Your default stance is skepticism."""

ENHANCE_PROMPT = (
    "Enhance the quality of the CCTV image. Improve brightness and contrast, "
    "remove noise and blurriness. Return the enhanced image."
)


MATCH_GENERATION_CONFIG = {"response_mime_type": "application/json", "temperature": 0}

# Image output must be requested explicitly
ENHANCE_GENERATION_CONFIG = {"response_modalities": ["TEXT", "IMAGE"]}

class VerificationServiceError(Exception):
    """The model service answered, but not with what we asked for."""


def _image_part(payload: ImagePayload) -> Dict:
    return {"mime_type": payload.mime_type, "data": payload.data}


def _response_text(response) -> str:
    try:
        return (response.text or "").strip()
    except ValueError as e:
        # .text raises when the candidate was blocked or has no parts
        raise VerificationServiceError(f"AI response contained no text: {e}")


class GeminiVerificationService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        match_model: str = settings.GEMINI_MATCH_MODEL,
        enhance_model: str = settings.GEMINI_ENHANCE_MODEL,
        timeout: Optional[float] = None,
        match_client=None,
        enhance_client=None,
    ):
        if api_key:
            genai.configure(api_key=api_key)
        self.match_model_name = match_model
        self.enhance_model_name = enhance_model
        self.timeout = timeout
        self.match_client = match_client or genai.GenerativeModel(match_model)
        self.enhance_client = enhance_client or genai.GenerativeModel(enhance_model)

    def _request_options(self) -> Optional[Dict]:
        return {"timeout": self.timeout} if self.timeout else None

    def summarize_match(self, selfie_data_uri: str, cctv_data_uri: str) -> str:
        """
        Ask the model whether the selfie person appears in the CCTV frame.

        Returns:
            JUDGMENT_SENTINEL on a match, otherwise the model's one-sentence
            description of the structural difference.

        Raises:
            VerificationServiceError: If the model output is missing or malformed
        """
        selfie = parse_image_data_uri(selfie_data_uri, "selfieDataUri")
        cctv = parse_image_data_uri(cctv_data_uri, "cctvDataUri")

        logger.info(f"Requesting match judgment from {self.match_model_name}")
        response = self.match_client.generate_content(
            ["Selfie:", _image_part(selfie), "CCTV image:", _image_part(cctv), MATCH_PROMPT],
            generation_config=MATCH_GENERATION_CONFIG,
            request_options=self._request_options(),
        )

        text = _response_text(response)
        try:
            judgment = MatchJudgment.model_validate_json(text)
        except ValidationError:
            logger.error(f"AI did not return a valid judgment. Raw output: {text[:500]!r}")
            raise VerificationServiceError(
                "AI failed to generate an alert summary. The response from the AI was empty, "
                "malformed, or missing the verdict field."
            )

        if judgment.verdict == "match":
            logger.info("Model verdict: match")
            return JUDGMENT_SENTINEL

        reason = judgment.reason.strip()
        if not reason:
            raise VerificationServiceError(
                "AI failed to generate an alert summary. The response from the AI was missing the summary field."
            )
        logger.info(f"Model verdict: no_match ({reason})")
        return reason

    def enhance_image(self, image_data_uri: str) -> str:
        """Return an enhanced copy of the image as a data URI."""
        image = parse_image_data_uri(image_data_uri, "cctvDataUri")

        logger.info(f"Requesting enhanced CCTV image from {self.enhance_model_name}")
        response = self.enhance_client.generate_content(
            [_image_part(image), ENHANCE_PROMPT],
            generation_config=ENHANCE_GENERATION_CONFIG,
            request_options=self._request_options(),
        )

        for candidate in response.candidates or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                blob = getattr(part, "inline_data", None)
                if blob and (blob.mime_type or "").startswith("image/") and blob.data:
                    logger.info(f"Enhanced image received: {blob.mime_type}, {len(blob.data)} bytes")
                    return encode_data_uri(blob.data, blob.mime_type)

        raise VerificationServiceError("AI did not return an enhanced image.")


def build_service() -> GeminiVerificationService:
    if not settings.GEMINI_API_KEY:
        logger.warning("GEMINI_API_KEY is not set; model calls will fail until it is configured")
    return GeminiVerificationService(
        api_key=settings.GEMINI_API_KEY,
        match_model=settings.GEMINI_MATCH_MODEL,
        enhance_model=settings.GEMINI_ENHANCE_MODEL,
        timeout=settings.GEMINI_TIMEOUT_SECONDS,
    )
