"""
VeriFace API
Selfie hand-off and AI-assisted identity verification service.
"""

import hmac
import io
import logging
import threading
from typing import Dict, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__, settings
from .data_uri import encode_data_uri, preview
from .gemini_client import build_service
from .mailbox import SelfieMailbox
from .orchestrator import verify_identity
from .schemas import (
    ErrorEnvelope,
    ErrorResult,
    LatestSelfieResponse,
    PhotoReceivedResponse,
    ReceivePhotoRequest,
    VerificationResult,
    field_errors,
)

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

SERVICE_NAME = "VeriFace API"

# Initialize FastAPI app
app = FastAPI(
    title=SERVICE_NAME,
    description="""
## Selfie hand-off and identity verification

### Workflow:
1. A phone (or any client) posts a selfie to `POST /api/receive-photo`
2. The kiosk polls `GET /api/get-latest-selfie` and picks up new selfies
3. The kiosk captures a camera frame and submits both to `POST /verify`
4. Gemini judges whether the same person is in both images; on a mismatch it
   also returns an enhanced copy of the camera frame

### Result shapes:
- `{"status": "verified", "message"}`
- `{"status": "failed", "summary", "enhancedImageUri", "message"}`
- `{"status": "error", "message"}`
    """,
    version=__version__,
)

app.state.mailbox = SelfieMailbox()
app.state.service = None

# CORS headers per endpoint (every origin, restricted methods)
RECEIVE_PHOTO_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}
LATEST_SELFIE_CORS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

INVALID_JSON_MESSAGE = "Invalid JSON payload. Please send valid JSON with a selfieDataUri field."


# Dependencies
def get_mailbox(request: Request) -> SelfieMailbox:
    return request.app.state.mailbox


_service_lock = threading.Lock()


def get_verification_service(request: Request):
    if request.app.state.service is None:
        with _service_lock:
            # Concurrent first requests share a single configured client
            if request.app.state.service is None:
                request.app.state.service = build_service()
    return request.app.state.service


# Helpers
def _json(status_code: int, body: BaseModel, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def _intake_authorized(request: Request) -> bool:
    """Check the optional shared intake key (Bearer token or X-API-Key)."""
    if not settings.INTAKE_API_KEY:
        return True
    supplied = request.headers.get("x-api-key", "")
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        supplied = auth[7:].strip()
    return hmac.compare_digest(supplied.encode(), settings.INTAKE_API_KEY.encode())


def _consume_on_read() -> bool:
    mode = settings.SELFIE_POLL_MODE
    if mode not in settings.POLL_MODES:
        logger.warning(f"Unknown SELFIE_POLL_MODE {mode!r}, falling back to 'peek'")
        return False
    return mode == "consume"


def upload_to_data_uri(upload: UploadFile) -> str:
    """
    Convert an uploaded selfie into an image data URI.

    The bytes must open as an image. The upload's content type is used when it
    declares an image, otherwise the type Pillow detects.

    Raises:
        ValueError: If the file is too large or is not a readable image
    """
    raw = upload.file.read()
    max_bytes = settings.MAX_SELFIE_MB * 1024 * 1024
    if len(raw) > max_bytes:
        raise ValueError(f"Selfie image must be less than {settings.MAX_SELFIE_MB}MB.")

    try:
        with Image.open(io.BytesIO(raw)) as image:
            detected = Image.MIME.get(image.format or "")
            image.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        logger.error(f"Failed to load uploaded selfie: {str(e)}")
        raise ValueError("Failed to process uploaded selfie image.")

    mime_type = upload.content_type if (upload.content_type or "").startswith("image/") else detected
    if not mime_type:
        raise ValueError("Failed to process uploaded selfie image.")
    return encode_data_uri(raw, mime_type)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    """Render framework errors (404, 405, ...) in the common envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.get("/")
async def root():
    """Service banner."""
    return {
        "status": "online",
        "service": SERVICE_NAME,
        "version": __version__,
    }


@app.get("/health")
async def health_check(mailbox: SelfieMailbox = Depends(get_mailbox)):
    """Detailed health check endpoint."""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "match_model": settings.GEMINI_MATCH_MODEL,
        "enhance_model": settings.GEMINI_ENHANCE_MODEL,
        "model_api_key_configured": bool(settings.GEMINI_API_KEY),
        "intake_key_required": bool(settings.INTAKE_API_KEY),
        "poll_mode": "consume" if _consume_on_read() else "peek",
        "selfie_version": mailbox.version,
    }


@app.post("/api/receive-photo")
async def receive_photo(request: Request, mailbox: SelfieMailbox = Depends(get_mailbox)):
    """
    Store a selfie as the latest pending selfie.

    **Body:** `{"selfieDataUri": "data:image/...;base64,...", "cctvDataUri": optional}`

    **Returns:** `{"status": "success", "message", "version"}` or the error
    envelope with 400 (validation), 401 (intake key) or 500.
    """
    try:
        if not _intake_authorized(request):
            logger.warning("Rejected photo intake: missing or invalid API key")
            return _json(401, ErrorEnvelope(message="Missing or invalid API key."), RECEIVE_PHOTO_CORS)

        try:
            body = await request.json()
        except ValueError as e:
            logger.error(f"Invalid JSON payload: {e}")
            return _json(400, ErrorEnvelope(message=INVALID_JSON_MESSAGE), RECEIVE_PHOTO_CORS)

        if not isinstance(body, dict):
            return _json(400, ErrorEnvelope(message=INVALID_JSON_MESSAGE), RECEIVE_PHOTO_CORS)

        try:
            payload = ReceivePhotoRequest.model_validate(body)
        except ValidationError as e:
            errors = field_errors(e)
            logger.warning(f"Rejected photo intake: {errors}")
            return _json(400, ErrorEnvelope(message="Invalid input.", errors=errors), RECEIVE_PHOTO_CORS)

        pending = mailbox.put(payload.selfieDataUri)
        logger.info(f"Received selfie v{pending.version} ({preview(payload.selfieDataUri)})")

        return _json(
            200,
            PhotoReceivedResponse(message="Photo received successfully.", version=pending.version),
            RECEIVE_PHOTO_CORS,
        )

    except Exception as e:
        logger.error(f"Error processing /api/receive-photo request: {str(e)}", exc_info=True)
        return _json(500, ErrorEnvelope(message="Failed to process photo."), RECEIVE_PHOTO_CORS)


@app.options("/api/receive-photo")
async def receive_photo_preflight():
    return Response(status_code=204, headers=RECEIVE_PHOTO_CORS)


@app.get("/api/get-latest-selfie")
def get_latest_selfie(mailbox: SelfieMailbox = Depends(get_mailbox)):
    """
    Return the pending selfie (or null) and its version.

    In "consume" mode the slot is emptied by this read.
    """
    pending = mailbox.read(consume=_consume_on_read())
    body = LatestSelfieResponse(
        selfieDataUri=pending.data_uri if pending else None,
        version=pending.version if pending else None,
    )
    return JSONResponse(content=body.model_dump(), headers=LATEST_SELFIE_CORS)


@app.options("/api/get-latest-selfie")
async def get_latest_selfie_preflight():
    return Response(status_code=204, headers=LATEST_SELFIE_CORS)


@app.post("/verify", response_model=VerificationResult)
def verify(
    selfie: Optional[UploadFile] = File(None, description="Uploaded selfie image"),
    programmaticSelfieDataUri: Optional[str] = Form(None, description="Selfie data URI (takes precedence)"),
    cctvDataUri: Optional[str] = Form(None, description="Captured camera frame data URI"),
    service=Depends(get_verification_service),
):
    """
    Verify a selfie against a captured camera frame.

    Always answers 200 with one of the three result shapes; problems with the
    inputs or the model service are reported as `status: "error"`.
    """
    try:
        selfie_data_uri = programmaticSelfieDataUri
        if not selfie_data_uri:
            if selfie is None or not selfie.filename:
                return ErrorResult(message="Selfie image is required (either uploaded or provided programmatically).")
            try:
                selfie_data_uri = upload_to_data_uri(selfie)
            except ValueError as e:
                return ErrorResult(message=str(e))

        if not cctvDataUri:
            return ErrorResult(message="CCTV frame is required. Please ensure camera is working.")

        logger.info("Starting identity verification process")
        return verify_identity(selfie_data_uri, cctvDataUri, service)

    except Exception as e:
        logger.error(f"Unexpected error during verification: {str(e)}", exc_info=True)
        return ErrorResult(message="An unexpected error occurred during verification. Please try again.")


def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
