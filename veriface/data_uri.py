"""
Image payload helpers.

Images travel between the browser, the kiosk and the model service as
``data:image/<subtype>;base64,<bytes>`` strings.
"""

import base64
import binascii
import mimetypes
import re
from dataclasses import dataclass

IMAGE_PREFIX = "data:image/"
BASE64_BODY = re.compile(r"[A-Za-z0-9+/]*={0,2}")


class InvalidImagePayload(ValueError):
    """Raised when a field does not hold an image data URI."""

    def __init__(self, field: str, reason: str):
        super().__init__(reason)
        self.field = field
        self.reason = reason


@dataclass(frozen=True)
class ImagePayload:
    mime_type: str
    data: bytes


def describe_field(field: str) -> str:
    """Human-readable name for a payload field, used in error messages."""
    if field in ("selfieDataUri", "imageDataUri", "programmaticSelfieDataUri", "selfie"):
        return "Selfie"
    if field == "cctvDataUri":
        return "CCTV frame"
    return field


def parse_image_data_uri(value, field: str = "image") -> ImagePayload:
    """
    Validate and decode an image data URI.

    Args:
        value: Candidate data URI
        field: Name of the field the value came from (reported on failure)

    Returns:
        ImagePayload with the declared MIME type and decoded bytes

    Raises:
        InvalidImagePayload: If the value is not a base64 image data URI
    """
    label = describe_field(field)
    if not isinstance(value, str) or not value.startswith(IMAGE_PREFIX):
        raise InvalidImagePayload(
            field,
            f"{label} must be a valid image data URI (e.g., data:image/jpeg;base64,...).",
        )

    header, sep, body = value.partition(",")
    if not sep or not body:
        raise InvalidImagePayload(field, f"{label} data URI has no data section.")

    params = header[len("data:"):].split(";")
    mime_type = params[0]
    if mime_type == "image/" or "base64" not in params[1:]:
        raise InvalidImagePayload(field, f"{label} data URI must declare an image type and use base64 encoding.")

    if not BASE64_BODY.fullmatch(body):
        raise InvalidImagePayload(field, f"{label} data URI is not valid base64.")
    try:
        data = base64.b64decode(body)
    except binascii.Error:
        raise InvalidImagePayload(field, f"{label} data URI is not valid base64.")

    return ImagePayload(mime_type=mime_type, data=data)


def encode_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def read_image_file(path: str) -> str:
    """Load an image file from disk as a data URI, typed by its extension."""
    mime_type, _ = mimetypes.guess_type(path)
    if not mime_type or not mime_type.startswith("image/"):
        raise InvalidImagePayload("selfie", f"Not an image file: {path}")
    with open(path, "rb") as f:
        return encode_data_uri(f.read(), mime_type)


def preview(value: str, length: int = 50) -> str:
    """Short log-safe view of a (possibly huge) data URI."""
    return f"length: {len(value)}, first {length} chars: {value[:length]}..."
