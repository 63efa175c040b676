from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .data_uri import parse_image_data_uri


# Request models
class ReceivePhotoRequest(BaseModel):
    selfieDataUri: str = Field(validation_alias=AliasChoices("selfieDataUri", "imageDataUri"))
    cctvDataUri: Optional[str] = None

    @field_validator("selfieDataUri", "cctvDataUri")
    @classmethod
    def _must_be_image_data_uri(cls, value, info):
        if value is not None:
            parse_image_data_uri(value, info.field_name)
        return value


# Response models
class PhotoReceivedResponse(BaseModel):
    status: Literal["success"] = "success"
    message: str
    version: int


class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    message: str
    errors: Optional[Dict[str, List[str]]] = None


class LatestSelfieResponse(BaseModel):
    selfieDataUri: Optional[str] = None
    version: Optional[int] = None


class VerifiedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["verified"] = "verified"
    message: str


class FailedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    summary: str
    enhancedImageUri: str
    message: str


class ErrorResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["error"] = "error"
    message: str


VerificationResult = Annotated[Union[VerifiedResult, FailedResult, ErrorResult], Field(discriminator="status")]
verification_result_adapter = TypeAdapter(VerificationResult)


# Structured judgment requested from the model
class MatchJudgment(BaseModel):
    verdict: Literal["match", "no_match"]
    reason: str = ""


def field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten pydantic errors into ``{field: [messages]}``."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "body"
        cause = err.get("ctx", {}).get("error")
        message = str(cause) if cause is not None else err["msg"]
        errors.setdefault(field, []).append(message)
    return errors
