"""Pydantic schemas."""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

WaitPolicy = Literal["load", "domcontentloaded", "networkidle", "commit", "networkquiet"]

MAX_VIEWPORT_DIMENSION = 4096

# ==================== Extraction ====================


class ActionKind(str, Enum):
    """Extraction/analysis mode selected by the caller."""

    ANALYZE_IMAGE = "analyze_image"
    SUMMARIZE_TEXT = "summarize_text"
    EXTRACT_HTML = "extract_html"
    EXTRACT_STRUCTURED = "extract_structured"


class Viewport(BaseModel):
    """Browser viewport override."""

    width: int = Field(..., gt=0, le=MAX_VIEWPORT_DIMENSION)
    height: int = Field(..., gt=0, le=MAX_VIEWPORT_DIMENSION)


class RenderOptions(BaseModel):
    """Viewport, capture and wait configuration for a page load."""

    model_config = ConfigDict(populate_by_name=True)

    viewport: Optional[Viewport] = None
    full_page: bool = Field(False, alias="fullPage")
    wait_for_selector: Optional[str] = Field(None, alias="waitForSelector")
    wait_until: Optional[WaitPolicy] = Field(None, alias="waitUntil")

    @field_validator("wait_for_selector")
    @classmethod
    def _blank_selector_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class ExtractionRequest(BaseModel):
    """Request body accepted by the extraction endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    url: AnyHttpUrl
    action: ActionKind
    # Declared after ``action`` so the validator below can read it.
    prompt: Optional[str] = Field(None, validate_default=True)
    model: Optional[str] = None
    render_options: RenderOptions = Field(default_factory=RenderOptions, alias="renderOptions")
    output_schema: Optional[Dict[str, Any]] = Field(
        None, alias="schema", description="JSON Schema the structured result should satisfy."
    )

    @field_validator("prompt")
    @classmethod
    def _prompt_required_for_images(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is not None and not value.strip():
            value = None
        if value is None and info.data.get("action") == ActionKind.ANALYZE_IMAGE:
            raise ValueError("prompt is required when action is 'analyze_image'")
        return value

    @field_validator("model")
    @classmethod
    def _blank_model_is_absent(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("output_schema")
    @classmethod
    def _schema_is_well_formed(cls, value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if value is None:
            return None
        try:
            validator_for(value).check_schema(value)
        except SchemaError as exc:
            raise ValueError(f"schema is not a valid JSON Schema: {exc.message}") from exc
        return value


class ExtractionMetadata(BaseModel):
    """Timing and provenance attached to every successful extraction."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    url: str
    action: str
    model_used: str = Field(..., alias="modelUsed")
    execution_time_ms: int = Field(..., alias="executionTimeMs")
    inference_performed: bool = Field(..., alias="inferencePerformed")
    input_truncated: bool = Field(False, alias="inputTruncated")


class ExtractionResponse(BaseModel):
    """Success envelope for the extraction endpoint."""

    success: Literal[True] = True
    data: Dict[str, Any]
    metadata: ExtractionMetadata


class ErrorBody(BaseModel):
    """Error description inside the failure envelope."""

    message: str
    details: Optional[List[Dict[str, Any]]] = None


class ErrorResponse(BaseModel):
    """Failure envelope shared by all endpoints."""

    success: Literal[False] = False
    error: ErrorBody


# ==================== Link analysis ====================


class AnalyzeLinkRequest(BaseModel):
    """Request body for the link analysis endpoint."""

    url: AnyHttpUrl


class AnalyzeLinkResponse(BaseModel):
    """Summary produced for a single link."""

    model_config = ConfigDict(populate_by_name=True)

    analysis: str
    original_url: str = Field(..., alias="originalUrl")
    timestamp: str
    truncated: bool = False


# ==================== Feedback ====================


class FeedbackRequest(BaseModel):
    """Feedback submitted for a generated message."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(..., alias="messageId", min_length=1, max_length=200)
    feedback_type: Literal["good", "bad"] = Field(..., alias="feedbackType")
    comment: Optional[str] = None


class FeedbackResponse(BaseModel):
    """Acknowledgement returned after storing feedback."""

    success: bool = True
    message: str


# ==================== Code generation ====================


class GenerateRequest(BaseModel):
    """Request body for the code generation endpoint."""

    prompt: str

    @field_validator("prompt")
    @classmethod
    def _prompt_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Prompt is required")
        return value


class GenerateResponse(BaseModel):
    """Generated code returned by the model."""

    model_config = ConfigDict(populate_by_name=True)

    generated_code: str = Field(..., alias="generatedCode")
    timestamp: str
