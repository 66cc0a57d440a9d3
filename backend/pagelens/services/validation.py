"""Request validation performed before any remote resource is acquired."""

from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from pagelens.config import config
from pagelens.errors import InputValidationError
from pagelens.schemas import ActionKind, ExtractionRequest

FIELD_ALIASES = {
    "render_options": "renderOptions",
    "output_schema": "schema",
    "full_page": "fullPage",
    "wait_for_selector": "waitForSelector",
    "wait_until": "waitUntil",
    "message_id": "messageId",
    "feedback_type": "feedbackType",
}


def default_model_for(action: ActionKind) -> str:
    """Return the configured default model for an action kind."""
    if action is ActionKind.ANALYZE_IMAGE:
        return config.DEFAULT_IMAGE_MODEL
    return config.DEFAULT_TEXT_MODEL


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Flatten pydantic error entries into ``{field, message, type}`` items.

    Args:
        errors: Entries as returned by ``ValidationError.errors()`` or
            FastAPI's ``RequestValidationError.errors()``.

    Returns:
        List[Dict[str, Any]]: One item per failing field, with the field path
        joined by dots and expressed in wire (camelCase) names.
    """
    details: List[Dict[str, Any]] = []
    for error in errors:
        loc = list(error.get("loc", ()))
        if loc and loc[0] == "body":
            loc = loc[1:]
        parts = [FIELD_ALIASES.get(str(part), str(part)) for part in loc]
        details.append(
            {
                "field": ".".join(parts) or "body",
                "message": error.get("msg", "Invalid value"),
                "type": error.get("type", "value_error"),
            }
        )
    return details


def validate_extraction_request(payload: Any) -> ExtractionRequest:
    """Validate an untyped request body into an ``ExtractionRequest``.

    Args:
        payload: Decoded JSON body.

    Returns:
        ExtractionRequest: The validated request with ``model`` filled from
        the per-action default when the caller omitted it.

    Raises:
        InputValidationError: When the body is not an object or any field
        fails validation.
    """
    if not isinstance(payload, dict):
        raise InputValidationError(
            "Invalid request body",
            details=[{"field": "body", "message": "Request body must be a JSON object", "type": "dict_type"}],
        )

    try:
        request = ExtractionRequest.model_validate(payload)
    except ValidationError as exc:
        raise InputValidationError("Invalid request body", details=format_validation_errors(exc.errors())) from exc

    if request.model is None:
        request = request.model_copy(update={"model": default_model_for(request.action)})
    return request
