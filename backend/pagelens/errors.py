"""Error taxonomy shared by the extraction pipeline and the HTTP layer."""

from typing import Any, Dict, List, Optional


class PipelineError(Exception):
    """Base class for request-fatal pipeline failures.

    Subclasses pin a machine-readable ``code`` and the HTTP status used when
    the error reaches the outermost handler.
    """

    code = "pipeline_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None) -> None:
        """Store the human-readable message alongside optional field details."""
        super().__init__(message)
        self.message = message
        self.details = details


class InputValidationError(PipelineError):
    """Raised when the request body is malformed or incomplete."""

    code = "validation_error"
    status_code = 400


class SessionAcquisitionError(PipelineError):
    """Raised when the remote rendering service cannot provide a browser."""

    code = "session_acquisition_failed"


class NavigationError(PipelineError):
    """Raised when the target page fails to load in time."""

    code = "navigation_failed"

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to load {url}: {reason}")
        self.url = url


class SelectorTimeoutError(PipelineError):
    """Raised when an awaited selector never appears on the page."""

    code = "selector_timeout"

    def __init__(self, selector: str, timeout_ms: int, url: str) -> None:
        super().__init__(f"Selector '{selector}' did not appear on {url} within {timeout_ms}ms")
        self.selector = selector
        self.timeout_ms = timeout_ms
        self.url = url


class ExtractionError(PipelineError):
    """Raised when content cannot be read from an open page."""

    code = "extraction_failed"


class InferenceError(PipelineError):
    """Raised when the model service fails or returns a non-success status."""

    code = "inference_failed"

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        if upstream_status is not None:
            message = f"{message} (upstream status {upstream_status})"
        super().__init__(message)
        self.upstream_status = upstream_status


class PipelineTimeoutError(PipelineError):
    """Raised when a request exhausts its wall-clock budget."""

    code = "request_timeout"
    status_code = 504


class RequestAbandonedError(PipelineError):
    """Raised when the client disconnects before the pipeline finishes."""

    code = "client_disconnected"
    status_code = 499


class StructuredResolutionError(PipelineError):
    """Raised internally when a model reply is not parseable JSON.

    The shaper converts it into an unresolved result; it never reaches the
    HTTP layer.
    """

    code = "structured_resolution_failed"

    def __init__(self, message: str, candidate: str) -> None:
        super().__init__(message)
        self.candidate = candidate
