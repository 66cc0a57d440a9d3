"""Recovery of JSON documents embedded in free-text model replies."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import jsonschema
from referencing.exceptions import Unresolvable

from pagelens.errors import StructuredResolutionError

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?[ \t]*\r?\n?(.*?)```", re.DOTALL | re.IGNORECASE)
LOG_PREVIEW_CHARS = 500


@dataclass(frozen=True)
class StructuredResult:
    """Outcome of resolving a model reply into JSON.

    ``resolved`` is ``False`` when the reply could not be parsed; ``value`` is
    then ``None`` and ``error`` explains why.
    """

    resolved: bool
    value: Any = None
    candidate: str = ""
    error: Optional[str] = None
    schema_errors: List[str] = field(default_factory=list)


def extract_candidate(reply: str) -> str:
    """Return the interior of the first fenced block, or the whole reply."""
    match = FENCED_BLOCK_PATTERN.search(reply)
    if match:
        return match.group(1).strip()
    return reply.strip()


def parse_candidate(candidate: str) -> Any:
    """Parse a candidate string as JSON.

    Raises:
        StructuredResolutionError: When the candidate is not valid JSON.
    """
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise StructuredResolutionError(f"Model reply is not valid JSON: {exc}", candidate) from exc


def resolve_structured_reply(reply: str, schema: Optional[Dict[str, Any]] = None) -> StructuredResult:
    """Resolve a model reply into a structured result without raising.

    Args:
        reply: Raw text returned by the model.
        schema: Optional JSON Schema the parsed value is checked against.
            Violations are reported but do not discard the value.

    Returns:
        StructuredResult: Resolved value, or an unresolved marker when the
        reply holds no parseable JSON.
    """
    candidate = extract_candidate(reply or "")
    try:
        value = parse_candidate(candidate)
    except StructuredResolutionError as exc:
        logger.warning("%s. Candidate: %s", exc.message, candidate[:LOG_PREVIEW_CHARS])
        return StructuredResult(resolved=False, candidate=candidate, error=exc.message)

    schema_errors: List[str] = []
    if schema:
        try:
            jsonschema.validate(instance=value, schema=schema)
        except jsonschema.exceptions.ValidationError as e:
            schema_errors.append(e.message)
            logger.warning("Structured result does not match the declared schema: %s", e.message)
        except jsonschema.exceptions.SchemaError as e:
            schema_errors.append(f"Invalid schema: {e.message}")
            logger.warning("Declared schema is invalid: %s", e.message)
        except Unresolvable as e:
            schema_errors.append(f"Unresolvable schema reference: {e}")
            logger.warning("Declared schema has an unresolvable reference: %s", e)

    return StructuredResult(resolved=True, value=value, candidate=candidate, schema_errors=schema_errors)
