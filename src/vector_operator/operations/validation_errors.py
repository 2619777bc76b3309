"""Utilities for reporting malformed pipeline components.

Pipeline components are decoded with Pydantic (see ``models.components``).
When a tenant's payload does not match a component schema, a
``ValidationError`` is raised deep inside the decode. This module turns those
errors into a ``ComponentDecodeError`` whose message names the pipeline, the
component and each offending field, so the failure is actionable from the
operator log alone.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, TypeAlias

from pydantic import ValidationError

from ..models.components import ComponentKind
from ..models.resources import Pipeline

# Type alias for JSON-compatible values
JsonValue: TypeAlias = dict[str, Any] | list[Any] | str | int | float | bool | None

# Maximum length for JSON values in error messages
MAX_JSON_VALUE_LENGTH = 200

logger = logging.getLogger("vector_operator.operations.validation_errors")


@dataclass(frozen=True, slots=True)
class ValidationErrorDetails:
    """Parsed details from a Pydantic validation error.

    Attributes:
        field_path: Dotted path to the field that caused the error.
        error_type: The Pydantic error type (e.g., "missing", "int_parsing").
        error_message: The human-readable error message.
        input_value: The actual input value that caused the error.

    """

    field_path: str
    error_type: str
    error_message: str
    input_value: Any


class ComponentDecodeError(ValueError):
    """Raised when a pipeline component payload cannot be decoded.

    Attributes:
        pipeline: ``namespace/name`` of the offending pipeline.
        component: Local name of the offending component, if known.
        errors: Parsed details of every validation failure.

    """

    def __init__(
        self,
        message: str,
        *,
        pipeline: str,
        component: str | None = None,
        errors: list[ValidationErrorDetails] | None = None,
    ) -> None:
        """Initialize with the formatted message and its structured details."""
        self.pipeline = pipeline
        self.component = component
        self.errors = errors or []
        super().__init__(message)


def pipeline_ref(pipeline: Pipeline) -> str:
    """Return a short human-readable reference to a pipeline."""
    if pipeline.is_cluster_scoped:
        return f"{pipeline.kind.value} {pipeline.name}"
    return f"{pipeline.kind.value} {pipeline.namespace}/{pipeline.name}"


def _format_json_value(value: JsonValue, max_length: int = MAX_JSON_VALUE_LENGTH) -> str:
    """Format a value as compact JSON with truncation for large values."""
    try:
        formatted = json.dumps(value)
    except (TypeError, ValueError):
        return str(value)[:max_length]
    else:
        if len(formatted) > max_length:
            return formatted[: max_length - 3] + "..."
        return formatted


def parse_validation_error(validation_error: ValidationError) -> list[ValidationErrorDetails]:
    """Parse a Pydantic ValidationError into structured details.

    Args:
        validation_error: The Pydantic ValidationError to parse.

    Returns:
        List of ValidationErrorDetails for each error in the validation failure.

    """
    details: list[ValidationErrorDetails] = []
    for error in validation_error.errors():
        loc = tuple(error.get("loc", ()))
        details.append(
            ValidationErrorDetails(
                field_path=".".join(str(part) for part in loc),
                error_type=error.get("type", "unknown"),
                error_message=error.get("msg", "Unknown error"),
                input_value=error.get("input", None),
            )
        )
    return details


def _describe(detail: ValidationErrorDetails) -> str:
    field_desc = f'"{detail.field_path}"' if detail.field_path else "the component"
    if detail.error_type == "missing":
        return f"{field_desc} is required"
    return f"{field_desc}: {detail.error_message} (got {_format_json_value(detail.input_value)})"


def component_decode_error(
    *,
    pipeline: Pipeline,
    kind: ComponentKind,
    component: str | None,
    exc: ValidationError,
) -> ComponentDecodeError:
    """Build a ``ComponentDecodeError`` from a component's validation failure.

    Args:
        pipeline: The pipeline declaring the component.
        kind: Whether the component is a source, transform or sink.
        component: The component's local name.
        exc: The Pydantic validation error raised while decoding.

    Returns:
        The error to raise, chained by the caller.

    """
    details = parse_validation_error(exc)
    ref = pipeline_ref(pipeline)
    singular = kind.value.rstrip("s")
    problems = "; ".join(_describe(detail) for detail in details) or str(exc)
    message = f'Invalid {singular} "{component}" in {ref}: {problems}'
    logger.debug("Decode failure in %s: %s", ref, details)
    return ComponentDecodeError(message, pipeline=ref, component=component, errors=details)


def section_decode_error(*, pipeline: Pipeline, kind: ComponentKind, value: object) -> ComponentDecodeError:
    """Build a ``ComponentDecodeError`` for a ``sources``/``transforms``/``sinks`` block that is not a mapping."""
    ref = pipeline_ref(pipeline)
    message = f'Invalid {ref}: "{kind.value}" must be a mapping of component names, got {type(value).__name__}'
    return ComponentDecodeError(message, pipeline=ref)


__all__ = [
    "ComponentDecodeError",
    "ValidationErrorDetails",
    "component_decode_error",
    "parse_validation_error",
    "pipeline_ref",
    "section_decode_error",
]
