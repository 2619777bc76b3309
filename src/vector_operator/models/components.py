"""Pydantic models for Vector sources, transforms and sinks.

Raw component mappings from pipelines are decoded as a tagged union keyed by
``type``. Known component types have a dedicated options schema; every other
type falls back to ``ComponentOptions``, which accepts any fields. Unknown
fields are preserved on every schema so newer Vector options pass through
untouched.

Decoding raises ``pydantic.ValidationError``; callers that need a friendlier
message convert it (see ``operations.validation_errors``).
"""

from __future__ import annotations

import json
import zlib
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

KUBERNETES_SOURCE_TYPE = "kubernetes_logs"
INTERNAL_METRICS_SOURCE_TYPE = "internal_metrics"
BLACKHOLE_SINK_TYPE = "blackhole"
INTERNAL_METRICS_SINK_TYPE = "prometheus_exporter"
ROUTE_TRANSFORM_TYPE = "route"


class ComponentKind(StrEnum):
    """Position of a component in the agent graph."""

    SOURCE = "sources"
    TRANSFORM = "transforms"
    SINK = "sinks"


# =============================================================================
# Generic Fallback Model for Unknown Component Types
# =============================================================================


class ComponentOptions(BaseModel):
    """Options for component types without a dedicated schema.

    This model accepts any extra fields and is used as a fallback when the
    component type is not recognized.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# Sources
# =============================================================================


class KubernetesLogsOptions(ComponentOptions):
    """Options for the ``kubernetes_logs`` source (selectors are carried on ``Source``)."""

    auto_partial_merge: bool | None = None
    self_node_name: str | None = None
    exclude_paths_glob_patterns: list[str] | None = None
    include_paths_glob_patterns: list[str] | None = None
    glob_minimum_cooldown_ms: int | None = Field(default=None, ge=0)
    max_line_bytes: int | None = Field(default=None, gt=0)
    timezone: str | None = None


class InternalMetricsOptions(ComponentOptions):
    """Options for the ``internal_metrics`` source."""

    scrape_interval_secs: float | None = Field(default=None, gt=0)
    namespace: str | None = None


# =============================================================================
# Transforms
# =============================================================================


class FilterOptions(ComponentOptions):
    """Options for the ``filter`` transform."""

    condition: str | dict[str, Any]


class RemapOptions(ComponentOptions):
    """Options for the ``remap`` transform."""

    source: str | None = None
    file: str | None = None
    drop_on_error: bool | None = None
    drop_on_abort: bool | None = None


# =============================================================================
# Sinks
# =============================================================================


class BlackholeOptions(ComponentOptions):
    """Options for the ``blackhole`` sink."""

    rate: int | None = Field(default=None, ge=0)
    print_interval_secs: int | None = Field(default=None, ge=0)


class PrometheusExporterOptions(ComponentOptions):
    """Options for the ``prometheus_exporter`` sink."""

    address: str | None = None
    default_namespace: str | None = None
    flush_period_secs: int | None = Field(default=None, gt=0)


class ConsoleOptions(ComponentOptions):
    """Options for the ``console`` sink."""

    encoding: dict[str, Any]
    target: str | None = None


SOURCE_OPTIONS_MAP: dict[str, type[ComponentOptions]] = {
    KUBERNETES_SOURCE_TYPE: KubernetesLogsOptions,
    INTERNAL_METRICS_SOURCE_TYPE: InternalMetricsOptions,
}

TRANSFORM_OPTIONS_MAP: dict[str, type[ComponentOptions]] = {
    "filter": FilterOptions,
    "remap": RemapOptions,
}

SINK_OPTIONS_MAP: dict[str, type[ComponentOptions]] = {
    BLACKHOLE_SINK_TYPE: BlackholeOptions,
    INTERNAL_METRICS_SINK_TYPE: PrometheusExporterOptions,
    "console": ConsoleOptions,
}

_OPTIONS_MAPS: dict[ComponentKind, dict[str, type[ComponentOptions]]] = {
    ComponentKind.SOURCE: SOURCE_OPTIONS_MAP,
    ComponentKind.TRANSFORM: TRANSFORM_OPTIONS_MAP,
    ComponentKind.SINK: SINK_OPTIONS_MAP,
}


def get_options_class(kind: ComponentKind, component_type: str) -> type[ComponentOptions]:
    """Get the options class for a component type.

    Args:
        kind: Whether the component is a source, transform or sink.
        component_type: The Vector component type (e.g., "kubernetes_logs").

    Returns:
        The Pydantic model class for the component's options.
        Returns the generic ComponentOptions for unknown types.

    """
    return _OPTIONS_MAPS[kind].get(component_type, ComponentOptions)


def parse_options(kind: ComponentKind, component_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Validate raw options against the schema for their type.

    Only the fields present in ``data`` are returned, so schema defaults never
    leak into the rendered configuration.
    """
    options_class = get_options_class(kind, component_type)
    options = options_class.model_validate(data)
    return options.model_dump(mode="json", exclude_unset=True, by_alias=True)


# =============================================================================
# Component Models
# =============================================================================


class _SourceEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    extra_namespace_label_selector: str = ""
    extra_label_selector: str = ""
    extra_field_selector: str = ""


class _TransformEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    inputs: list[str] = Field(default_factory=list)
    route: dict[str, Any] = Field(default_factory=dict)


class _SinkEnvelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    inputs: list[str] = Field(default_factory=list)


class Source(BaseModel):
    """A node that originates events."""

    name: str
    type: str
    extra_namespace_label_selector: str = ""
    extra_label_selector: str = ""
    extra_field_selector: str = ""
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def decode(cls, name: str, raw: object) -> Source:
        """Decode a raw pipeline entry into a typed source."""
        envelope = _SourceEnvelope.model_validate(raw)
        return cls(
            name=name,
            type=envelope.type,
            extra_namespace_label_selector=envelope.extra_namespace_label_selector,
            extra_label_selector=envelope.extra_label_selector,
            extra_field_selector=envelope.extra_field_selector,
            options=parse_options(ComponentKind.SOURCE, envelope.type, envelope.model_extra or {}),
        )

    def to_config(self) -> dict[str, Any]:
        """Render the source as it appears under ``sources`` in the agent config."""
        data: dict[str, Any] = {**self.options, "type": self.type}
        if self.extra_namespace_label_selector:
            data["extra_namespace_label_selector"] = self.extra_namespace_label_selector
        if self.extra_label_selector:
            data["extra_label_selector"] = self.extra_label_selector
        if self.extra_field_selector:
            data["extra_field_selector"] = self.extra_field_selector
        return data


class Transform(BaseModel):
    """A node that reshapes or routes events."""

    name: str
    type: str
    inputs: list[str] = Field(default_factory=list)
    route: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def decode(cls, name: str, raw: object) -> Transform:
        """Decode a raw pipeline entry into a typed transform."""
        envelope = _TransformEnvelope.model_validate(raw)
        return cls(
            name=name,
            type=envelope.type,
            inputs=envelope.inputs,
            route=envelope.route,
            options=parse_options(ComponentKind.TRANSFORM, envelope.type, envelope.model_extra or {}),
        )

    def to_config(self) -> dict[str, Any]:
        """Render the transform as it appears under ``transforms`` in the agent config."""
        data: dict[str, Any] = {**self.options, "type": self.type, "inputs": list(self.inputs)}
        if self.route:
            data["route"] = dict(self.route)
        return data


class Sink(BaseModel):
    """A node that exports events."""

    name: str
    type: str
    inputs: list[str] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)
    options_hash: str = ""

    @classmethod
    def decode(cls, name: str, raw: object) -> Sink:
        """Decode a raw pipeline entry into a typed sink with its options hash."""
        envelope = _SinkEnvelope.model_validate(raw)
        options = parse_options(ComponentKind.SINK, envelope.type, envelope.model_extra or {})
        return cls(
            name=name,
            type=envelope.type,
            inputs=envelope.inputs,
            options=options,
            options_hash=hash_options(options),
        )

    def to_config(self) -> dict[str, Any]:
        """Render the sink as it appears under ``sinks`` in the agent config."""
        return {**self.options, "type": self.type, "inputs": list(self.inputs)}


def canonical_json(value: object) -> bytes:
    """Serialize ``value`` deterministically (sorted keys, compact separators)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":")).encode("utf-8")


def config_hash(data: bytes) -> int:
    """Return the CRC-32 (IEEE) checksum used for config and options hashes."""
    return zlib.crc32(data) & 0xFFFFFFFF


def hash_options(options: dict[str, Any]) -> str:
    """Return the merge key of a sink: the hash of its serialized options.

    Empty options hash the same as absent ones.
    """
    return str(config_hash(canonical_json(options or None)))


__all__ = [
    "BLACKHOLE_SINK_TYPE",
    "INTERNAL_METRICS_SINK_TYPE",
    "INTERNAL_METRICS_SOURCE_TYPE",
    "KUBERNETES_SOURCE_TYPE",
    "ROUTE_TRANSFORM_TYPE",
    "SINK_OPTIONS_MAP",
    "SOURCE_OPTIONS_MAP",
    "TRANSFORM_OPTIONS_MAP",
    "BlackholeOptions",
    "ComponentKind",
    "ComponentOptions",
    "ConsoleOptions",
    "FilterOptions",
    "InternalMetricsOptions",
    "KubernetesLogsOptions",
    "PrometheusExporterOptions",
    "RemapOptions",
    "Sink",
    "Source",
    "Transform",
    "canonical_json",
    "config_hash",
    "get_options_class",
    "hash_options",
    "parse_options",
]
