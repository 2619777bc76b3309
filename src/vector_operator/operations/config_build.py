"""Build one Vector agent configuration from many pipelines.

The builder is a pure function of (pipelines, Vector spec):

1. Extract every pipeline's components, renaming them to
   ``<namespace>.<pipeline>.<key>`` (``.<pipeline>.<key>`` for cluster
   pipelines) and rewriting intra-pipeline inputs to match.
2. Enforce tenancy: namespaced pipelines may only declare kubernetes_logs
   sources restricted to their own namespace, and may only read their own
   components.
3. Inject defaults (internal metrics pair, default source, default sink).
4. Optionally merge eligible kubernetes_logs sources behind one shared
   source and a route transform, and merge sinks with identical options.
5. Serialize to deterministic JSON with components keyed by name.

Errors raised here are terminal for the build: retrying with the same
pipelines cannot succeed.
"""

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ..models.components import (
    BLACKHOLE_SINK_TYPE,
    INTERNAL_METRICS_SINK_TYPE,
    INTERNAL_METRICS_SOURCE_TYPE,
    KUBERNETES_SOURCE_TYPE,
    ROUTE_TRANSFORM_TYPE,
    ComponentKind,
    Sink,
    Source,
    Transform,
    canonical_json,
    hash_options,
)
from ..models.resources import ApiSpec, Pipeline, VectorSpec, namespace_selector
from .selectors import route_condition
from .validation_errors import component_decode_error, pipeline_ref, section_decode_error

logger = logging.getLogger("vector_operator.operations.config_build")

DEFAULT_SOURCE_NAME = "defaultSource"
DEFAULT_SINK_NAME = "defaultSink"
INTERNAL_METRICS_SOURCE_NAME = "internalMetricsSource"
INTERNAL_METRICS_SINK_NAME = "internalMetricsSink"
MERGED_KUBERNETES_SOURCE_NAME = "mergedKubernetesSource"
MERGED_SOURCE_TRANSFORM_NAME = "merged"

DEFAULT_SINK_OPTIONS: dict[str, Any] = {"rate": 100, "print_interval_secs": 60}


class PipelineTypeError(ValueError):
    """A namespaced pipeline declared a source type other than kubernetes_logs."""


class PipelineScopeError(ValueError):
    """A namespaced pipeline tried to read logs from another namespace."""


class DuplicateComponentError(ValueError):
    """Two components resolved to the same global name."""


class VectorConfig(BaseModel):
    """The complete desired agent configuration."""

    data_dir: str
    api: ApiSpec
    sources: list[Source] = Field(default_factory=list)
    transforms: list[Transform] = Field(default_factory=list)
    sinks: list[Sink] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Flatten to the agent's config document, components keyed by name."""
        return {
            "data_dir": self.data_dir,
            "api": self.api.model_dump(mode="json", by_alias=True),
            "sources": {source.name: source.to_config() for source in self.sources},
            "transforms": {transform.name: transform.to_config() for transform in self.transforms},
            "sinks": {sink.name: sink.to_config() for sink in self.sinks},
        }

    def to_bytes(self) -> bytes:
        """Serialize deterministically; equal configurations yield equal bytes."""
        return canonical_json(self.to_document())

    def unresolved_inputs(self) -> list[str]:
        """Return inputs that name no source, transform or route output."""
        known = {source.name for source in self.sources} | {transform.name for transform in self.transforms}
        for transform in self.transforms:
            known.update(f"{transform.name}.{route}" for route in transform.route)
        consumers: list[Transform | Sink] = [*self.transforms, *self.sinks]
        return sorted({name for consumer in consumers for name in consumer.inputs if name not in known})


def add_prefix(namespace: str, name: str, key: str) -> str:
    """Return the global name of a pipeline's component.

    Cluster pipelines have no namespace, so their names start with the
    separator. Namespaces are never empty, which keeps the two name spaces
    disjoint: no namespaced input can spell a cluster component's name.
    """
    return f"{namespace}.{name}.{key}"


T = TypeVar("T", Source, Transform, Sink)


def _decode_section(
    pipeline: Pipeline,
    kind: ComponentKind,
    decoder: Callable[[str, object], T],
) -> list[T]:
    raw = getattr(pipeline.spec, kind.value)
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise section_decode_error(pipeline=pipeline, kind=kind, value=raw)

    components: list[T] = []
    for key in sorted(raw):
        name = add_prefix(pipeline.namespace, pipeline.name, key)
        try:
            components.append(decoder(name, raw[key]))
        except ValidationError as exc:
            raise component_decode_error(pipeline=pipeline, kind=kind, component=key, exc=exc) from exc
    return components


def _prefix_inputs(pipeline: Pipeline, inputs: list[str]) -> list[str]:
    return [add_prefix(pipeline.namespace, pipeline.name, name) for name in inputs]


def get_sources(pipeline: Pipeline) -> list[Source]:
    """Decode a pipeline's sources and apply the tenancy rules."""
    sources = _decode_section(pipeline, ComponentKind.SOURCE, Source.decode)
    for source in sources:
        _enforce_source_scope(pipeline, source)
    return sources


def get_transforms(pipeline: Pipeline) -> list[Transform]:
    """Decode a pipeline's transforms with their inputs rewritten to global names."""
    transforms = _decode_section(pipeline, ComponentKind.TRANSFORM, Transform.decode)
    for transform in transforms:
        transform.inputs = _prefix_inputs(pipeline, transform.inputs)
    return transforms


def get_sinks(pipeline: Pipeline) -> list[Sink]:
    """Decode a pipeline's sinks with their inputs rewritten to global names."""
    sinks = _decode_section(pipeline, ComponentKind.SINK, Sink.decode)
    for sink in sinks:
        sink.inputs = _prefix_inputs(pipeline, sink.inputs)
    return sinks


def _enforce_source_scope(pipeline: Pipeline, source: Source) -> None:
    """Restrict a namespaced pipeline's source to its own namespace.

    Cluster pipelines are exempt. A missing namespace selector is defaulted to
    the pipeline's namespace.

    Raises:
        PipelineTypeError: The source is not a kubernetes_logs source.
        PipelineScopeError: The source selects a different namespace.

    """
    if pipeline.is_cluster_scoped:
        return

    # internal_metrics exposes agent-wide data and is rejected along with every other type
    if source.type != KUBERNETES_SOURCE_TYPE:
        msg = (
            f'{pipeline_ref(pipeline)}: source "{source.name}" has type "{source.type}"; '
            f"only {KUBERNETES_SOURCE_TYPE} is allowed in namespaced pipelines"
        )
        raise PipelineTypeError(msg)

    own_selector = namespace_selector(pipeline.namespace)
    if not source.extra_namespace_label_selector:
        source.extra_namespace_label_selector = own_selector
    elif source.extra_namespace_label_selector != own_selector:
        msg = (
            f'{pipeline_ref(pipeline)}: source "{source.name}" selects namespaces '
            f'"{source.extra_namespace_label_selector}"; logs from other namespaces are not allowed'
        )
        raise PipelineScopeError(msg)


def _enforce_input_scope(pipeline: Pipeline, sources: list[Source], transforms: list[Transform], sinks: list[Sink]) -> None:
    """Restrict a namespaced pipeline's inputs to its own components.

    Route outputs (``<transform>.<route>``) of the pipeline's own transforms
    count as its components.

    Raises:
        PipelineScopeError: An input names anything outside the pipeline.

    """
    if pipeline.is_cluster_scoped:
        return

    own = {component.name for component in [*sources, *transforms]}
    outputs = tuple(f"{transform.name}." for transform in transforms)
    prefix = add_prefix(pipeline.namespace, pipeline.name, "")
    consumers: list[Transform | Sink] = [*transforms, *sinks]
    for consumer in consumers:
        for name in consumer.inputs:
            if name in own or name.startswith(outputs):
                continue
            msg = (
                f'{pipeline_ref(pipeline)}: "{consumer.name.removeprefix(prefix)}" reads '
                f'"{name.removeprefix(prefix)}", which is not a component of this pipeline'
            )
            raise PipelineScopeError(msg)


def get_components(pipelines: Iterable[Pipeline]) -> tuple[list[Source], list[Transform], list[Sink]]:
    """Collect all pipelines' components, failing fast on the first invalid pipeline."""
    sources: list[Source] = []
    transforms: list[Transform] = []
    sinks: list[Sink] = []
    for pipeline in pipelines:
        pipeline_sources = get_sources(pipeline)
        pipeline_transforms = get_transforms(pipeline)
        pipeline_sinks = get_sinks(pipeline)
        _enforce_input_scope(pipeline, pipeline_sources, pipeline_transforms, pipeline_sinks)
        sources.extend(pipeline_sources)
        transforms.extend(pipeline_transforms)
        sinks.extend(pipeline_sinks)

    names = Counter(component.name for component in [*sources, *transforms, *sinks])
    duplicates = sorted(name for name, count in names.items() if count > 1)
    if duplicates:
        msg = f"Component names collide after prefixing: {', '.join(duplicates)}"
        raise DuplicateComponentError(msg)
    return sources, transforms, sinks


def _has_exporter_sink(sinks: list[Sink]) -> bool:
    return any(sink.type == INTERNAL_METRICS_SINK_TYPE for sink in sinks)


def merge_kubernetes_sources(config: VectorConfig) -> None:
    """Replace eligible kubernetes_logs sources with one shared source and a route transform.

    Every kubernetes_logs source opens its own watch against the API server;
    merging them reduces that load to a single watch. A source is eligible when
    it has pod and namespace label selectors, no field selector and no other
    options. Consumers of a retired source read ``merged.<source>`` instead,
    which carries exactly the events the source used to select.
    """
    kept: list[Source] = []
    routes: dict[str, str] = {}
    for source in config.sources:
        if (
            source.type == KUBERNETES_SOURCE_TYPE
            and not source.extra_field_selector
            and source.extra_namespace_label_selector
            and source.extra_label_selector
            and not source.options
        ):
            routes[source.name] = route_condition(source.extra_label_selector, source.extra_namespace_label_selector)
            continue
        kept.append(source)

    if not routes:
        return

    kept.append(Source(name=MERGED_KUBERNETES_SOURCE_NAME, type=KUBERNETES_SOURCE_TYPE))
    route_transform = Transform(
        name=MERGED_SOURCE_TRANSFORM_NAME,
        type=ROUTE_TRANSFORM_TYPE,
        inputs=[MERGED_KUBERNETES_SOURCE_NAME],
        route=routes,
    )

    consumers: list[Transform | Sink] = [*config.transforms, *config.sinks]
    for consumer in consumers:
        consumer.inputs = [
            f"{MERGED_SOURCE_TRANSFORM_NAME}.{name}" if name in routes else name for name in consumer.inputs
        ]

    config.sources = kept
    config.transforms = [*config.transforms, route_transform]
    logger.debug("Merged %d kubernetes_logs sources into %s", len(routes), MERGED_KUBERNETES_SOURCE_NAME)


def merge_sinks(config: VectorConfig) -> None:
    """Collapse sinks of the same type with identical options into one.

    Sinks are visited in name order. Within a group sharing options hash and
    type, the first sink absorbs the others' inputs (concatenated, then sorted)
    and is renamed to the hash; when several merged groups share a hash, the
    type is appended to keep names unique. A hash is only a hint: sinks of
    different types are never merged.
    """
    groups: defaultdict[tuple[str, str], list[Sink]] = defaultdict(list)
    for sink in sorted(config.sinks, key=lambda item: item.name):
        groups[(sink.options_hash, sink.type)].append(sink)

    merged_per_hash = Counter(options_hash for (options_hash, _), group in groups.items() if len(group) > 1)

    merged: list[Sink] = []
    for (options_hash, sink_type), group in groups.items():
        canonical = group[0]
        if len(group) > 1:
            canonical.name = options_hash if merged_per_hash[options_hash] == 1 else f"{options_hash}-{sink_type}"
            canonical.inputs = sorted(name for sink in group for name in sink.inputs)
            logger.debug("Merged %d %s sinks into %s", len(group), sink_type, canonical.name)
        merged.append(canonical)

    if merged:
        config.sinks = merged


def build(pipelines: Iterable[Pipeline], spec: VectorSpec) -> VectorConfig:
    """Build the agent configuration for a Vector instance.

    Args:
        pipelines: The valid pipelines visible to the instance.
        spec: The instance's spec (agent settings and merge toggles).

    Returns:
        The merged, defaulted configuration.

    Raises:
        PipelineTypeError: A namespaced pipeline declared a forbidden source type.
        PipelineScopeError: A namespaced pipeline selected another namespace.
        ComponentDecodeError: A component payload is malformed.
        DuplicateComponentError: Two components share a global name.

    """
    sources, transforms, sinks = get_components(pipelines)

    if spec.agent.internal_metrics and not _has_exporter_sink(sinks):
        sources.append(Source(name=INTERNAL_METRICS_SOURCE_NAME, type=INTERNAL_METRICS_SOURCE_TYPE))
        sinks.append(
            Sink(
                name=INTERNAL_METRICS_SINK_NAME,
                type=INTERNAL_METRICS_SINK_TYPE,
                inputs=[INTERNAL_METRICS_SOURCE_NAME],
                options_hash=hash_options({}),
            )
        )

    if not sources:
        sources = [Source(name=DEFAULT_SOURCE_NAME, type=KUBERNETES_SOURCE_TYPE)]
    if not sinks:
        # Without any sink every source would be dropped by the agent; drain them all.
        sinks = [
            Sink(
                name=DEFAULT_SINK_NAME,
                type=BLACKHOLE_SINK_TYPE,
                inputs=sorted(source.name for source in sources),
                options=dict(DEFAULT_SINK_OPTIONS),
                options_hash=hash_options(DEFAULT_SINK_OPTIONS),
            )
        ]

    config = VectorConfig(
        data_dir=spec.agent.data_dir,
        api=spec.agent.api,
        sources=sources,
        transforms=transforms,
        sinks=sinks,
    )

    if spec.merge_kubernetes_sources:
        merge_kubernetes_sources(config)
    if spec.merge_sinks:
        merge_sinks(config)

    unresolved = config.unresolved_inputs()
    if unresolved:
        logger.warning("Configuration references unknown inputs: %s", ", ".join(unresolved))
    return config


def build_config_bytes(pipelines: Iterable[Pipeline], spec: VectorSpec) -> bytes:
    """Build and serialize the agent configuration."""
    return build(pipelines, spec).to_bytes()


__all__ = [
    "DEFAULT_SINK_NAME",
    "DEFAULT_SOURCE_NAME",
    "INTERNAL_METRICS_SINK_NAME",
    "INTERNAL_METRICS_SOURCE_NAME",
    "MERGED_KUBERNETES_SOURCE_NAME",
    "MERGED_SOURCE_TRANSFORM_NAME",
    "DuplicateComponentError",
    "PipelineScopeError",
    "PipelineTypeError",
    "VectorConfig",
    "add_prefix",
    "build",
    "build_config_bytes",
    "get_components",
    "get_sinks",
    "get_sources",
    "get_transforms",
    "merge_kubernetes_sources",
    "merge_sinks",
]
