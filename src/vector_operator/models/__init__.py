"""Pydantic models for the operator's resources and agent configuration.

This module provides type-safe models for pipeline components, their typed
options, and the ``Vector`` / pipeline custom resources.
"""

from .components import (
    ComponentKind,
    ComponentOptions,
    Sink,
    Source,
    Transform,
    config_hash,
    hash_options,
)
from .resources import (
    AgentSpec,
    Pipeline,
    PipelineKind,
    PipelineStatus,
    Vector,
    VectorSpec,
    VectorStatus,
)

__all__ = [
    "AgentSpec",
    "ComponentKind",
    "ComponentOptions",
    "Pipeline",
    "PipelineKind",
    "PipelineStatus",
    "Sink",
    "Source",
    "Transform",
    "Vector",
    "VectorSpec",
    "VectorStatus",
    "config_hash",
    "hash_options",
]
