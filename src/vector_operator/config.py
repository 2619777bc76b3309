"""Configuration management for the vector operator.

This module defines the ``OperatorConfig`` model and helpers to load
configuration from environment variables. Cluster credentials themselves are
not configured here: in a pod the mounted service account is used, elsewhere
the kubeconfig named by ``KUBE_CONFIG_PATH`` (or the usual ``KUBECONFIG``
lookup) is.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

from .models.resources import DEFAULT_AGENT_IMAGE

# Load variables from a local .env file for development convenience
load_dotenv()


class OperatorConfig(BaseModel):
    """Configuration values required to reconcile Vector instances."""

    kubeconfig: Path | None = None
    kube_context: str | None = None
    timeout_ms: int = Field(default=10000, ge=1000, le=600000)
    operator_namespace: str = Field(default="vector-operator-system", min_length=1)
    pipeline_check_image: str = DEFAULT_AGENT_IMAGE
    pipeline_check_timeout_s: float = Field(default=15.0, gt=0)
    config_check_timeout_s: float = Field(default=300.0, gt=0)
    resync_interval_s: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _validate_kubeconfig(self) -> OperatorConfig:
        if self.kubeconfig is not None and not self.kubeconfig.is_file():
            msg = f"KUBE_CONFIG_PATH points to a missing file: {self.kubeconfig}"
            raise ValueError(msg)
        return self

    @classmethod
    def from_env(cls) -> OperatorConfig:
        """Build a configuration object from environment variables."""
        raw_config: dict[str, Any] = {
            "kubeconfig": os.getenv("KUBE_CONFIG_PATH"),
            "kube_context": os.getenv("KUBE_CONTEXT"),
            "timeout_ms": os.getenv("KUBE_TIMEOUT_MS"),
            "operator_namespace": os.getenv("OPERATOR_NAMESPACE"),
            "pipeline_check_image": os.getenv("PIPELINE_CHECK_IMAGE"),
            "pipeline_check_timeout_s": os.getenv("PIPELINE_CHECK_TIMEOUT_S"),
            "config_check_timeout_s": os.getenv("CONFIG_CHECK_TIMEOUT_S"),
            "resync_interval_s": os.getenv("RESYNC_INTERVAL_S"),
        }
        # Unset variables fall back to the model defaults
        raw_config = {key: value for key, value in raw_config.items() if value is not None}
        try:
            return cls(**raw_config)
        except ValidationError as exc:
            messages = "; ".join(err["msg"] for err in exc.errors())
            msg = f"Invalid operator configuration: {messages}"
            raise RuntimeError(msg) from exc


__all__ = ["OperatorConfig"]
