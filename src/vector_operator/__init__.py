"""Vector operator package.

This package contains the control plane that turns ``VectorPipeline`` and
``ClusterVectorPipeline`` resources into running Vector agents.
"""

# Intentionally do not re-export symbols from submodules to avoid building an
# HTTP client and reading environment configuration at package import time.
# Individual modules (e.g., ``server``) should be imported directly by
# consumers as needed.

__all__: list[str] = []
