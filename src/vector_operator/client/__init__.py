"""Client package for the vector operator.

Provides access to the Kubernetes API:
- ``kinds``: Resource kinds and the API classes serving them
- ``kube_client``: Kind-driven client over ``kubernetes_asyncio`` and the context manager factory creating it
"""
