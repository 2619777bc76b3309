"""Operational building blocks of the reconciler.

Contains the logic behind one reconcile pass:
- ``config_build``: Pure construction of the agent configuration from pipelines
- ``selectors``: Label selector to routing expression translation
- ``validation_errors``: Readable errors for malformed component payloads
- ``pipelines``: Listing of valid pipelines
- ``pending``: Tracking of and bounded wait on in-flight pipeline checks
- ``config_check``: External validation with ``vector validate``
- ``pipeline_check``: Checks of new and edited pipelines
- ``sync``: Idempotent create-or-update of cluster objects
- ``agent``: Rendering and pruning of the agent's objects
- ``status``: Status writes on Vector instances and pipelines
"""
