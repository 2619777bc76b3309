"""Idempotent create-or-update of cluster objects.

One algorithm serves every managed kind; a ``SyncPolicy`` names the kind and
the mutable fields that are compared and copied. Server-managed fields
(``resourceVersion``, ``status``) are never touched, and the update is issued
against the fetched object so it carries the current ``resourceVersion``.

Fields the API server fills in with defaults (a Service's ``clusterIP``, a
DaemonSet's ``updateStrategy``) are compared by containment: the object is
unchanged when every value the operator sets is present, whatever the server
added around it. Updating such a field merges the desired values into the
fetched ones so the defaults survive. Removing a key from the desired object
is therefore not noticed; replacing its value or changing a list's length is.

Per call: at most one create, one read and one update. Errors are never
retried here; the reconcile loop owns retry policy.
"""

import copy
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, TypeAlias

from ..client.kinds import (
    CLUSTER_ROLE,
    CLUSTER_ROLE_BINDING,
    DAEMON_SET,
    SECRET,
    SERVICE,
    SERVICE_ACCOUNT,
    STATEFUL_SET,
    ResourceKind,
)
from ..client.kube_client import HTTP_CONFLICT, HTTP_NOT_FOUND, ApiException, KubeObject, object_key

logger = logging.getLogger("vector_operator.operations.sync")

FieldPath: TypeAlias = tuple[str, ...]

LABELS: FieldPath = ("metadata", "labels")


class SyncResult(StrEnum):
    """What a sync call did to the cluster."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class ObjectClient(Protocol):
    """The subset of ``KubeClient`` the synchronizer needs."""

    async def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Create an object."""
        ...

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> KubeObject:
        """Fetch an object."""
        ...

    async def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Replace an object."""
        ...

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        """Delete an object."""
        ...

    async def list_objects(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[KubeObject]:
        """List objects of a kind."""
        ...


_MISSING: Any = object()


def _get_path(obj: KubeObject, path: FieldPath) -> Any:
    current: Any = obj
    for part in path:
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _set_path(obj: KubeObject, path: FieldPath, value: Any) -> None:
    *parents, leaf = path
    current = obj
    for part in parents:
        current = current.setdefault(part, {})
    if value is _MISSING:
        current.pop(leaf, None)
    else:
        current[leaf] = copy.deepcopy(value)



def _contains(actual: Any, wanted: Any) -> bool:
    """Return True if every value set in ``wanted`` is present in ``actual``."""
    if isinstance(wanted, dict):
        return isinstance(actual, dict) and all(
            key in actual and _contains(actual[key], value) for key, value in wanted.items()
        )
    if isinstance(wanted, list):
        return (
            isinstance(actual, list)
            and len(actual) == len(wanted)
            and all(_contains(item, value) for item, value in zip(actual, wanted, strict=True))
        )
    return actual == wanted


def _same_item(actual: Any, wanted: Any) -> bool:
    # List items are merged only when they describe the same named entry
    return isinstance(actual, dict) and isinstance(wanted, dict) and actual.get("name") == wanted.get("name")


def _merge(actual: Any, wanted: Any) -> Any:
    """Overlay ``wanted`` on ``actual``, keeping keys only ``actual`` has."""
    if isinstance(wanted, dict) and isinstance(actual, dict):
        merged = copy.deepcopy(actual)
        for key, value in wanted.items():
            merged[key] = _merge(actual.get(key), value)
        return merged
    if isinstance(wanted, list) and isinstance(actual, list) and len(actual) == len(wanted):
        return [
            _merge(item, value) if _same_item(item, value) else copy.deepcopy(value)
            for item, value in zip(actual, wanted, strict=True)
        ]
    return copy.deepcopy(wanted)


@dataclass(frozen=True, slots=True)
class SyncPolicy:
    """Which fields of a kind are owned by the operator.

    Attributes:
        kind: The resource kind the policy applies to.
        fields: Paths of the mutable fields to compare and copy.
        defaulted: The subset of ``fields`` the API server adds defaults to;
            compared by containment and merged on update.

    """

    kind: ResourceKind
    fields: tuple[FieldPath, ...]
    defaulted: tuple[FieldPath, ...] = ()

    def differs(self, existing: KubeObject, desired: KubeObject) -> bool:
        """Return True if any owned field of ``existing`` differs from ``desired``."""
        for path in self.fields:
            actual, wanted = _get_path(existing, path), _get_path(desired, path)
            if path in self.defaulted and wanted is not _MISSING:
                if not _contains(actual, wanted):
                    return True
            elif actual != wanted:
                return True
        return False

    def apply(self, existing: KubeObject, desired: KubeObject) -> None:
        """Copy the owned fields of ``desired`` onto ``existing``."""
        for path in self.fields:
            wanted = _get_path(desired, path)
            if path in self.defaulted and wanted is not _MISSING:
                wanted = _merge(_get_path(existing, path), wanted)
            _set_path(existing, path, wanted)


SPEC: FieldPath = ("spec",)

SERVICE_POLICY = SyncPolicy(SERVICE, (SPEC, LABELS), defaulted=(SPEC,))
SECRET_POLICY = SyncPolicy(SECRET, (("data",), LABELS))
DAEMON_SET_POLICY = SyncPolicy(DAEMON_SET, (SPEC, LABELS), defaulted=(SPEC,))
STATEFUL_SET_POLICY = SyncPolicy(STATEFUL_SET, (SPEC, LABELS), defaulted=(SPEC,))
SERVICE_ACCOUNT_POLICY = SyncPolicy(SERVICE_ACCOUNT, (LABELS,))
CLUSTER_ROLE_POLICY = SyncPolicy(CLUSTER_ROLE, (("rules",), LABELS))
CLUSTER_ROLE_BINDING_POLICY = SyncPolicy(CLUSTER_ROLE_BINDING, (("roleRef",), ("subjects",), LABELS))

POLICIES: dict[str, SyncPolicy] = {
    policy.kind.kind: policy
    for policy in (
        SERVICE_POLICY,
        SECRET_POLICY,
        DAEMON_SET_POLICY,
        STATEFUL_SET_POLICY,
        SERVICE_ACCOUNT_POLICY,
        CLUSTER_ROLE_POLICY,
        CLUSTER_ROLE_BINDING_POLICY,
    )
}


def policy_for(obj: KubeObject) -> SyncPolicy:
    """Return the policy matching an object's ``kind``."""
    kind = obj.get("kind", "")
    try:
        return POLICIES[kind]
    except KeyError:
        msg = f"No sync policy for kind {kind!r}"
        raise ValueError(msg) from None


async def sync_object(client: ObjectClient, policy: SyncPolicy, desired: KubeObject) -> SyncResult:
    """Converge the cluster's copy of ``desired``.

    Args:
        client: Cluster client used for create, get and update.
        policy: The kind's owned fields.
        desired: The object as the operator wants it.

    Returns:
        Whether the object was created, updated or left untouched.

    Raises:
        ApiException: Any API failure other than AlreadyExists on create,
            including conflicts on update.

    """
    namespace, name = object_key(desired)
    try:
        await client.create(policy.kind, desired)
    except ApiException as exc:
        # A create can only conflict with an existing object
        if exc.status != HTTP_CONFLICT:
            raise
    else:
        logger.info("Created %s %s", policy.kind.kind, _ref(namespace, name))
        return SyncResult.CREATED

    existing = await client.get(policy.kind, name, namespace)
    if not policy.differs(existing, desired):
        return SyncResult.UNCHANGED

    policy.apply(existing, desired)
    await client.update(policy.kind, existing)
    logger.info("Updated %s %s", policy.kind.kind, _ref(namespace, name))
    return SyncResult.UPDATED


async def sync(client: ObjectClient, desired: KubeObject) -> SyncResult:
    """Converge ``desired`` using the policy registered for its kind."""
    return await sync_object(client, policy_for(desired), desired)


async def remove(client: ObjectClient, kind: ResourceKind, name: str, namespace: str | None = None) -> SyncResult:
    """Make sure an object the operator no longer wants is gone."""
    try:
        await client.delete(kind, name, namespace)
    except ApiException as exc:
        if exc.status != HTTP_NOT_FOUND:
            raise
        return SyncResult.UNCHANGED
    logger.info("Deleted %s %s", kind.kind, _ref(namespace, name))
    return SyncResult.DELETED


def _ref(namespace: str | None, name: str) -> str:
    return f"{namespace}/{name}" if namespace else name


__all__ = [
    "CLUSTER_ROLE_BINDING_POLICY",
    "CLUSTER_ROLE_POLICY",
    "DAEMON_SET_POLICY",
    "LABELS",
    "POLICIES",
    "SPEC",
    "SECRET_POLICY",
    "SERVICE_ACCOUNT_POLICY",
    "SERVICE_POLICY",
    "STATEFUL_SET_POLICY",
    "ObjectClient",
    "SyncPolicy",
    "SyncResult",
    "policy_for",
    "remove",
    "sync",
    "sync_object",
]
