"""Translate Kubernetes label selectors into VRL match expressions.

Used by the kubernetes_logs merge pass: a retired source's pod and namespace
label selectors become one boolean expression over the event's
``.kubernetes.pod_labels`` / ``.kubernetes.namespace_labels`` fields.

Grammar: comma-separated clauses, ``key=value`` (or ``key==value``) for
equality and ``key!=value`` for inequality. Any other clause is emitted
verbatim after the field prefix.
"""

from enum import StrEnum


class SelectorType(StrEnum):
    """Which label set a selector applies to."""

    POD = "pod_labels"
    NAMESPACE = "namespace_labels"


def format_clause(clause: str) -> str:
    """Return the VRL comparison for one selector clause."""
    parts = clause.split("!=")
    if len(parts) == 2:  # noqa: PLR2004
        return f'"{parts[0].strip()}" != "{parts[1].strip()}"'

    parts = clause.split("==") if "==" in clause else clause.split("=")
    if len(parts) != 2:  # noqa: PLR2004
        return clause
    return f'"{parts[0].strip()}" == "{parts[1].strip()}"'


def selector_to_vrl(selector: str, selector_type: SelectorType) -> str:
    """Return the VRL expression matching events selected by ``selector``.

    Args:
        selector: A label selector such as ``app=foo,tier!=db``.
        selector_type: Whether the selector targets pod or namespace labels.

    Returns:
        Clauses joined with ``&&``, e.g.
        ``.kubernetes.pod_labels."app" == "foo"&&.kubernetes.pod_labels."tier" != "db"``.

    """
    clauses = [clause.strip() for clause in selector.split(",") if clause.strip()]
    return "&&".join(f".kubernetes.{selector_type.value}.{format_clause(clause)}" for clause in clauses)


def route_condition(label_selector: str, namespace_label_selector: str) -> str:
    """Return the route expression reproducing a kubernetes_logs source's selection."""
    return (
        selector_to_vrl(label_selector, SelectorType.POD)
        + "&&"
        + selector_to_vrl(namespace_label_selector, SelectorType.NAMESPACE)
    )


__all__ = ["SelectorType", "format_clause", "route_condition", "selector_to_vrl"]
