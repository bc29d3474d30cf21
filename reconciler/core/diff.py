"""Per-attribute comparison of declared values against the last known state."""

import hashlib
import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from reconciler.core.drift import DriftRuleRegistry
from reconciler.core.models import FieldSpec, Reference, ResourceKind
from reconciler.core.state import StateEntry

MISSING = object()


class AttributeChange(str, Enum):
    """Classification of one attribute in a diff."""
    UNCHANGED = "unchanged"
    UPDATABLE = "updatable"
    FORCES_REPLACEMENT = "forces_replacement"
    UNRESOLVABLE = "unresolvable"


class AttributeDiff(BaseModel):
    """Comparison result for a single attribute."""

    attribute: str
    change: AttributeChange
    before: Any = None
    after: Any = None
    sensitive: bool = False


def declared_hash(declared: Dict[str, Any]) -> str:
    """Content hash of declared attributes (the last-applied hash)."""
    payload = json.dumps(declared, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def contains_reference(value: Any) -> bool:
    """Whether a declared value still holds an unresolved Reference."""
    if isinstance(value, Reference):
        return True
    if isinstance(value, dict):
        return any(contains_reference(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(contains_reference(v) for v in value)
    return False


def lookup(payload: Dict[str, Any], key: str) -> Any:
    """Read a possibly dotted key (``expires_after.days``) from a payload."""
    current: Any = payload
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return MISSING
        current = current[part]
    return current


class Diff:
    """Transient set of attribute changes for one instance."""

    def __init__(self, kind: ResourceKind, attributes: Dict[str, AttributeDiff]) -> None:
        self.kind = kind
        self.attributes = attributes

    def _names(self, change: AttributeChange) -> List[str]:
        return sorted(name for name, d in self.attributes.items() if d.change == change)

    @property
    def updatable(self) -> Dict[str, Any]:
        """Attributes to change in place, mapped to their declared value."""
        return {
            name: self.attributes[name].after
            for name in self._names(AttributeChange.UPDATABLE)
        }

    @property
    def replacing(self) -> List[str]:
        return self._names(AttributeChange.FORCES_REPLACEMENT)

    @property
    def unresolvable(self) -> List[str]:
        return self._names(AttributeChange.UNRESOLVABLE)

    @property
    def is_empty(self) -> bool:
        return not self.updatable and not self.replacing and not self.unresolvable

    def changes(self) -> List[AttributeDiff]:
        """All attributes that are not unchanged, sensitive values masked."""
        result = []
        for name in sorted(self.attributes):
            d = self.attributes[name]
            if d.change == AttributeChange.UNCHANGED:
                continue
            if d.sensitive:
                d = d.model_copy(update={"before": "(sensitive)", "after": "(sensitive)"})
            result.append(d)
        return result


def compute_diff(
    kind: ResourceKind,
    schema: Dict[str, FieldSpec],
    declared: Dict[str, Any],
    entry: StateEntry,
    registry: Optional[DriftRuleRegistry] = None,
) -> Diff:
    """Compare declared attributes with the last applied and observed values.

    The current value of an attribute is the observed payload value when the
    field maps onto a key of the observation, otherwise the value that was
    last applied. An attribute left undeclared only changes when it was
    declared on the previous apply.

    Args:
        kind: Resource kind
        schema: Field specs of the kind
        declared: Declared attributes, references resolved where possible
        entry: State entry of the instance
        registry: Drift rules; strict equality when omitted

    Returns:
        The computed Diff
    """
    attributes: Dict[str, AttributeDiff] = {}
    suppressed = set(entry.suppressed_attributes)

    for name in sorted(set(schema) | set(declared)):
        spec = schema.get(name, FieldSpec())
        after = declared.get(name)
        previous = entry.applied_attributes.get(name)

        current: Any = MISSING
        if spec.remote_key:
            current = lookup(entry.observed, spec.remote_key)
        if current is MISSING:
            current = previous

        def _result(change: AttributeChange) -> AttributeDiff:
            return AttributeDiff(
                attribute=name,
                change=change,
                before=current,
                after=after,
                sensitive=spec.sensitive,
            )

        if name in suppressed:
            attributes[name] = _result(AttributeChange.UNCHANGED)
            continue

        if contains_reference(after):
            attributes[name] = _result(AttributeChange.UNRESOLVABLE)
            continue

        if after is None:
            if spec.computed or previous is None:
                attributes[name] = _result(AttributeChange.UNCHANGED)
                continue
        elif registry is not None and registry.matches(kind, name, after, current):
            attributes[name] = _result(AttributeChange.UNCHANGED)
            continue
        elif registry is None and after == current:
            attributes[name] = _result(AttributeChange.UNCHANGED)
            continue

        if spec.updatable and not spec.force_new:
            attributes[name] = _result(AttributeChange.UPDATABLE)
        else:
            attributes[name] = _result(AttributeChange.FORCES_REPLACEMENT)

    return Diff(kind, attributes)
