"""Per-attribute comparators that hide drift caused by server normalization."""

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from reconciler.core.models import ResourceKind

logger = structlog.get_logger(__name__)

Comparator = Callable[[Any, Any], bool]

ALIAS_SUFFIXES = ("-latest", "-stable")

# Dated snapshots: gpt-4o-2024-08-06, gpt-4-0613
_SNAPSHOT_SUFFIX = re.compile(r"^-(\d{4}-\d{2}-\d{2}|\d{4})(-preview)?$")

DEFAULT_MODEL_ALIASES: Dict[str, List[str]] = {
    "chatgpt-4o-latest": ["chatgpt-4o"],
    "gpt-4-turbo-preview": ["gpt-4-0125-preview", "gpt-4-1106-preview"],
    "omni-moderation-latest": ["omni-moderation"],
}


def _is_alias(model: str) -> bool:
    return model.endswith(ALIAS_SUFFIXES)


class ModelAliasComparator:
    """Treat a declared model alias as equal to any concrete resolution of it.

    ``text-moderation-latest`` matches ``text-moderation-007``; a bare model
    name such as ``gpt-4o`` matches its dated snapshot ``gpt-4o-2024-08-06``.
    Two different concrete identifiers never match, and neither does one
    alias against another.
    """

    def __init__(self, aliases: Optional[Dict[str, List[str]]] = None) -> None:
        """Initialize comparator.

        Args:
            aliases: Explicit alias -> list of concrete prefixes it may resolve to
        """
        self.aliases = dict(DEFAULT_MODEL_ALIASES)
        if aliases:
            self.aliases.update(aliases)

    def __call__(self, declared: Any, observed: Any) -> bool:
        if declared == observed:
            return True
        if not isinstance(declared, str) or not isinstance(observed, str):
            return False
        if _is_alias(observed):
            return False

        for prefix in self.aliases.get(declared, []):
            if observed == prefix or observed.startswith(prefix + "-"):
                return True

        if _is_alias(declared):
            family = declared.rsplit("-", 1)[0]
            return observed.startswith(family + "-") and len(observed) > len(family) + 1

        if observed.startswith(declared):
            return bool(_SNAPSHOT_SUFFIX.match(observed[len(declared):]))
        return False


def strict_equality(declared: Any, observed: Any) -> bool:
    return declared == observed


class DriftRuleRegistry:
    """Comparators keyed by (resource kind, attribute).

    Unregistered pairs fall back to strict equality.
    """

    def __init__(self) -> None:
        self._rules: Dict[Tuple[ResourceKind, str], Comparator] = {}

    def register(self, kind: ResourceKind, attribute: str, comparator: Comparator) -> None:
        self._rules[(ResourceKind(kind), attribute)] = comparator

    def comparator_for(self, kind: ResourceKind, attribute: str) -> Comparator:
        return self._rules.get((ResourceKind(kind), attribute), strict_equality)

    def is_registered(self, kind: ResourceKind, attribute: str) -> bool:
        return (ResourceKind(kind), attribute) in self._rules

    def matches(self, kind: ResourceKind, attribute: str, declared: Any, observed: Any) -> bool:
        """Whether ``observed`` satisfies ``declared`` for this attribute."""
        comparator = self.comparator_for(kind, attribute)
        result = comparator(declared, observed)
        if result and declared != observed:
            logger.debug(
                "Suppressed drift",
                kind=ResourceKind(kind).value,
                attribute=attribute,
                declared=declared,
                observed=observed,
            )
        return result


MODEL_ALIAS_KINDS: Iterable[ResourceKind] = (
    ResourceKind.MODERATION,
    ResourceKind.CHAT_COMPLETION,
    ResourceKind.MODEL_RESPONSE,
    ResourceKind.EMBEDDING,
    ResourceKind.ASSISTANT,
    ResourceKind.RUN,
    ResourceKind.FINE_TUNING_JOB,
)


def default_registry(aliases: Optional[Dict[str, List[str]]] = None) -> DriftRuleRegistry:
    """Registry with the model alias comparator on every model attribute."""
    registry = DriftRuleRegistry()
    comparator = ModelAliasComparator(aliases)
    for kind in MODEL_ALIAS_KINDS:
        registry.register(kind, "model", comparator)
    return registry
