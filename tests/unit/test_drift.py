"""Tests for drift suppression rules."""

import pytest

from reconciler.core.diff import AttributeChange, compute_diff
from reconciler.core.drift import DriftRuleRegistry, ModelAliasComparator, default_registry, strict_equality
from reconciler.core.models import ResourceKind
from reconciler.core.state import StateEntry
from reconciler.resources.one_shot import ModerationController


@pytest.fixture
def comparator():
    return ModelAliasComparator()


class TestModelAliasComparator:
    """Test alias and snapshot matching of model names."""

    def test_alias_matches_concrete_resolution(self, comparator):
        assert comparator("text-moderation-latest", "text-moderation-007")

    def test_different_concrete_models_do_not_match(self, comparator):
        assert not comparator("text-moderation-007", "text-moderation-003")

    def test_identical_values_match(self, comparator):
        assert comparator("gpt-4o", "gpt-4o")

    @pytest.mark.parametrize(
        "declared,observed",
        [
            ("gpt-4o", "gpt-4o-2024-08-06"),
            ("gpt-4", "gpt-4-0613"),
            ("gpt-4o-mini", "gpt-4o-mini-2024-07-18"),
        ],
    )
    def test_bare_name_matches_dated_snapshot(self, comparator, declared, observed):
        assert comparator(declared, observed)

    def test_bare_name_does_not_match_other_family(self, comparator):
        assert not comparator("gpt-4o", "gpt-4o-mini")

    def test_alias_does_not_match_another_alias(self, comparator):
        assert not comparator("text-moderation-latest", "text-moderation-stable")

    def test_alias_does_not_match_other_family(self, comparator):
        assert not comparator("text-moderation-latest", "omni-moderation-2024-09-26")

    def test_explicit_alias_table(self, comparator):
        assert comparator("gpt-4-turbo-preview", "gpt-4-0125-preview")
        assert not comparator("gpt-4-turbo-preview", "gpt-4-0613")

    def test_configured_aliases_extend_defaults(self):
        comparator = ModelAliasComparator({"my-alias": ["ft:gpt-4o-mini"]})

        assert comparator("my-alias", "ft:gpt-4o-mini-2024-07-18")
        assert comparator("omni-moderation-latest", "omni-moderation-2024-09-26")

    def test_non_string_values(self, comparator):
        assert not comparator(None, "gpt-4o")
        assert comparator(None, None)


class TestDriftRuleRegistry:
    """Test comparator lookup by kind and attribute."""

    def test_unregistered_pair_is_strict(self):
        registry = DriftRuleRegistry()

        assert registry.comparator_for(ResourceKind.PROJECT, "name") is strict_equality
        assert not registry.matches(ResourceKind.PROJECT, "name", "a", "b")

    def test_register_custom_comparator(self):
        registry = DriftRuleRegistry()
        registry.register(ResourceKind.PROJECT, "name", lambda d, o: d.lower() == o.lower())

        assert registry.is_registered(ResourceKind.PROJECT, "name")
        assert registry.matches(ResourceKind.PROJECT, "name", "Main", "main")

    def test_default_registry_covers_model_attributes(self):
        registry = default_registry()

        assert registry.is_registered(ResourceKind.MODERATION, "model")
        assert registry.is_registered(ResourceKind.ASSISTANT, "model")
        assert not registry.is_registered(ResourceKind.PROJECT, "name")


class TestDriftInDiff:
    """Test that suppressed drift produces no change."""

    def entry(self, model: str) -> StateEntry:
        return StateEntry(
            address="moderation.check",
            kind=ResourceKind.MODERATION,
            identity="modr-1",
            observed={"id": "modr-1", "model": model},
            applied_attributes={"input": "hello", "model": "text-moderation-latest"},
        )

    def test_alias_resolution_is_unchanged(self):
        diff = compute_diff(
            ResourceKind.MODERATION,
            ModerationController.schema,
            {"input": "hello", "model": "text-moderation-latest"},
            self.entry("text-moderation-007"),
            default_registry(),
        )

        assert diff.is_empty
        assert diff.attributes["model"].change == AttributeChange.UNCHANGED

    def test_concrete_model_change_forces_replacement(self):
        diff = compute_diff(
            ResourceKind.MODERATION,
            ModerationController.schema,
            {"input": "hello", "model": "text-moderation-007"},
            self.entry("text-moderation-003"),
            default_registry(),
        )

        assert diff.replacing == ["model"]
