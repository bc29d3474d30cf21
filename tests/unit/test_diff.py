"""Tests for per-attribute diff classification."""

from reconciler.core.diff import (
    MISSING,
    AttributeChange,
    compute_diff,
    contains_reference,
    declared_hash,
    lookup,
)
from reconciler.core.drift import default_registry
from reconciler.core.models import FieldSpec, Reference, ResourceKind
from reconciler.core.state import StateEntry
from reconciler.resources.organization import InviteController
from reconciler.resources.projects import ProjectController, ServiceAccountController


def project_entry(name: str = "Main", **extra) -> StateEntry:
    return StateEntry(
        address="project.main",
        kind=ResourceKind.PROJECT,
        identity="proj_1",
        observed={"id": "proj_1", "name": name, "status": "active"},
        applied_attributes={"name": name},
        **extra,
    )


class TestHelpers:
    """Test diff helper functions."""

    def test_lookup_dotted_key(self):
        payload = {"expires_after": {"anchor": "last_active_at", "days": 7}}

        assert lookup(payload, "expires_after.days") == 7
        assert lookup(payload, "expires_after.hours") is MISSING
        assert lookup(payload, "name") is MISSING

    def test_declared_hash_ignores_key_order(self):
        assert declared_hash({"a": 1, "b": [1, 2]}) == declared_hash({"b": [1, 2], "a": 1})
        assert declared_hash({"a": 1}) != declared_hash({"a": 2})

    def test_contains_reference(self):
        reference = Reference(address="project.main")

        assert contains_reference(reference)
        assert contains_reference({"projects": [{"id": reference}]})
        assert not contains_reference({"projects": [{"id": "proj_1"}]})


class TestComputeDiff:
    """Test classification of declared attributes against state."""

    def test_matching_declaration_is_empty(self):
        diff = compute_diff(
            ResourceKind.PROJECT, ProjectController.schema, {"name": "Main"}, project_entry(), default_registry()
        )

        assert diff.is_empty
        assert diff.changes() == []

    def test_no_op_is_stable_across_repeated_diffs(self):
        entry = project_entry()
        first = compute_diff(ResourceKind.PROJECT, ProjectController.schema, {"name": "Main"}, entry)
        second = compute_diff(ResourceKind.PROJECT, ProjectController.schema, {"name": "Main"}, entry)

        assert first.is_empty and second.is_empty

    def test_updatable_change(self):
        diff = compute_diff(ResourceKind.PROJECT, ProjectController.schema, {"name": "Renamed"}, project_entry())

        assert diff.updatable == {"name": "Renamed"}
        assert diff.replacing == []
        change = diff.changes()[0]
        assert (change.before, change.after) == ("Main", "Renamed")

    def test_observed_value_wins_over_applied(self):
        # Renamed outside the configuration
        entry = project_entry()
        entry.observed["name"] = "Changed Elsewhere"

        diff = compute_diff(ResourceKind.PROJECT, ProjectController.schema, {"name": "Main"}, entry)

        assert diff.updatable == {"name": "Main"}

    def test_force_new_change(self):
        entry = StateEntry(
            address="service_account.bot",
            kind=ResourceKind.SERVICE_ACCOUNT,
            identity="proj_1/svc_1",
            observed={"id": "svc_1", "name": "bot", "project_id": "proj_1"},
            applied_attributes={"project_id": "proj_1", "name": "bot"},
        )

        diff = compute_diff(
            ResourceKind.SERVICE_ACCOUNT,
            ServiceAccountController.schema,
            {"project_id": "proj_1", "name": "bot-2"},
            entry,
        )

        assert diff.replacing == ["name"]
        assert diff.attributes["project_id"].change == AttributeChange.UNCHANGED

    def test_removed_attribute_without_remote_default_forces_replacement(self):
        entry = StateEntry(
            address="invite.ada",
            kind=ResourceKind.INVITE,
            identity="invite-1",
            observed={"id": "invite-1", "email": "ada@example.com", "role": "reader", "status": "pending"},
            applied_attributes={
                "email": "ada@example.com",
                "role": "reader",
                "projects": [{"id": "proj_1", "role": "member"}],
            },
        )

        diff = compute_diff(
            ResourceKind.INVITE,
            InviteController.schema,
            {"email": "ada@example.com", "role": "reader"},
            entry,
        )

        assert diff.replacing == ["projects"]

    def test_removed_computed_attribute_is_unchanged(self):
        schema = {
            "name": FieldSpec(required=True, updatable=True, remote_key="name"),
            "description": FieldSpec(updatable=True, computed=True, remote_key="description"),
        }
        entry = project_entry()
        entry.observed["description"] = "server default"
        entry.applied_attributes["description"] = "old"

        diff = compute_diff(ResourceKind.PROJECT, schema, {"name": "Main"}, entry)

        assert diff.is_empty

    def test_unresolved_reference_is_unresolvable(self):
        diff = compute_diff(
            ResourceKind.SERVICE_ACCOUNT,
            ServiceAccountController.schema,
            {"project_id": Reference(address="project.main"), "name": "bot"},
            StateEntry(
                address="service_account.bot",
                kind=ResourceKind.SERVICE_ACCOUNT,
                identity="proj_1/svc_1",
                observed={"id": "svc_1", "name": "bot", "project_id": "proj_1"},
                applied_attributes={"project_id": "proj_1", "name": "bot"},
            ),
        )

        assert diff.unresolvable == ["project_id"]
        assert not diff.is_empty

    def test_suppressed_attribute_never_changes(self):
        entry = project_entry(suppressed_attributes=["name"])

        diff = compute_diff(ResourceKind.PROJECT, ProjectController.schema, {"name": "Anything"}, entry)

        assert diff.is_empty

    def test_sensitive_values_are_masked(self):
        schema = {"secret": FieldSpec(updatable=True, sensitive=True)}
        entry = project_entry()
        entry.applied_attributes["secret"] = "old-value"

        diff = compute_diff(ResourceKind.PROJECT, schema, {"secret": "new-value"}, entry)

        change = diff.changes()[0]
        assert change.before == "(sensitive)"
        assert change.after == "(sensitive)"
        assert diff.updatable == {"secret": "new-value"}
