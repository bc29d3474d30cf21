"""Tests for reference parsing and dependency ordering."""

import pytest

from reconciler.clients.exceptions import ManifestError
from reconciler.config.manifest_models import ResourceDeclaration
from reconciler.core.graph import (
    build_instances,
    parse_references,
    resolve_references,
    topological_order,
)
from reconciler.core.models import Reference


def declare(kind: str, instance: str, **attributes) -> ResourceDeclaration:
    return ResourceDeclaration(type=kind, name=instance, attributes=attributes)


class TestReferences:
    """Test ${kind.name.attr} references."""

    def test_parse_nested_references(self):
        attributes, found = parse_references({
            "email": "ada@example.com",
            "role": "reader",
            "projects": [{"id": "${project.main.id}", "role": "member"}],
        })

        assert attributes["projects"][0]["id"] == Reference(address="project.main", attribute="id")
        assert attributes["email"] == "ada@example.com"
        assert found == {"project.main"}

    def test_dotted_attribute(self):
        attributes, _ = parse_references({"count": "${vector_store.docs.file_counts.total}"})

        assert attributes["count"] == Reference(address="vector_store.docs", attribute="file_counts.total")

    def test_unknown_kind_is_plain_text(self):
        attributes, found = parse_references({"text": "${spaceship.x.id}"})

        assert attributes["text"] == "${spaceship.x.id}"
        assert found == set()

    def test_free_text_with_unknown_kind_placeholder(self):
        text = "Explain what ${spaceship.x.id} means in this template"

        attributes, found = parse_references({"input": text})

        assert attributes["input"] == text
        assert found == set()

    def test_embedded_reference_rejected(self):
        with pytest.raises(ManifestError, match="whole value"):
            parse_references({"instructions": "Use project ${project.main.id} only"})

    def test_resolve_leaves_unknown_references(self):
        known = Reference(address="project.main")
        unknown = Reference(address="project.other")
        values = {"a": known, "b": [unknown]}

        resolved = resolve_references(
            values, lambda ref: "proj_1" if ref.address == "project.main" else ref
        )

        assert resolved == {"a": "proj_1", "b": [unknown]}


class TestOrdering:
    """Test dependency ordering."""

    def test_dependencies_come_first(self):
        order = topological_order({
            "service_account.bot": ["project.main"],
            "project.main": [],
            "rate_limit.gpt4": ["project.main"],
        })

        assert order == ["project.main", "rate_limit.gpt4", "service_account.bot"]

    def test_cycle_rejected(self):
        with pytest.raises(ManifestError, match="cycle"):
            topological_order({"thread.a": ["message.b"], "message.b": ["thread.a"]})


class TestBuildInstances:
    """Test turning declarations into instances."""

    def test_instances_in_dependency_order(self):
        instances = build_instances([
            declare("service_account", "bot", project_id="${project.main.id}", name="bot"),
            declare("project", "main", name="Main"),
        ])

        assert [i.address for i in instances] == ["project.main", "service_account.bot"]
        assert instances[1].depends_on == ["project.main"]

    def test_import_declaration(self):
        declaration = ResourceDeclaration(
            type="project", name="legacy", attributes={"name": "Legacy"}, import_id="proj_9"
        )

        instance = build_instances([declaration])[0]

        assert instance.import_mode
        assert instance.identity == "proj_9"

    def test_explicit_depends_on(self):
        declarations = [
            declare("project", "main", name="Main"),
            ResourceDeclaration(type="project", name="second", attributes={"name": "B"}, depends_on=["project.main"]),
        ]

        assert build_instances(declarations)[1].depends_on == ["project.main"]

    def test_duplicate_rejected(self):
        with pytest.raises(ManifestError, match="Duplicate"):
            build_instances([declare("project", "main", name="A"), declare("project", "main", name="B")])

    def test_unknown_reference_rejected(self):
        with pytest.raises(ManifestError, match="undeclared"):
            build_instances([declare("service_account", "bot", project_id="${project.missing.id}", name="bot")])

    def test_self_reference_rejected(self):
        with pytest.raises(ManifestError, match="itself"):
            build_instances([declare("project", "main", name="${project.main.name}")])
