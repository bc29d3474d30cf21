"""End-to-end passes against a stateful fake of the administration API."""

import json
from typing import Any, Dict

import httpx
import pytest
from typer.testing import CliRunner

from reconciler.audit.logger import AuditLogger
from reconciler.cli.app import app
from reconciler.cli.factory import ClientFactory, ComponentFactory
from reconciler.config.loader import load_config_from_dict
from reconciler.core.models import PlanAction, ResultStatus
from reconciler.core.state import StateManager
from tests.fakes import ADMIN_KEY, FakeOpenAI, error_response, page

PROJECT = "project"
RATE_LIMIT = "rate_limit"


class FakeAdministrationApi(FakeOpenAI):
    """Projects and their rate limits, kept in memory across requests."""

    def __init__(self) -> None:
        super().__init__()
        self.projects: Dict[str, Dict[str, Any]] = {}
        self.rate_limits: Dict[str, Dict[str, Dict[str, Any]]] = {}

        self.add("POST", "/organization/projects", self.create_project)
        self.add("GET", "/organization/projects/(?P<project_id>[^/]+)", self.get_project)
        self.add("POST", "/organization/projects/(?P<project_id>[^/]+)", self.update_project)
        self.add("POST", "/organization/projects/(?P<project_id>[^/]+)/archive", self.archive_project)
        self.add("GET", "/organization/projects/(?P<project_id>[^/]+)/rate_limits", self.list_rate_limits)
        self.add(
            "POST",
            "/organization/projects/(?P<project_id>[^/]+)/rate_limits/(?P<limit_id>[^/]+)",
            self.update_rate_limit,
        )

    def create_project(self, request: httpx.Request) -> httpx.Response:
        project_id = f"proj_{len(self.projects) + 1}"
        project = {
            "object": "organization.project",
            "id": project_id,
            "name": self.body(request)["name"],
            "status": "active",
        }
        self.projects[project_id] = project
        # Every project starts with the platform's limits for each model
        self.rate_limits[project_id] = {
            f"rl-{model}": {
                "object": "project.rate_limit",
                "id": f"rl-{model}",
                "model": model,
                "max_requests_per_1_minute": rpm,
                "max_tokens_per_1_minute": tpm,
            }
            for model, rpm, tpm in (("gpt-4", 10000, 300000), ("gpt-4o", 10000, 2000000))
        }
        return httpx.Response(200, json=project)

    def get_project(self, request: httpx.Request, project_id: str) -> httpx.Response:
        if project_id not in self.projects:
            return error_response(404, f"No project {project_id}")
        return httpx.Response(200, json=self.projects[project_id])

    def update_project(self, request: httpx.Request, project_id: str) -> httpx.Response:
        self.projects[project_id].update(self.body(request))
        return httpx.Response(200, json=self.projects[project_id])

    def archive_project(self, request: httpx.Request, project_id: str) -> httpx.Response:
        self.projects[project_id]["status"] = "archived"
        return httpx.Response(200, json=self.projects[project_id])

    def list_rate_limits(self, request: httpx.Request, project_id: str) -> httpx.Response:
        return httpx.Response(200, json=page(list(self.rate_limits.get(project_id, {}).values())))

    def update_rate_limit(self, request: httpx.Request, project_id: str, limit_id: str) -> httpx.Response:
        limit = self.rate_limits[project_id][limit_id]
        limit.update(self.body(request))
        return httpx.Response(200, json=limit)


def make_config(tmp_path, with_rate_limit: bool = True):
    resources = [{"type": PROJECT, "name": "main", "attributes": {"name": "Main"}}]
    if with_rate_limit:
        resources.append({
            "type": RATE_LIMIT,
            "name": "gpt4",
            "attributes": {
                "project_id": "${project.main.id}",
                "model": "gpt-4",
                "max_requests_per_1_minute": 10,
            },
        })
    return load_config_from_dict({
        "openai": {"admin_api_key": ADMIN_KEY},
        "reconciliation": {"operation_retry_delay_seconds": 0},
        "resources": resources,
        "audit": {"audit_directory": str(tmp_path / "audit")},
        "state_management": {"state_directory": str(tmp_path / "state")},
    })


@pytest.fixture
def admin_api():
    return FakeAdministrationApi()


@pytest.fixture
def run_pass(admin_api, tmp_path):
    """Run one full pass the way the apply command wires it."""

    async def _run(with_rate_limit: bool = True):
        config = make_config(tmp_path, with_rate_limit)
        state_manager = ComponentFactory.create_state_manager(config)
        audit_logger = AuditLogger(audit_dir=config.audit.audit_directory)
        client = ClientFactory.create_openai_client(
            config.openai, transport=httpx.MockTransport(admin_api.handler)
        )
        async with client:
            driver = ComponentFactory.create_driver(client, state_manager, config, audit_logger)
            instances = ComponentFactory.create_instances(config)
            plan = await driver.plan(instances)
            report = await driver.apply(instances, plan=plan)
        return plan, report, state_manager

    return _run


@pytest.mark.asyncio
class TestReconcileFlow:
    """Test create, steady state and destroy across passes."""

    async def test_full_lifecycle(self, run_pass, admin_api, tmp_path):
        # Pass 1: create the project and lower its gpt-4 limit
        plan, report, state = await run_pass()

        assert plan.summary() == {"create": 2}
        assert report.success
        assert admin_api.rate_limits["proj_1"]["rl-gpt-4"]["max_requests_per_1_minute"] == 10
        assert state.get("rate_limit.gpt4").identity == "proj_1/rl-gpt-4"

        # Pass 2: nothing to do
        plan, report, state = await run_pass()

        assert not plan.has_changes
        assert report.count(ResultStatus.NOOP) == 2

        # Pass 3: the limit is no longer declared and goes back to the default
        admin_api.requests.clear()
        plan, report, state = await run_pass(with_rate_limit=False)

        assert plan.get_item("rate_limit.gpt4").action == PlanAction.DELETE
        result = report.get("rate_limit.gpt4")
        assert result.status == ResultStatus.APPLIED
        assert result.metadata["remote_call"] == "reset"
        reset = admin_api.calls("POST", "/organization/projects/proj_1/rate_limits/rl-gpt-4")[0]
        assert FakeOpenAI.body(reset) == {
            "max_requests_per_1_minute": 10000,
            "max_tokens_per_1_minute": 300000,
            "batch_1_day_max_input_tokens": 30000000,
        }
        assert admin_api.calls("DELETE", ".*") == []
        assert state.get("rate_limit.gpt4") is None
        assert state.get("project.main") is not None
        assert admin_api.projects["proj_1"]["status"] == "active"

    async def test_state_survives_restart(self, run_pass, tmp_path):
        await run_pass()

        reloaded = StateManager(tmp_path / "state")
        snapshot = reloaded.load()

        assert sorted(snapshot.entries) == ["project.main", "rate_limit.gpt4"]
        assert snapshot.get("rate_limit.gpt4").dependencies == ["project.main"]

    async def test_archived_project_is_recreated(self, run_pass, admin_api):
        await run_pass(with_rate_limit=False)
        admin_api.projects["proj_1"]["status"] = "archived"

        _, report, state = await run_pass(with_rate_limit=False)
        assert report.get("project.main").action == PlanAction.FORGET
        assert state.get("project.main") is None

        _, report, state = await run_pass(with_rate_limit=False)
        assert report.get("project.main").action == PlanAction.CREATE
        assert state.get("project.main").identity == "proj_2"

    async def test_audit_trail_written(self, run_pass, tmp_path):
        _, report, _ = await run_pass()

        audit_dir = tmp_path / "audit"
        audit_files = list(audit_dir.glob("audit_*.jsonl"))
        assert len(audit_files) == 1
        events = [json.loads(line) for line in audit_files[0].read_text().splitlines()]
        event_types = [event["event_type"] for event in events]
        assert event_types[0] == "pass_start"
        assert event_types.count("plan_item") == 2
        assert event_types.count("instance_result") == 2
        assert event_types[-1] == "pass_complete"

        summaries = AuditLogger(audit_dir=audit_dir).get_pass_summaries()
        assert [summary.pass_id for summary in summaries] == [report.pass_id]


CONFIG_YAML = f"""
openai:
  admin_api_key: {ADMIN_KEY}

logging:
  format: text

resources:
  - type: project
    name: main
    attributes:
      name: Main
  - type: rate_limit
    name: gpt4
    attributes:
      project_id: ${{project.main.id}}
      model: gpt-4
      max_requests_per_1_minute: 10
"""


class TestCli:
    """Test the validate command."""

    def test_validate_valid_config(self, tmp_path):
        path = tmp_path / "reconcile.yaml"
        path.write_text(CONFIG_YAML)

        result = CliRunner().invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == 0, result.output
        assert "Configuration is valid (2 instances)" in result.output

    def test_validate_unknown_reference(self, tmp_path):
        path = tmp_path / "reconcile.yaml"
        path.write_text(CONFIG_YAML.replace("${project.main.id}", "${project.other.id}"))

        result = CliRunner().invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == 1
        assert "undeclared" in result.output
