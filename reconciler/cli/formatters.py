"""Output formatters for CLI commands."""

import json
from typing import Any, Dict, List

from rich.console import Console
from rich.table import Table

from reconciler.audit.logger import AuditSummary
from reconciler.config.models import ReconcilerConfig
from reconciler.core.models import PlanAction, ResultStatus
from reconciler.core.plan import PassReport, ReconciliationPlan
from reconciler.core.state import StateSnapshot
from reconciler.security.validation import mask_secret, sanitize_log_input

ACTION_SYMBOLS = {
    PlanAction.CREATE: "[green]+[/green]",
    PlanAction.UPDATE: "[yellow]~[/yellow]",
    PlanAction.REPLACE: "[magenta]-/+[/magenta]",
    PlanAction.DELETE: "[red]-[/red]",
    PlanAction.IMPORT: "[cyan]<=[/cyan]",
    PlanAction.FORGET: "[blue]?[/blue]",
    PlanAction.NOOP: "[dim]=[/dim]",
    PlanAction.READ: "[dim]<-[/dim]",
}

STATUS_STYLES = {
    ResultStatus.APPLIED: "green",
    ResultStatus.NOOP: "dim",
    ResultStatus.FAILED: "red",
    ResultStatus.BLOCKED: "yellow",
    ResultStatus.CANCELLED: "blue",
}


def _short(value: Any, limit: int = 60) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    text = sanitize_log_input(text)
    return text if len(text) <= limit else text[: limit - 3] + "..."


class PlanFormatter:
    """Formats reconciliation plans for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_plan(self, plan: ReconciliationPlan) -> None:
        """Display the plan as one row per instance plus attribute changes."""
        self.console.print()
        self.console.print("[bold blue]Reconciliation Plan[/bold blue]")
        self.console.print()

        if not plan.has_changes:
            self.console.print("[green]No changes. Remote objects match the configuration.[/green]")
            return

        table = Table(title=f"Plan {plan.plan_id}")
        table.add_column("", style="bold")
        table.add_column("Address", style="cyan")
        table.add_column("Identity", style="magenta")
        table.add_column("Reason", style="white")

        for item in plan.items:
            if item.action == PlanAction.NOOP:
                continue
            table.add_row(
                ACTION_SYMBOLS.get(item.action, item.action.value),
                sanitize_log_input(item.address),
                sanitize_log_input(item.identity or "(known after apply)"),
                sanitize_log_input(item.reason),
            )
        self.console.print(table)

        for item in plan.items:
            if not item.changes:
                continue
            self.console.print(f"\n[bold]{sanitize_log_input(item.address)}[/bold]")
            for change in item.changes:
                self.console.print(
                    f"  {change.attribute}: {_short(change.before)} -> {_short(change.after)} "
                    f"[dim]({change.change.value})[/dim]"
                )

        self.format_summary(plan.summary())

    def format_summary(self, summary: Dict[str, int]) -> None:
        parts = [f"{count} to {action}" for action, count in sorted(summary.items()) if action != "noop"]
        self.console.print()
        self.console.print(f"[bold]Plan:[/bold] {', '.join(parts) or 'nothing to do'}")


class ReportFormatter:
    """Formats pass reports for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_report(self, report: PassReport) -> None:
        """Display per-instance results and a status summary."""
        table = Table(title=f"Pass {report.pass_id}")
        table.add_column("Address", style="cyan")
        table.add_column("Action", style="bold")
        table.add_column("Status")
        table.add_column("Identity", style="magenta")
        table.add_column("Attempts", style="dim")

        for result in report.results:
            style = STATUS_STYLES.get(result.status, "white")
            table.add_row(
                sanitize_log_input(result.address),
                result.action.value,
                f"[{style}]{result.status.value}[/{style}]",
                sanitize_log_input(result.identity or ""),
                str(result.attempts),
            )
        self.console.print(table)

        summary = ", ".join(f"{status}: {count}" for status, count in report.summary().items() if count)
        self.console.print(f"Results: {summary or 'nothing to do'}")
        if report.cancelled:
            self.console.print("[yellow]Pass was cancelled before every instance ran[/yellow]")

    def format_errors(self, report: PassReport) -> None:
        """Display every failure with the instance, the operation and the remote message."""
        failures = [r for r in report.results if r.status in (ResultStatus.FAILED, ResultStatus.BLOCKED)]
        if not failures:
            return

        self.console.print("\n[red]Errors:[/red]")
        for i, result in enumerate(failures, 1):
            line = f"  {i}. {sanitize_log_input(result.address)}"
            if result.identity:
                line += f" ({sanitize_log_input(result.identity)})"
            if result.operation:
                line += f" during {result.operation}"
            if result.error_kind:
                line += f" [{result.error_kind}]"
            self.console.print(line)
            self.console.print(f"     {sanitize_log_input(result.error_message or '')}")
            if result.remote_message:
                self.console.print(f"     remote: {sanitize_log_input(result.remote_message)}")

    def format_pass_history(self, summaries: List[AuditSummary]) -> None:
        """Display recent pass summaries, newest first."""
        if not summaries:
            self.console.print("[yellow]No recorded passes[/yellow]")
            return

        table = Table(title="Recent Passes")
        table.add_column("Pass", style="cyan")
        table.add_column("Started", style="dim")
        table.add_column("Events", justify="right")
        table.add_column("Errors", justify="right", style="red")
        table.add_column("Success Rate", justify="right", style="green")

        for summary in summaries:
            table.add_row(
                summary.pass_id,
                summary.started_at.strftime("%Y-%m-%d %H:%M:%S"),
                str(summary.total_events),
                str(summary.error_events),
                f"{summary.get_success_rate():.1f}%",
            )
        self.console.print(table)


class StateFormatter:
    """Formats state information for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_entries(self, snapshot: StateSnapshot) -> None:
        if not snapshot.entries:
            self.console.print("[yellow]No managed instances in state[/yellow]")
            return

        table = Table(title=f"State (serial {snapshot.serial})")
        table.add_column("Address", style="cyan")
        table.add_column("Identity", style="magenta")
        table.add_column("Status", style="yellow")
        table.add_column("Imported", style="dim")
        table.add_column("Updated", style="dim")

        for address in sorted(snapshot.entries):
            entry = snapshot.entries[address]
            table.add_row(
                sanitize_log_input(address),
                sanitize_log_input(entry.identity),
                sanitize_log_input(str(entry.observed.get("status", ""))),
                "yes" if entry.imported else "",
                entry.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        self.console.print(table)


class ConfigFormatter:
    """Formats configuration information for display."""

    def __init__(self, console: Console):
        self.console = console

    def format_config_summary(self, config: ReconcilerConfig) -> None:
        """Display configuration summary."""
        table = Table(title="Configuration Summary")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("API URL", sanitize_log_input(config.openai.api_url))
        for label, key in (("Project Key", config.openai.project_api_key), ("Admin Key", config.openai.admin_api_key)):
            table.add_row(label, mask_secret(key.get_secret_value()) if key else "not set")
        table.add_row("Max Concurrency", str(config.reconciliation.max_concurrent_operations))
        table.add_row("State Directory", sanitize_log_input(str(config.state_management.state_directory)))

        kinds: Dict[str, int] = {}
        for declaration in config.resources:
            kinds[declaration.type.value] = kinds.get(declaration.type.value, 0) + 1
        table.add_row("Declared Resources", str(len(config.resources)))
        for kind in sorted(kinds):
            table.add_row(f"  {kind}", str(kinds[kind]))

        self.console.print(table)

    def format_validation_errors(self, errors: List[str]) -> None:
        """Display configuration validation errors."""
        if not errors:
            self.console.print("[green]Configuration is valid[/green]")
            return

        self.console.print("[red]Configuration Validation Errors:[/red]")
        for i, error in enumerate(errors, 1):
            self.console.print(f"  {i}. {sanitize_log_input(error)}")
