"""Main CLI application."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from reconciler.cli.factory import ClientFactory, ComponentFactory
from reconciler.cli.formatters import ConfigFormatter, PlanFormatter, ReportFormatter, StateFormatter
from reconciler.config.loader import ConfigLoader, find_config_file
from reconciler.config.models import ReconcilerConfig
from reconciler.core.models import ResourceKind, ResultStatus
from reconciler.security.validation import sanitize_log_input, validate_file_path

console = Console()
logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="openai-reconcile",
    help="Reconcile declared OpenAI organization and project resources with the API.",
    rich_markup_mode="rich",
)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Setup structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json or text).
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def load_configuration(config_file: Optional[Path] = None) -> ReconcilerConfig:
    """Load and validate configuration, then configure logging from it.

    Raises:
        typer.Exit: If configuration loading fails
    """
    if config_file is None:
        config_file = find_config_file()
        if config_file is None:
            console.print("[red]Error: No configuration file found[/red]")
            console.print("Please create a reconcile.yaml file or specify --config")
            raise typer.Exit(1)

    if not validate_file_path(str(config_file)):
        console.print(
            f"[red]Error: Invalid or unsafe configuration file path: {sanitize_log_input(str(config_file))}[/red]"
        )
        raise typer.Exit(1)

    loader = ConfigLoader()
    try:
        config = loader.load_config(config_file)
    except Exception as e:
        missing = loader.get_missing_env_vars(config_file)
        if missing:
            ConfigFormatter(console).format_validation_errors(
                [f"Environment variable {name} is not set" for name in missing]
            )
        console.print(f"[red]Error loading configuration: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    setup_logging(config.logging.level.value, config.logging.format.value)
    console.print(f"[green]✓[/green] Loaded configuration from {config_file}")
    return config


ConfigOption = typer.Option(None, "--config", "-c", help="Path to configuration file")


@app.command()
def validate(
    config_file: Optional[Path] = ConfigOption,
    check_connection: bool = typer.Option(
        False, "--check-connection", help="Also check that the API accepts the configured keys"
    ),
) -> None:
    """Validate the configuration file and the declared resource graph."""
    console.print("[blue]Validating configuration...[/blue]")
    config = load_configuration(config_file)
    try:
        instances = ComponentFactory.create_instances(config)
    except Exception as e:
        console.print(f"[red]Validation failed: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    ConfigFormatter(console).format_config_summary(config)
    console.print(f"[green]✓ Configuration is valid ({len(instances)} instances)[/green]")

    if check_connection:
        async def run_check() -> bool:
            async with ClientFactory.create_openai_client(config.openai) as client:
                return await ClientFactory.validate_client(client)

        if not asyncio.run(run_check()):
            console.print("[red]API connectivity check failed[/red]")
            raise typer.Exit(1)
        console.print("[green]✓ API connectivity verified[/green]")


@app.command()
def plan(config_file: Optional[Path] = ConfigOption) -> None:
    """Show what a reconciliation pass would change, without changing anything."""

    async def run_plan() -> None:
        config = load_configuration(config_file)
        instances = ComponentFactory.create_instances(config)
        state_manager = ComponentFactory.create_state_manager(config)

        async with ClientFactory.create_openai_client(config.openai) as client:
            driver = ComponentFactory.create_driver(client, state_manager, config)
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress:
                progress.add_task("Refreshing remote objects...", total=None)
                reconciliation_plan = await driver.plan(instances)

        PlanFormatter(console).format_plan(reconciliation_plan)

    try:
        asyncio.run(run_plan())
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Plan generation failed: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def apply(
    config_file: Optional[Path] = ConfigOption,
    auto_approve: bool = typer.Option(
        False, "--auto-approve", help="Skip interactive approval"
    ),
) -> None:
    """Reconcile remote objects with the configuration."""

    async def run_apply() -> bool:
        config = load_configuration(config_file)
        instances = ComponentFactory.create_instances(config)
        state_manager = ComponentFactory.create_state_manager(config)
        audit_logger = ComponentFactory.create_audit_logger(config)

        async with ClientFactory.create_openai_client(config.openai) as client:
            driver = ComponentFactory.create_driver(client, state_manager, config, audit_logger)

            reconciliation_plan = await driver.plan(instances)
            PlanFormatter(console).format_plan(reconciliation_plan)
            if not reconciliation_plan.has_changes:
                return True

            if not auto_approve and not typer.confirm("Do you want to apply these changes?"):
                console.print("Operation cancelled")
                return True

            console.print("\n[blue]Applying changes...[/blue]")
            # Ctrl-C stops scheduling; operations already running finish and commit
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, driver.cancel)
            except NotImplementedError:
                pass
            try:
                report = await driver.apply(instances, plan=reconciliation_plan)
            finally:
                try:
                    loop.remove_signal_handler(signal.SIGINT)
                except NotImplementedError:
                    pass
            logger.debug("Client statistics", **client.get_stats())

        formatter = ReportFormatter(console)
        formatter.format_report(report)
        formatter.format_errors(report)

        if report.success:
            console.print("[green]✓ Apply complete[/green]")
        else:
            console.print(f"[yellow]Completed with {report.count(ResultStatus.FAILED)} failures[/yellow]")
        return report.success

    try:
        succeeded = asyncio.run(run_apply())
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Apply failed: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    if not succeeded:
        raise typer.Exit(2)


@app.command("import")
def import_resource(
    address: str = typer.Argument(..., help="Address to manage the object under (kind.name)"),
    identity: str = typer.Argument(..., help="Remote ID (parent_id/child_id for nested kinds)"),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Bind a pre-existing remote object into state."""
    kind_name, _, name = address.partition(".")
    try:
        kind = ResourceKind(kind_name)
    except ValueError:
        console.print(f"[red]Unknown resource kind: {sanitize_log_input(kind_name)}[/red]")
        raise typer.Exit(1)
    if not name:
        console.print("[red]Address must have the form kind.name[/red]")
        raise typer.Exit(1)

    async def run_import():
        config = load_configuration(config_file)
        state_manager = ComponentFactory.create_state_manager(config)
        audit_logger = ComponentFactory.create_audit_logger(config)
        async with ClientFactory.create_openai_client(config.openai) as client:
            driver = ComponentFactory.create_driver(client, state_manager, config, audit_logger)
            return await driver.import_instance(address, kind, identity)

    try:
        result = asyncio.run(run_import())
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]Import failed: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    if not result.success:
        console.print(
            f"[red]Import failed [{result.error_kind}]: {sanitize_log_input(result.error_message)}[/red]"
        )
        raise typer.Exit(1)

    console.print(f"[green]✓ Imported {sanitize_log_input(address)} ({sanitize_log_input(result.identity)})[/green]")
    suppressed = result.metadata.get("suppressed") or []
    if suppressed:
        console.print(
            f"[yellow]Placeholders recorded for: {', '.join(suppressed)}; "
            "their differences are ignored on later plans[/yellow]"
        )


@app.command()
def state(config_file: Optional[Path] = ConfigOption) -> None:
    """List the instances recorded in state."""
    config = load_configuration(config_file)
    try:
        state_manager = ComponentFactory.create_state_manager(config)
    except Exception as e:
        console.print(f"[red]Failed to load state: {sanitize_log_input(str(e))}[/red]")
        raise typer.Exit(1)

    StateFormatter(console).format_entries(state_manager.snapshot())


@app.command()
def history(
    config_file: Optional[Path] = ConfigOption,
    limit: int = typer.Option(10, "--limit", "-n", help="Number of passes to show", min=1),
) -> None:
    """Show summaries of recent reconciliation passes from the audit trail."""
    config = load_configuration(config_file)
    audit_logger = ComponentFactory.create_audit_logger(config)
    if audit_logger is None:
        console.print("[yellow]Audit logging is disabled; no pass history is kept[/yellow]")
        return

    ReportFormatter(console).format_pass_history(audit_logger.get_pass_summaries(limit))


if __name__ == "__main__":
    app()
