"""CLI entry point for snapwatch."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from snapwatch.models.config import DuplicateTargetError, MonitorConfig, RecipientConfig, TargetConfig
from snapwatch.models.outcome import BaselineState
from snapwatch.orchestrator import Orchestrator
from snapwatch.storage.base import StorageError

console = Console()

DEFAULT_CONFIG = "snapwatch.json"

_STATE_STYLES = {
    BaselineState.NO_BASELINE: "yellow",
    BaselineState.STALE: "yellow",
    BaselineState.CURRENT: "green",
    BaselineState.AHEAD: "magenta",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(config: str) -> MonitorConfig:
    try:
        return MonitorConfig.load(config)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {escape(config)}[/red]")
        console.print("Run 'snapwatch init' to create a default config.")
        sys.exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid config {escape(config)}:[/red]\n{escape(str(e))}")
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression monitoring: capture, reconcile baselines, alert."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
@click.option("--dry-run", is_flag=True, help="Print alerts to the console instead of emailing them")
def run(config: str, dry_run: bool) -> None:
    """Run one monitoring pass: capture → reconcile → alert → report."""
    cfg = _load_config(config)

    orchestrator = Orchestrator(cfg, dry_run=dry_run)
    try:
        results = orchestrator.run()
    except DuplicateTargetError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    console.print("\n[bold green]Run Complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", results["run_id"])
    table.add_row("Duration", f"{results['duration']}s")
    table.add_row("Targets", str(results["results"]["total"]))
    table.add_row("Baselines Adopted", f"[cyan]{results['results']['adopted']}[/cyan]")
    table.add_row("Compared", f"[green]{results['results']['compared']}[/green]")
    table.add_row("Skipped", f"[yellow]{results['results']['skipped']}[/yellow]")
    table.add_row("Regressions", f"[red]{results['results']['regressions']}[/red]")
    table.add_row("Recipients Alerted", str(results["alerts"]["recipients"]))
    console.print(table)

    console.print(f"  JSON report: [blue]{escape(results['report'])}[/blue]")


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def validate(config: str) -> None:
    """Check the config for duplicate targets without capturing anything."""
    cfg = _load_config(config)
    try:
        cfg.validate_unique_targets()
    except DuplicateTargetError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    pairs = sum(len(t.viewports) for _, t in cfg.iter_targets())
    console.print(
        f"[green]Config OK:[/green] {len(cfg.recipients)} recipient(s), {pairs} target/viewport pair(s)"
    )


@cli.command()
@click.option("--config", "-c", default=DEFAULT_CONFIG, help="Config file path")
def baselines(config: str) -> None:
    """Show the stored baseline for every configured target and viewport."""
    cfg = _load_config(config)
    orchestrator = Orchestrator(cfg, dry_run=True)
    try:
        rows = orchestrator.list_baselines()
    except StorageError as e:
        console.print(f"[red]Cannot read baselines: {escape(str(e))}[/red]")
        sys.exit(1)
    if not rows:
        console.print("[yellow]No targets configured[/yellow]")
        return

    table = Table(title="Baselines")
    table.add_column("Target")
    table.add_column("Viewport")
    table.add_column("Desired", justify="right")
    table.add_column("Stored", justify="right")
    table.add_column("State")
    table.add_column("Updated")
    for task, record, state in rows:
        style = _STATE_STYLES.get(state, "white")
        table.add_row(
            escape(task.target.url),
            task.viewport.label,
            str(task.target.baseline_version),
            str(record.baseline_version) if record else "-",
            f"[{style}]{state.value}[/{style}]",
            record.updated_at if record else "-",
        )
    console.print(table)


@cli.command()
@click.option("--email", "-e", prompt="Recipient email", help="Address that receives alerts")
@click.option("--url", "-u", prompt="Target URL", help="First page to monitor")
def init(email: str, url: str) -> None:
    """Create a default configuration file."""
    config_path = Path(DEFAULT_CONFIG)
    if config_path.exists():
        if not click.confirm(f"{DEFAULT_CONFIG} already exists. Overwrite?"):
            return

    cfg = MonitorConfig(recipients=[RecipientConfig(email=email, targets=[TargetConfig(url=url)])])
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nAdd SMTP settings under \"smtp\" to email alerts, then run:")
    console.print("  [blue]snapwatch run[/blue]")
    console.print("\nThe first run adopts baselines; later runs compare against them.")


if __name__ == "__main__":
    cli()
