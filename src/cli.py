"""CLI entry point for shotdiff."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from src.approval.engine import ApprovalSelector
from src.capture.capturer import CaptureFilter
from src.errors import ConfigError, ShotdiffError
from src.models.config import ShotdiffConfig
from src.orchestrator import Orchestrator

console = Console()

_CATEGORY_STYLES = {
    "changed": "red",
    "added": "blue",
    "removed": "magenta",
    "skipped": "yellow",
    "unchanged": "green",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_config(config: str) -> ShotdiffConfig:
    try:
        return ShotdiffConfig.load(config)
    except ConfigError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)


def _fail(e: ShotdiffError) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(e.message)}")
    if e.recovery_hint:
        console.print(f"  {escape(e.recovery_hint)}")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression testing against approved golden screenshots."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
@click.option("--page", "pages", multiple=True, help="Only capture pages matching this pattern")
@click.option("--user-agent", "user_agents", multiple=True,
              help="Only capture user agents matching this pattern")
@click.option("--fail-on-changes", is_flag=True, help="Exit with status 2 if any screenshot changed")
def run(config: str, pages: tuple[str, ...], user_agents: tuple[str, ...], fail_on_changes: bool) -> None:
    """Capture screenshots, compare them to the goldens and write a report."""
    cfg = _load_config(config)
    orchestrator = Orchestrator(cfg)
    try:
        results = orchestrator.run_capture(
            CaptureFilter(pages=list(pages), user_agents=list(user_agents))
        )
    except ShotdiffError as e:
        _fail(e)
        return

    meta = results["metadata"]
    table = Table(title="Screenshot Summary")
    table.add_column("Category", style="bold")
    table.add_column("Screenshots")
    for category, count in meta.counts.items():
        style = _CATEGORY_STYLES[category]
        table.add_row(category.capitalize(), f"[{style}]{count}[/{style}]")
    table.add_row("Total", str(meta.total))
    table.add_row("Duration", f"{meta.duration_seconds}s")
    console.print(table)

    if results["summary"]:
        console.print(results["summary"])

    changes = meta.num_changes
    if changes:
        console.print(f"\n[bold red]{changes} screenshot{'' if changes == 1 else 's'} changed![/bold red]")
    else:
        console.print("\n[bold green]0 screenshots changed![/bold green]")
    console.print(f"  Run report: [blue]{results['report_path']}[/blue]")
    for fmt, path in results["reports"].items():
        console.print(f"  {fmt.upper()} report: [blue]{path}[/blue]")

    if fail_on_changes and changes:
        sys.exit(2)


@cli.command()
@click.argument("screenshots", nargs=-1)
@click.option("--all", "approve_all", is_flag=True, help="Approve every changed, added and removed screenshot")
@click.option("--report", "-r", "report_path", default=None, help="Run report.json (defaults to the latest run)")
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def approve(screenshots: tuple[str, ...], approve_all: bool, report_path: str | None, config: str) -> None:
    """Approve screenshots of a run as the new goldens.

    SCREENSHOTS are "<page> > <user_agent>" pairs, or the literal "all".
    """
    if not approve_all and not screenshots:
        console.print("[yellow]Nothing selected. Pass --all or one or more screenshots.[/yellow]")
        sys.exit(1)

    cfg = _load_config(config)
    orchestrator = Orchestrator(cfg)
    try:
        selector = ApprovalSelector.all() if approve_all else ApprovalSelector.parse(screenshots)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)

    try:
        result = orchestrator.approve(selector, Path(report_path) if report_path else None)
    except ShotdiffError as e:
        _fail(e)
        return

    if result.is_noop:
        console.print("[yellow]Golden file already up to date[/yellow]")
        return
    for identity in sorted(result.updated):
        console.print(f"  [green]updated[/green] {identity}")
    for identity in sorted(result.removed):
        console.print(f"  [magenta]removed[/magenta] {identity}")
    console.print(f"[green]Golden file saved:[/green] {cfg.golden_path}")


@cli.command()
@click.option("--config", "-c", default="shotdiff.json", help="Config file path")
def golden(config: str) -> None:
    """List the entries of the golden file."""
    cfg = _load_config(config)
    try:
        manifest = Orchestrator(cfg).load_golden()
    except ShotdiffError as e:
        _fail(e)
        return

    if not len(manifest):
        console.print("[yellow]Golden file is empty[/yellow]")
        return
    table = Table(title=f"Goldens ({len(manifest)})")
    table.add_column("Page", style="bold")
    table.add_column("User agent")
    table.add_column("Hash")
    for identity, entry in manifest.items():
        table.add_row(identity.page, identity.user_agent, entry.image_hash[:12])
    console.print(table)


@cli.command()
@click.option("--base-url", "-u", prompt="Base URL of the demo pages", help="Where the pages are served")
def init(base_url: str) -> None:
    """Create a default configuration file."""
    config_path = Path("shotdiff.json")
    if config_path.exists():
        if not click.confirm("shotdiff.json already exists. Overwrite?"):
            return

    cfg = ShotdiffConfig(base_url=base_url)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nAdd the pages to capture under \"pages\", then run:")
    console.print("  [blue]shotdiff run[/blue]")


if __name__ == "__main__":
    cli()
