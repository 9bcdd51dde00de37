"""Display functions for Atlas-Orchestrator CLI output."""

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .checksum import ChecksumManifest
from .constants import MigrateAction, ReportStatus, SchemaAction
from .request import Advisory
from .state import DeploymentRecord
from .status import MigrationStatus

if TYPE_CHECKING:
    from .commands.migrate import MigrateResult
    from .commands.plan import PlanResult
    from .commands.schema import SchemaResult


def _or_dash(value: str | None) -> str:
    return value if value else "-"


def display_status(name: str, status: MigrationStatus, directory: str, console: Console) -> None:
    """
    Display the migration status of a deployment.

    Args:
        name: Deployment name
        status: Status to show
        directory: Directory the executor compared against
        console: Rich console instance for output
    """
    table = Table(title=f"Migration Status: {name}")
    table.add_column("Status", style="green" if status.status == ReportStatus.OK else "yellow")
    table.add_column("Current", style="cyan")
    table.add_column("Next", style="magenta")
    table.add_column("Latest", style="blue")
    table.add_row(
        status.status.value, _or_dash(status.current), _or_dash(status.next), _or_dash(status.latest)
    )
    console.print(table)
    if directory:
        console.print(f"  Directory: {directory}")


def display_migrate_result(name: str, result: "MigrateResult", console: Console) -> None:
    """Display what a migrate operation did, followed by the resulting status."""
    if result.action == MigrateAction.SYNCED:
        console.print(f"[green]✓[/green] {name} is already in sync, nothing to do")
    elif result.action == MigrateAction.APPLIED:
        console.print(f"[green]✓[/green] Applied {result.amount} migration(s) to {name}")
    else:
        console.print(f"[green]✓[/green] Reverted {result.amount} migration(s) from {name}")
    display_status(name, result.status, result.report.env.dir, console)


def display_plan(result: "PlanResult", console: Console) -> None:
    """Display the version a migrate would target and the pending amount."""
    if result.version is None:
        console.print("No migration files found, nothing to plan.")
    elif result.amount == 0:
        console.print(f"Target version [cyan]{result.version}[/cyan]: nothing to apply")
    else:
        console.print(
            f"Target version [cyan]{result.version}[/cyan]: "
            f"[yellow]{result.amount}[/yellow] migration(s) would be applied"
        )


def display_advisories(advisories: list[Advisory], console: Console) -> None:
    """Display non-fatal warnings, one panel each."""
    for advisory in advisories:
        console.print(
            Panel(
                advisory.detail or advisory.summary,
                title=f"[yellow]Warning:[/yellow] {advisory.summary}",
                border_style="yellow",
                title_align="left",
            )
        )


def display_deployments_table(deployments: list[DeploymentRecord], verbose: bool, console: Console) -> None:
    """
    Display stored deployments in a table.

    Args:
        deployments: Records to display
        verbose: Whether to show ids and directories
        console: Rich console instance for output
    """
    table = Table(title="Deployments")
    table.add_column("Name", style="cyan")
    table.add_column("Env", style="magenta")
    table.add_column("Version", style="green")
    table.add_column("Current")
    table.add_column("Status")
    table.add_column("Updated", style="yellow")

    if verbose:
        table.add_column("ID", style="blue")
        table.add_column("Directory")

    for record in deployments:
        status = record.status
        row = [
            record.name,
            record.env_name,
            _or_dash(record.version),
            _or_dash(status.current if status else None),
            status.status.value if status else "-",
            record.updated_at.strftime("%Y-%m-%d %H:%M"),
        ]
        if verbose:
            row.extend([record.id, _or_dash(record.dir)])
        table.add_row(*row)

    console.print(table)


def display_manifest(manifest: ChecksumManifest, console: Console) -> None:
    """Display the per-file hashes of a checksum manifest."""
    table = Table(title=f"atlas.sum (total h1:{manifest.total})")
    table.add_column("File", style="cyan")
    table.add_column("Hash", style="blue")
    for entry in manifest.entries:
        table.add_row(entry.name, entry.hash)
    console.print(table)


def display_schema(hcl: str, console: Console) -> None:
    """Print a schema document as is."""
    console.print(hcl.rstrip("\n"), markup=False, highlight=False)


def display_schema_result(name: str, result: "SchemaResult", console: Console) -> None:
    """Display the statements a schema operation planned or executed."""
    if result.action == SchemaAction.SYNCED:
        console.print(f"[green]✓[/green] {name} matches the desired schema, nothing to do")
        return

    if result.action == SchemaAction.PLANNED:
        title = "The following SQL statements will be executed:"
    else:
        title = f"Executed {len(result.statements)} statement(s) on {name}:"
    console.print(
        Panel(
            Text("\n".join(result.statements)),
            title=title,
            border_style="cyan" if result.action == SchemaAction.PLANNED else "green",
            title_align="left",
        )
    )
