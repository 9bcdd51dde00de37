"""CLI interface for Atlas-Orchestrator."""

import sys
from pathlib import Path

# Runtime version check - must be before other imports
if sys.version_info < (3, 11):
    print("Error: Atlas-Orchestrator requires Python 3.11 or higher", file=sys.stderr)
    version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print(f"Current version: {version}", file=sys.stderr)
    sys.exit(1)

import functools
import logging
import signal
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import click
from rich.console import Console

from . import __version__
from .commands import MigrateHandler, PlanHandler, SchemaHandler, StatusHandler
from .config import load_config
from .constants import EXEC_ORDERS, LOG_DATE_FORMAT, LOG_FORMAT, TX_MODES
from .display import display_deployments_table, display_manifest
from .errors import Cancelled, ChecksumMismatch, OrchestratorError
from .migrate_dir import LocalDirectory, validate, write_sum
from .project import ConcurrentIndexConfig, DiffConfig, SkipChangesConfig
from .request import (
    CloudBlock,
    MigrateDownFlow,
    MigrationRequest,
    ProtectedFlows,
    RemoteDirBlock,
    SchemaRequest,
)
from .state import StateManager
from .utils import CancelToken

console = Console()

EXIT_CANCELLED = 130


@contextmanager
def cancel_on_sigint(token: CancelToken) -> Iterator[CancelToken]:
    """Cancel the token on Ctrl-C instead of raising KeyboardInterrupt."""

    def handler(signum, frame):
        token.cancel("interrupted")

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


def request_options(func: Callable) -> Callable:
    """Attach the options that make up a MigrationRequest."""
    options = [
        click.option("--url", "-u", help="URL of the target database"),
        click.option("--dev-url", help="URL of a dev database used for linting"),
        click.option("--dir", "-d", "dir_", help="Migration directory path or file:// URL"),
        click.option("--version", "target_version", help="Target version (default: latest)"),
        click.option("--baseline", help="Baseline version of the database"),
        click.option("--exec-order", type=click.Choice(EXEC_ORDERS), help="Execution order of the files"),
        click.option("--revisions-schema", help="Schema holding the revisions table"),
        click.option("--env-name", help="env block of the base config (default: from config)"),
        click.option(
            "--config-file",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Base atlas.hcl merged with the generated settings",
        ),
        click.option("--vars", "variables", help="Input variables of atlas.hcl as a JSON object"),
        click.option("--remote-dir", help="Name of a cloud migration directory"),
        click.option("--remote-tag", help="Tag of the cloud migration directory"),
        click.option("--cloud-token", envvar="ATLAS_CLOUD_TOKEN", help="Atlas Cloud token"),
        click.option("--cloud-project", help="Atlas Cloud project"),
        click.option("--cloud-url", help="Atlas Cloud URL"),
        click.option("--cloud-repo", help="Atlas Cloud repository"),
        click.option("--allow-down", is_flag=True, help="Allow reverting applied migrations"),
        click.option("--auto-approve", is_flag=True, help="Revert without review (local directories)"),
        click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Deadline in seconds"),
    ]
    for option in reversed(options):
        func = option(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        kwargs["request"] = build_request(
            **{key: kwargs.pop(key) for key in list(kwargs) if key in REQUEST_OPTION_NAMES}
        )
        return func(*args, **kwargs)

    return wrapper


REQUEST_OPTION_NAMES = {
    "url",
    "dev_url",
    "dir_",
    "target_version",
    "baseline",
    "exec_order",
    "revisions_schema",
    "env_name",
    "config_file",
    "variables",
    "remote_dir",
    "remote_tag",
    "cloud_token",
    "cloud_project",
    "cloud_url",
    "cloud_repo",
    "allow_down",
    "auto_approve",
    "timeout",
}


def build_request(
    url: str | None = None,
    dev_url: str | None = None,
    dir_: str | None = None,
    target_version: str | None = None,
    baseline: str | None = None,
    exec_order: str | None = None,
    revisions_schema: str | None = None,
    env_name: str | None = None,
    config_file: Path | None = None,
    variables: str | None = None,
    remote_dir: str | None = None,
    remote_tag: str | None = None,
    cloud_token: str | None = None,
    cloud_project: str | None = None,
    cloud_url: str | None = None,
    cloud_repo: str | None = None,
    allow_down: bool = False,
    auto_approve: bool = False,
    timeout: float | None = None,
) -> MigrationRequest:
    """Map command-line options onto a MigrationRequest."""
    cloud = None
    if any((cloud_token, cloud_project, cloud_url, cloud_repo)):
        cloud = CloudBlock(token=cloud_token, project=cloud_project, url=cloud_url, repo=cloud_repo)

    flows = None
    if allow_down or auto_approve:
        flows = ProtectedFlows(migrate_down=MigrateDownFlow(allow=allow_down, auto_approve=auto_approve))

    return MigrationRequest(
        config=config_file.read_text(encoding="utf-8") if config_file else None,
        variables=variables,
        url=url,
        dev_url=dev_url,
        dir=dir_,
        revisions_schema=revisions_schema,
        version=target_version,
        baseline=baseline,
        exec_order=exec_order,
        env_name=env_name,
        cloud=cloud,
        remote_dir=RemoteDirBlock(name=remote_dir, tag=remote_tag) if remote_dir else None,
        protected_flows=flows,
        timeout=timeout,
    )


SKIP_CHANGES = tuple(SkipChangesConfig.model_fields)


def schema_options(func: Callable) -> Callable:
    """Attach the options that make up a SchemaRequest."""
    options = [
        click.option("--url", "-u", help="URL of the target database"),
        click.option("--dev-url", help="URL of a dev database used to normalize and plan"),
        click.option("--exclude", multiple=True, help="Glob of resources to leave alone (repeatable)"),
        click.option("--tx-mode", type=click.Choice(TX_MODES), help="Transaction mode of the apply"),
        click.option(
            "--skip", multiple=True, type=click.Choice(SKIP_CHANGES), help="Change kind left out of the plan"
        ),
        click.option(
            "--concurrent-index",
            multiple=True,
            type=click.Choice(("create", "drop")),
            help="Create or drop indexes concurrently",
        ),
        click.option("--env-name", help="env block of the base config (default: from config)"),
        click.option(
            "--config-file",
            type=click.Path(exists=True, dir_okay=False, path_type=Path),
            help="Base atlas.hcl merged with the generated settings",
        ),
        click.option("--vars", "variables", help="Input variables of atlas.hcl as a JSON object"),
        click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Deadline in seconds"),
    ]
    for option in reversed(options):
        func = option(func)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        kwargs["request"] = build_schema_request(
            schema_file=kwargs.pop("schema_file", None),
            **{key: kwargs.pop(key) for key in list(kwargs) if key in SCHEMA_OPTION_NAMES},
        )
        return func(*args, **kwargs)

    return wrapper


SCHEMA_OPTION_NAMES = {
    "url",
    "dev_url",
    "exclude",
    "tx_mode",
    "skip",
    "concurrent_index",
    "env_name",
    "config_file",
    "variables",
    "timeout",
}


def build_schema_request(
    schema_file: Path | None = None,
    url: str | None = None,
    dev_url: str | None = None,
    exclude: tuple[str, ...] = (),
    tx_mode: str | None = None,
    skip: tuple[str, ...] = (),
    concurrent_index: tuple[str, ...] = (),
    env_name: str | None = None,
    config_file: Path | None = None,
    variables: str | None = None,
    timeout: float | None = None,
) -> SchemaRequest:
    """Map command-line options onto a SchemaRequest."""
    diff = None
    if skip or concurrent_index:
        diff = DiffConfig(
            skip=SkipChangesConfig(**{kind: True for kind in skip}) if skip else None,
            concurrent_index=(
                ConcurrentIndexConfig(**{op: True for op in concurrent_index}) if concurrent_index else None
            ),
        )

    return SchemaRequest(
        hcl=schema_file.read_text(encoding="utf-8") if schema_file else None,
        url=url,
        dev_url=dev_url,
        exclude=list(exclude) or None,
        tx_mode=tx_mode,
        diff=diff,
        config=config_file.read_text(encoding="utf-8") if config_file else None,
        variables=variables,
        env_name=env_name,
        timeout=timeout,
    )


def run_handler(operation: Callable[[CancelToken], object], timeout: float) -> object:
    """Run a handler call under a SIGINT-aware deadline and map failures to exit codes."""
    with cancel_on_sigint(CancelToken(timeout)) as token:
        try:
            return operation(token)
        except Cancelled:
            sys.exit(EXIT_CANCELLED)
        except OrchestratorError:
            sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom config file path",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Atlas-Orchestrator: Drive versioned schema migrations with the Atlas CLI."""
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )

    # Load configuration
    try:
        ctx.obj["config"] = load_config(config)
    except (FileNotFoundError, ValueError, OSError, PermissionError) as e:
        console.print(f"[red]Error:[/red] Configuration: {e}")
        sys.exit(1)


@cli.command()
@click.option("--name", "-n", help="Deployment name for the state record (default: env name)")
@request_options
@click.pass_context
def apply(ctx: click.Context, name: str | None, request: MigrationRequest) -> None:
    """
    Apply pending migrations, or revert to an older version.

    Reads the database status against the directory truncated at --version.
    Pending files up to that version are applied. When the database holds
    revisions the truncated directory lacks, they are reverted, which must
    be allowed with --allow-down.

    Examples:

        \b
        # Apply everything pending
        atlas-orchestrator apply --dir migrations --url sqlite://app.db

        \b
        # Move to a specific version
        atlas-orchestrator apply --dir migrations --url sqlite://app.db --version 20221101163823

        \b
        # Revert a local directory to an older version
        atlas-orchestrator apply --dir migrations --url sqlite://app.db \\
            --version 20221101163823 --allow-down --auto-approve
    """
    config = ctx.obj["config"]
    handler = MigrateHandler(config, console)
    name = name or request.env_name or config.env_name
    run_handler(lambda token: handler.apply(name, request, token), request.timeout or config.timeout)


@cli.command()
@click.option("--name", "-n", help="Deployment name for the state record (default: env name)")
@request_options
@click.pass_context
def status(ctx: click.Context, name: str | None, request: MigrationRequest) -> None:
    """
    Show the migration status of a database.

    Compares the database's revisions against the full migration directory.

    Examples:

        \b
        atlas-orchestrator status --dir migrations --url sqlite://app.db
    """
    config = ctx.obj["config"]
    handler = StatusHandler(config, console)
    name = name or request.env_name or config.env_name
    run_handler(lambda token: handler.status(name, request, token), request.timeout or config.timeout)


@cli.command()
@request_options
@click.pass_context
def plan(ctx: click.Context, request: MigrationRequest) -> None:
    """
    Preview an apply: resolve the target version and lint pending files.

    Lint findings are shown when a dev database is configured.

    Examples:

        \b
        atlas-orchestrator plan --dir migrations --url sqlite://app.db --dev-url sqlite://dev?mode=memory
    """
    config = ctx.obj["config"]
    handler = PlanHandler(config, console)
    run_handler(lambda token: handler.plan(request, token), request.timeout or config.timeout)


@cli.command("hash")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
def hash_dir(directory: Path) -> None:
    """
    Write atlas.sum for a local migration directory.

    Examples:

        \b
        atlas-orchestrator hash migrations
    """
    manifest = write_sum(directory)
    display_manifest(manifest, console)
    console.print(f"[green]✓[/green] Wrote {directory / 'atlas.sum'}")


@cli.command("validate")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
def validate_dir(directory: Path) -> None:
    """
    Check a local migration directory against its atlas.sum.

    Examples:

        \b
        atlas-orchestrator validate migrations
    """
    try:
        validate(LocalDirectory(directory))
    except ChecksumMismatch as e:
        console.print(f"[red]Error:[/red] {e}")
        if e.detail:
            console.print(e.detail, markup=False, highlight=False)
        sys.exit(1)
    console.print(f"[green]✓[/green] {directory} matches its atlas.sum")


@cli.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show ids and directories")
@click.pass_context
def list_deployments(ctx: click.Context, verbose: bool) -> None:
    """List deployments recorded by previous apply runs."""
    config = ctx.obj["config"]
    state_manager = StateManager(config.state_file)
    deployments = state_manager.list_deployments()

    if not deployments:
        console.print("No deployments recorded.")
        return

    display_deployments_table(deployments, verbose, console)


@cli.group()
def schema() -> None:
    """Manage a database declaratively from a desired schema file."""


SCHEMA_FILE_ARGUMENT = click.argument(
    "schema_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)


@schema.command("inspect")
@schema_options
@click.pass_context
def schema_inspect(ctx: click.Context, request: SchemaRequest) -> None:
    """
    Print the current schema of a database as HCL.

    Examples:

        \b
        atlas-orchestrator schema inspect --url sqlite://app.db
    """
    config = ctx.obj["config"]
    handler = SchemaHandler(config, console)
    run_handler(lambda token: handler.inspect(request, token), request.timeout or config.timeout)


@schema.command("normalize")
@SCHEMA_FILE_ARGUMENT
@schema_options
@click.pass_context
def schema_normalize(ctx: click.Context, request: SchemaRequest) -> None:
    """
    Print a schema file as Atlas normalizes it on the dev database.

    Examples:

        \b
        atlas-orchestrator schema normalize schema.hcl --dev-url sqlite://dev?mode=memory
    """
    config = ctx.obj["config"]
    handler = SchemaHandler(config, console)
    run_handler(lambda token: handler.normalize(request, token), request.timeout or config.timeout)


@schema.command("apply")
@SCHEMA_FILE_ARGUMENT
@click.option("--name", "-n", help="Deployment name for the state record (default: env name)")
@click.option("--dry-run", is_flag=True, help="Print the planned SQL statements without running them")
@schema_options
@click.pass_context
def schema_apply(ctx: click.Context, name: str | None, dry_run: bool, request: SchemaRequest) -> None:
    """
    Move a database to the schema described in SCHEMA_FILE.

    The first apply to a deployment fails when it would drop resources that
    the schema file does not define.

    Examples:

        \b
        # Show the SQL statements that would be executed
        atlas-orchestrator schema apply schema.hcl --url sqlite://app.db \\
            --dev-url sqlite://dev?mode=memory --dry-run

        \b
        # Apply, one transaction for all statements
        atlas-orchestrator schema apply schema.hcl --url sqlite://app.db \\
            --dev-url sqlite://dev?mode=memory --tx-mode all
    """
    config = ctx.obj["config"]
    handler = SchemaHandler(config, console)
    name = name or request.env_name or config.env_name
    run_handler(
        lambda token: handler.apply(name, request, dry_run, token), request.timeout or config.timeout
    )


@schema.command("clean")
@click.option("--name", "-n", help="Deployment name for the state record (default: env name)")
@click.option("--dry-run", is_flag=True, help="Print the DROP statements without running them")
@click.option("--auto-approve", is_flag=True, help="Drop everything without a dry run first")
@schema_options
@click.pass_context
def schema_clean(
    ctx: click.Context, name: str | None, dry_run: bool, auto_approve: bool, request: SchemaRequest
) -> None:
    """
    Drop every resource of a database.

    Either --dry-run or --auto-approve is required.

    Examples:

        \b
        atlas-orchestrator schema clean --url sqlite://app.db --dry-run
    """
    if not (dry_run or auto_approve):
        console.print("[red]Error:[/red] schema clean needs --dry-run or --auto-approve")
        sys.exit(1)
    config = ctx.obj["config"]
    handler = SchemaHandler(config, console)
    name = name or request.env_name or config.env_name
    run_handler(
        lambda token: handler.clean(name, request, dry_run, token), request.timeout or config.timeout
    )


if __name__ == "__main__":
    cli()
