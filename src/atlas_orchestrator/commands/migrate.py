"""Migrate command handler: apply or roll back a database to a target version."""

import logging

from pydantic import BaseModel, Field

from ..constants import DEFAULT_POLL_INTERVAL, MigrateAction, RunStatus
from ..display import display_advisories, display_migrate_result
from ..errors import Cancelled, ConfigError, ExecutorError, IncorrectVersion, RunAborted
from ..executor import DownReport
from ..request import Advisory, MigrationRequest, build_project, validate_config
from ..state import DeploymentRecord
from ..status import MigrationStatus, StatusReport
from ..utils import CancelToken, handle_operation, progress_spinner
from ..workspace import Workspace, open_workspace
from .base import WorkspaceHandler

logger = logging.getLogger(__name__)


class MigrateResult(BaseModel):
    """Outcome of a migrate operation and the state it left behind."""

    action: MigrateAction
    amount: int = 0
    status: MigrationStatus
    report: StatusReport
    warnings: list[Advisory] = Field(default_factory=list)


def migrate(
    workspace: Workspace,
    version: str,
    cancel: CancelToken | None = None,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> MigrateResult:
    """
    Move the workspace's database to a version.

    The status is read against the directory truncated at version. A database
    holding revisions the truncated directory lacks is migrated down; pending
    files up to version are applied; a synced database gets no mutating call.
    The returned status is always read again after the operation.

    Args:
        workspace: Open workspace of the request
        version: Target version; empty applies every pending file
        cancel: Cancellation token (deadline and signals)
        poll_interval: Seconds between down-migration polls

    Returns:
        MigrateResult with the post-operation status

    Raises:
        IncorrectVersion: If version is neither current nor pending
        ConfigError: If a down migration is needed but not allowed
        RunAborted: If a gated down migration was aborted
        ExecutorError: If the executor fails
        Cancelled: If the token fires before the operation finishes
    """
    cancel = cancel or CancelToken()
    w = workspace

    dir_url = w.project.env.dir_url(w.dir, version)
    cancel.raise_if_cancelled()
    status = w.exec.migrate_status(dir_url)

    warnings: list[Advisory] = []
    amount = 0
    if status.is_downing:
        amount = status.applied_count - status.available_count
        logger.info(f"Database has {amount} revision(s) missing from the directory, migrating down")
        _migrate_down(w, status, cancel, poll_interval, warnings)
        action = MigrateAction.MIGRATED_DOWN
    elif not status.pending:
        action = MigrateAction.SYNCED
    else:
        amount, synced = status.amount(version)
        if synced:
            action = MigrateAction.SYNCED
        elif amount == 0:
            raise IncorrectVersion(version)
        else:
            cancel.raise_if_cancelled()
            logger.info(f"Applying {amount} pending migration(s)")
            w.exec.migrate_apply(amount)
            action = MigrateAction.APPLIED

    cancel.raise_if_cancelled()
    report = w.exec.migrate_status()
    return MigrateResult(
        action=action,
        amount=amount,
        status=MigrationStatus.from_report(report),
        report=report,
        warnings=warnings,
    )


def _migrate_down(
    w: Workspace,
    status: StatusReport,
    cancel: CancelToken,
    poll_interval: float,
    warnings: list[Advisory],
) -> DownReport:
    """Poll the executor's down operation until the run reaches a terminal state."""
    if not w.project.migrate_down:
        raise ConfigError(
            "migrate down is not allowed",
            detail="set `protected_flows.migrate_down.allow` to true to allow downgrade",
        )

    to_version = status.latest_version
    dir_url = w.project.env.dir_url_latest()
    while True:
        if cancel.wait(poll_interval):
            raise Cancelled(cancel.reason)

        run = w.exec.migrate_down(to_version, dir_url)
        try:
            state = RunStatus(run.status)
        except ValueError:
            raise ExecutorError(f"unexpected down migration status {run.status!r}", detail=run.url) from None

        if state == RunStatus.PENDING_USER:
            advisory = Advisory(
                summary="Down migration",
                detail=f"Migration is waiting for approval, review here: {run.url}",
            )
            logger.warning(str(advisory))
            warnings.append(advisory)
            continue
        if state == RunStatus.ABORTED:
            raise RunAborted(run.url)
        return run


class MigrateHandler(WorkspaceHandler):
    """Handles the apply command."""

    def apply(
        self,
        name: str,
        request: MigrationRequest,
        cancel: CancelToken | None = None,
    ) -> MigrateResult:
        """
        Migrate a deployment to the request's version and record the outcome.

        Args:
            name: Deployment name used for the state record
            request: Desired state
            cancel: Cancellation token (defaults to one with the request's timeout)

        Returns:
            MigrateResult of the operation

        Raises:
            OrchestratorError: If validation or the migration fails (already reported)
        """
        cancel = self.cancel_token(request, cancel)

        def operation() -> MigrateResult:
            display_advisories(validate_config(request, self.config), self.console)
            project = build_project(request, self.config)
            with open_workspace(project, self.client_factory, cancel) as w:
                with progress_spinner(f"Migrating {name}...", self.console):
                    return migrate(w, request.version or "", cancel, self.config.poll_interval)

        result = handle_operation(
            self.console, operation, f"Failed to migrate {name}", self.guidance(request)
        )

        self.state_manager.save_deployment(
            DeploymentRecord(
                name=name,
                env_name=request.env_name or self.config.env_name,
                dir=result.report.env.dir or request.dir or "",
                version=request.version,
                status=result.status,
            )
        )
        display_advisories(result.warnings, self.console)
        display_migrate_result(name, result, self.console)
        return result
