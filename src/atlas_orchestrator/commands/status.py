"""Status command handler: read the migration state of a deployment."""

import logging

from pydantic import BaseModel

from ..display import display_status
from ..request import MigrationRequest, build_project
from ..state import DeploymentRecord
from ..status import MigrationStatus, StatusReport
from ..utils import CancelToken, handle_operation, progress_spinner
from ..workspace import Workspace, open_workspace
from .base import WorkspaceHandler

logger = logging.getLogger(__name__)


class ReadResult(BaseModel):
    """Migration status plus the directory the executor compared against."""

    status: MigrationStatus
    dir: str = ""
    report: StatusReport


def read_status(workspace: Workspace) -> ReadResult:
    """
    Read the status of the workspace's database against the full directory.

    Raises:
        ExecutorError: If the executor fails
    """
    report = workspace.exec.migrate_status()
    return ReadResult(status=MigrationStatus.from_report(report), dir=report.env.dir, report=report)


def is_gone(previous: DeploymentRecord | None, current: MigrationStatus) -> bool:
    """Whether a deployment that had applied revisions now has none."""
    return (
        previous is not None
        and previous.status is not None
        and previous.status.current is not None
        and current.current is None
    )


class StatusHandler(WorkspaceHandler):
    """Handles the status command."""

    def status(
        self,
        name: str,
        request: MigrationRequest,
        cancel: CancelToken | None = None,
    ) -> ReadResult | None:
        """
        Read a deployment's status and reconcile its stored record.

        A stored deployment whose database lost every applied revision is
        reported as gone and its record is removed.

        Args:
            name: Deployment name
            request: Request describing the database and directory
            cancel: Cancellation token

        Returns:
            ReadResult, or None when the deployment is gone
        """
        cancel = self.cancel_token(request, cancel)

        def operation() -> ReadResult:
            project = build_project(request, self.config)
            with open_workspace(project, self.client_factory, cancel) as w:
                with progress_spinner(f"Reading status of {name}...", self.console):
                    return read_status(w)

        result = handle_operation(
            self.console, operation, f"Failed to read migration status of {name}", self.guidance(request)
        )

        previous = self.state_manager.get_deployment(name)
        if is_gone(previous, result.status):
            logger.info(f"Deployment {name} has no applied revisions anymore, removing its record")
            self.console.print(
                f"[yellow]Deployment '{name}' no longer has applied migrations, record removed.[/yellow]"
            )
            self.state_manager.remove_deployment(name)
            return None

        if previous is not None:
            self.state_manager.save_deployment(previous.model_copy(update={"status": result.status}))

        display_status(name, result.status, result.dir, self.console)
        return result
