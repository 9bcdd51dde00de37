"""Plan command handler: resolve the target version and lint what would be applied."""

from pydantic import BaseModel, Field

from ..display import display_advisories, display_plan
from ..executor import LintReport
from ..request import Advisory, MigrationRequest, build_project
from ..utils import CancelToken, handle_operation, progress_spinner
from ..workspace import Workspace, open_workspace
from .base import WorkspaceHandler


class PlanResult(BaseModel):
    """Version a migrate would target and what it would apply."""

    version: str | None = None
    amount: int = 0
    warnings: list[Advisory] = Field(default_factory=list)


def plan(workspace: Workspace, version: str) -> PlanResult:
    """
    Preview a migrate without changing the database.

    An empty version resolves to the latest version of the directory. When
    files would be applied and a dev database is configured, they are linted
    and every finding becomes a warning.

    Args:
        workspace: Open workspace of the request
        version: Requested version, possibly empty

    Returns:
        PlanResult with the resolved version and pending amount
    """
    w = workspace
    report = w.exec.migrate_status()
    version = version or report.latest_version

    amount, _ = report.amount(version)
    result = PlanResult(version=version or None, amount=amount)
    if amount == 0 or not w.project.env.dev_url:
        return result

    result.warnings = lint_warnings(w.exec.migrate_lint(amount))
    return result


def lint_warnings(lint: LintReport) -> list[Advisory]:
    """Turn lint findings into warnings, one per file report or file error."""
    warnings = []
    for f in lint.files:
        if f.reports:
            for r in f.reports:
                lines = [f"File: {f.name}"]
                lines.extend(f"- {d.code}: {d.text}" for d in r.diagnostics)
                warnings.append(Advisory(summary=r.text, detail="\n".join(lines)))
        elif f.error:
            warnings.append(Advisory(summary="Lint error", detail=f"File: {f.name}\n{f.error}"))
    return warnings


class PlanHandler(WorkspaceHandler):
    """Handles the plan command."""

    def plan(self, request: MigrationRequest, cancel: CancelToken | None = None) -> PlanResult:
        """
        Show what applying the request would do.

        Args:
            request: Desired state
            cancel: Cancellation token

        Returns:
            PlanResult of the preview
        """
        cancel = self.cancel_token(request, cancel)

        def operation() -> PlanResult:
            project = build_project(request, self.config)
            with open_workspace(project, self.client_factory, cancel) as w:
                with progress_spinner("Planning...", self.console):
                    return plan(w, request.version or "")

        result = handle_operation(self.console, operation, "Failed to plan migration", self.guidance(request))
        display_plan(result, self.console)
        display_advisories(result.warnings, self.console)
        return result
