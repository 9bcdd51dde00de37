"""Schema command handler: inspect databases and apply a desired schema declaratively."""

import logging

from pydantic import BaseModel, Field

from ..checksum import schema_id
from ..constants import SCHEMA_FILE_NAME, SCHEME_FILE, SchemaAction
from ..display import display_advisories, display_schema, display_schema_result
from ..error_guidance import guidance_for
from ..errors import UnrecognizedResources
from ..request import Advisory, SchemaRequest, build_schema_project, validate_schema_request
from ..state import DeploymentRecord
from ..utils import CancelToken, handle_operation, progress_spinner
from ..workspace import Workspace, open_workspace
from .base import WorkspaceHandler

logger = logging.getLogger(__name__)

SCHEMA_SRC_URL = f"{SCHEME_FILE}://{SCHEMA_FILE_NAME}"


class SchemaResult(BaseModel):
    """Outcome of a schema apply or clean."""

    action: SchemaAction
    statements: list[str] = Field(default_factory=list)
    schema_id: str | None = None
    warnings: list[Advisory] = Field(default_factory=list)


class NormalizedSchema(BaseModel):
    """Desired schema as the executor prints it, with its fingerprint."""

    hcl: str | None = None
    id: str


def drop_statements(statements: list[str]) -> list[str]:
    return [s for s in statements if "DROP " in s]


def apply_schema(
    workspace: Workspace,
    dry_run: bool = False,
    tx_mode: str = "",
    first_run: bool = False,
    cancel: CancelToken | None = None,
) -> SchemaResult:
    """
    Move the workspace's database to the desired schema.

    The statements are always planned first. On the first run, a plan that
    drops resources means the database holds things the schema does not
    define: a dry run reports them as warnings, a real run refuses to apply.
    After a real run the database is inspected again and fingerprinted.

    Args:
        workspace: Open workspace holding the desired schema
        dry_run: Only plan the statements
        tx_mode: Transaction mode passed to the executor
        first_run: Whether no schema was applied to this deployment before
        cancel: Cancellation token

    Returns:
        SchemaResult with the planned or executed statements

    Raises:
        UnrecognizedResources: If a first run would drop existing resources
        ExecutorError: If the executor fails
        Cancelled: If the token fires before the operation finishes
    """
    cancel = cancel or CancelToken()
    w = workspace

    cancel.raise_if_cancelled()
    planned = w.exec.schema_apply(dry_run=True, tx_mode=tx_mode).statements
    drops = drop_statements(planned) if first_run else []

    if dry_run:
        warnings = []
        if drops:
            warnings.append(
                Advisory(
                    summary="Unrecognized schema resources",
                    detail="The first apply would drop:\n" + "\n".join(f"- {s}" for s in drops),
                )
            )
        action = SchemaAction.PLANNED if planned else SchemaAction.SYNCED
        return SchemaResult(action=action, statements=planned, warnings=warnings)

    if drops:
        raise UnrecognizedResources(drops)

    result = SchemaResult(action=SchemaAction.SYNCED)
    if planned:
        cancel.raise_if_cancelled()
        logger.info(f"Applying {len(planned)} schema statement(s)")
        report = w.exec.schema_apply(auto_approve=True, tx_mode=tx_mode)
        result = SchemaResult(action=SchemaAction.APPLIED, statements=report.statements or planned)

    cancel.raise_if_cancelled()
    result.schema_id = schema_id(w.exec.schema_inspect())
    return result


def clean_schema(
    workspace: Workspace, dry_run: bool = False, cancel: CancelToken | None = None
) -> SchemaResult:
    """Drop every resource of the workspace's database, or only plan it."""
    cancel = cancel or CancelToken()
    w = workspace

    cancel.raise_if_cancelled()
    planned = w.exec.schema_clean(dry_run=True).statements
    if not planned:
        return SchemaResult(action=SchemaAction.SYNCED)
    if dry_run:
        return SchemaResult(action=SchemaAction.PLANNED, statements=planned)

    cancel.raise_if_cancelled()
    report = w.exec.schema_clean(auto_approve=True)
    return SchemaResult(action=SchemaAction.APPLIED, statements=report.statements or planned)


class SchemaHandler(WorkspaceHandler):
    """Handles the schema commands."""

    def inspect(self, request: SchemaRequest, cancel: CancelToken | None = None) -> str:
        """
        Print the current schema of the request's database as HCL.

        Returns:
            The inspected HCL
        """
        cancel = self.cancel_token(request, cancel)

        def operation() -> str:
            validate_schema_request(request, self.config, require_hcl=False)
            project = build_schema_project(request, self.config)
            with open_workspace(project, self.client_factory, cancel) as w:
                with progress_spinner("Inspecting...", self.console):
                    return w.exec.schema_inspect()

        hcl = handle_operation(self.console, operation, "Failed to inspect schema", guidance_for)
        display_schema(hcl, self.console)
        return hcl

    def normalize(self, request: SchemaRequest, cancel: CancelToken | None = None) -> NormalizedSchema:
        """
        Print the desired schema as the executor normalizes it on the dev database.

        A request without HCL yields the fingerprint of an empty schema.
        """
        if not request.hcl:
            return NormalizedSchema(id=schema_id(None))
        cancel = self.cancel_token(request, cancel)

        def operation() -> NormalizedSchema:
            # The desired schema file itself is what gets inspected
            source = request.model_copy(update={"url": SCHEMA_SRC_URL})
            display_advisories(validate_schema_request(source, self.config), self.console)
            project = build_schema_project(source, self.config)
            with open_workspace(
                project, self.client_factory, cancel, files={SCHEMA_FILE_NAME: request.hcl}
            ) as w:
                with progress_spinner("Normalizing...", self.console):
                    hcl = w.exec.schema_inspect()
            return NormalizedSchema(hcl=hcl, id=schema_id(hcl))

        result = handle_operation(self.console, operation, "Failed to normalize schema", guidance_for)
        display_schema(result.hcl or "", self.console)
        return result

    def apply(
        self,
        name: str,
        request: SchemaRequest,
        dry_run: bool = False,
        cancel: CancelToken | None = None,
    ) -> SchemaResult:
        """
        Apply the request's schema and record the fingerprint of the result.

        A deployment with no recorded schema gets the first-run check.

        Args:
            name: Deployment name used for the state record
            request: Desired state
            dry_run: Only print the planned statements
            cancel: Cancellation token

        Returns:
            SchemaResult of the operation

        Raises:
            OrchestratorError: If validation or the apply fails (already reported)
        """
        cancel = self.cancel_token(request, cancel)
        existing = self.state_manager.get_deployment(name)
        first_run = existing is None or existing.schema_id is None

        def operation() -> SchemaResult:
            display_advisories(validate_schema_request(request, self.config), self.console)
            project = build_schema_project(request, self.config, src=SCHEMA_SRC_URL)
            with open_workspace(
                project, self.client_factory, cancel, files={SCHEMA_FILE_NAME: request.hcl}
            ) as w:
                with progress_spinner(f"Applying schema to {name}...", self.console):
                    return apply_schema(w, dry_run, request.tx_mode or "", first_run, cancel)

        result = handle_operation(self.console, operation, f"Failed to apply schema to {name}", guidance_for)

        if not dry_run:
            self._record(name, request, existing, result.schema_id)
        display_advisories(result.warnings, self.console)
        display_schema_result(name, result, self.console)
        return result

    def clean(
        self,
        name: str,
        request: SchemaRequest,
        dry_run: bool = False,
        cancel: CancelToken | None = None,
    ) -> SchemaResult:
        """Drop every resource of the request's database and forget its recorded schema."""
        cancel = self.cancel_token(request, cancel)

        def operation() -> SchemaResult:
            validate_schema_request(request, self.config, require_hcl=False)
            project = build_schema_project(request, self.config)
            with open_workspace(project, self.client_factory, cancel) as w:
                with progress_spinner(f"Cleaning {name}...", self.console):
                    return clean_schema(w, dry_run, cancel)

        result = handle_operation(self.console, operation, f"Failed to clean {name}", guidance_for)

        existing = self.state_manager.get_deployment(name)
        if not dry_run and existing is not None:
            self._record(name, request, existing, None)
        display_schema_result(name, result, self.console)
        return result

    def _record(
        self, name: str, request: SchemaRequest, existing: DeploymentRecord | None, fingerprint: str | None
    ) -> None:
        if existing is not None:
            record = existing.model_copy(update={"schema_id": fingerprint})
        else:
            record = DeploymentRecord(
                name=name,
                env_name=request.env_name or self.config.env_name,
                schema_id=fingerprint,
            )
        self.state_manager.save_deployment(record)
