"""Subprocess client for the Atlas CLI migration executor."""

import json
import logging
import shutil
import sys
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from . import __version__
from .constants import (
    CONFIG_FILE_NAME,
    EXECUTOR_BINARY,
    EXECUTOR_ENV,
    EXECUTOR_JSON_FORMAT,
    SCHEME_FILE,
)
from .errors import ExecutorError
from .status import EnvInfo, ExecutorReport, FileInfo, Revision, StatusReport, evaluate
from .utils import CancelToken, run_command

logger = logging.getLogger(__name__)


class StmtError(ExecutorReport):
    """Statement that failed while applying a file."""

    stmt: str = Field(default="", alias="Stmt")
    text: str = Field(default="", alias="Text")


class AppliedFile(ExecutorReport):
    """File applied (or partially applied) by migrate apply."""

    name: str = Field(default="", alias="Name")
    version: str = Field(default="", alias="Version")
    description: str = Field(default="", alias="Description")
    applied: list[str] = Field(default_factory=list, alias="Applied")
    error: StmtError | None = Field(default=None, alias="Error")


class ApplyReport(ExecutorReport):
    """Result of migrate apply."""

    env: EnvInfo = Field(default_factory=EnvInfo, alias="Env")
    current: str = Field(default="", alias="Current")
    target: str = Field(default="", alias="Target")
    pending: list[FileInfo] = Field(default_factory=list, alias="Pending")
    applied: list[AppliedFile] = Field(default_factory=list, alias="Applied")
    error: str | None = Field(default=None, alias="Error")


class DownReport(ExecutorReport):
    """Result of migrate down; gated runs report a review URL."""

    status: str = Field(default="", alias="Status")
    url: str | None = Field(default=None, alias="URL")
    current: str = Field(default="", alias="Current")
    target: str = Field(default="", alias="Target")
    planned: list[FileInfo] = Field(default_factory=list, alias="Planned")
    reverted: list[AppliedFile] = Field(default_factory=list, alias="Reverted")
    error: str | None = Field(default=None, alias="Error")


class Diagnostic(ExecutorReport):
    pos: int = Field(default=0, alias="Pos")
    text: str = Field(default="", alias="Text")
    code: str = Field(default="", alias="Code")


class FileLintReport(ExecutorReport):
    text: str = Field(default="", alias="Text")
    diagnostics: list[Diagnostic] = Field(default_factory=list, alias="Diagnostics")


class LintFile(ExecutorReport):
    name: str = Field(default="", alias="Name")
    text: str = Field(default="", alias="Text")
    reports: list[FileLintReport] = Field(default_factory=list, alias="Reports")
    error: str | None = Field(default=None, alias="Error")


class LintReport(ExecutorReport):
    """Result of migrate lint."""

    files: list[LintFile] = Field(default_factory=list, alias="Files")


class SchemaChanges(ExecutorReport):
    """Statements of a declarative apply, split by whether they ran."""

    applied: list[str] = Field(default_factory=list, alias="Applied")
    pending: list[str] = Field(default_factory=list, alias="Pending")
    error: StmtError | None = Field(default=None, alias="Error")


class SchemaApplyReport(ExecutorReport):
    """Result of schema apply."""

    env: EnvInfo = Field(default_factory=EnvInfo, alias="Env")
    changes: SchemaChanges = Field(default_factory=SchemaChanges, alias="Changes")
    applied: AppliedFile | None = Field(default=None, alias="Applied")
    error: str | None = Field(default=None, alias="Error")

    @property
    def statements(self) -> list[str]:
        """Statements of the plan, executed or not."""
        if self.applied is not None and self.applied.applied:
            return self.applied.applied
        return self.changes.applied or self.changes.pending


class SchemaCleanReport(ExecutorReport):
    """Result of schema clean."""

    env: EnvInfo = Field(default_factory=EnvInfo, alias="Env")
    applied: AppliedFile | None = Field(default=None, alias="Applied")
    error: str | None = Field(default=None, alias="Error")

    @property
    def statements(self) -> list[str]:
        return self.applied.applied if self.applied is not None else []


class _RawStatus(ExecutorReport):
    env: EnvInfo = Field(default_factory=EnvInfo, alias="Env")
    available: list[FileInfo] = Field(default_factory=list, alias="Available")
    applied: list[Revision] = Field(default_factory=list, alias="Applied")
    error: str | None = Field(default=None, alias="Error")


class MigrationExecutor(Protocol):
    """Operations the orchestrator needs from the executor."""

    def migrate_status(self, dir_url: str | None = None) -> StatusReport: ...

    def migrate_apply(self, amount: int) -> ApplyReport: ...

    def migrate_down(self, to_version: str, dir_url: str) -> DownReport: ...

    def migrate_lint(self, latest: int) -> LintReport: ...

    def schema_inspect(self) -> str: ...

    def schema_apply(
        self, dry_run: bool = False, auto_approve: bool = False, tx_mode: str = ""
    ) -> SchemaApplyReport: ...

    def schema_clean(self, dry_run: bool = False, auto_approve: bool = False) -> SchemaCleanReport: ...


def find_executable(search_dir: Path | None = None, binary: str = EXECUTOR_BINARY) -> Path:
    """
    Locate the executor binary.

    Args:
        search_dir: Directory checked before PATH (None to only search PATH)
        binary: Executable name

    Returns:
        Path to the executable

    Raises:
        ExecutorError: If the executable cannot be found
    """
    if sys.platform == "win32" and not binary.endswith(".exe"):
        binary += ".exe"

    if search_dir is not None:
        candidate = search_dir / binary
        if candidate.is_file():
            return candidate

    found = shutil.which(binary)
    if found is None:
        raise ExecutorError(
            f"{binary} executable not found",
            detail="Install the Atlas CLI (https://atlasgo.io/getting-started) "
            "or set [global.executor] search_dir in the settings file",
        )
    return Path(found)


class AtlasClient:
    """Runs ``atlas migrate`` and ``atlas schema`` commands inside a working directory."""

    def __init__(
        self,
        working_dir: Path,
        executable: Path,
        env_name: str,
        variables: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ):
        """
        Initialize executor client.

        Args:
            working_dir: Directory holding the rendered atlas.hcl
            executable: Path to the atlas binary
            env_name: Environment of atlas.hcl to run against
            variables: Input variables passed with ``--var``
            cancel: Token that terminates in-flight commands
        """
        self.working_dir = working_dir
        self.executable = executable
        self.env_name = env_name
        self.variables = variables or {}
        self.cancel = cancel

    def migrate_status(self, dir_url: str | None = None) -> StatusReport:
        """
        Read the migration status of the environment's database.

        Args:
            dir_url: Directory to compare against (None for the one in atlas.hcl)

        Returns:
            StatusReport recomputed from the applied and available lists

        Raises:
            ExecutorError: If the command fails or its report carries an error
        """
        args = self._base_args("status")
        if dir_url:
            args.extend(["--dir", dir_url])
        raw = self._decode(_RawStatus, self._run(args))
        if raw.error:
            raise ExecutorError(raw.error, detail=raw.env.dir or None)
        return evaluate(raw.applied, raw.available, env=raw.env)

    def migrate_apply(self, amount: int) -> ApplyReport:
        """
        Apply the next ``amount`` pending files.

        Raises:
            ExecutorError: If the command fails or a file failed to apply
        """
        args = self._base_args("apply")
        args.extend(["--context", self._context()])
        args.append(str(amount))
        report = self._decode(ApplyReport, self._run(args))
        failed = [f for f in report.applied if f.error is not None]
        if report.error or failed:
            summary = report.error or failed[0].error.text
            raise ExecutorError(summary, detail=_failed_files(failed) or None)
        return report

    def migrate_down(self, to_version: str, dir_url: str) -> DownReport:
        """Revert applied revisions down to (and excluding) to_version's successors."""
        args = self._base_args("down")
        args.extend(["--context", self._context()])
        # An empty version reverts everything the directory does not hold
        if to_version:
            args.extend(["--to-version", to_version])
        args.extend(["--dir", dir_url])
        report = self._decode(DownReport, self._run(args))
        failed = [f for f in report.reverted if f.error is not None]
        if report.error or failed:
            summary = report.error or failed[0].error.text
            raise ExecutorError(summary, detail=_failed_files(failed) or report.url)
        return report

    def migrate_lint(self, latest: int) -> LintReport:
        """Lint the last ``latest`` files of the directory."""
        args = self._base_args("lint")
        args.extend(["--latest", str(latest)])
        return self._decode(LintReport, self._run(args))

    def schema_inspect(self) -> str:
        """
        Inspect the environment's ``url`` and return its schema as HCL.

        For a ``file://`` URL the dev database is used to normalize the file.
        """
        return self._run(self._base_args("inspect", command="schema", json_format=False))

    def schema_apply(
        self, dry_run: bool = False, auto_approve: bool = False, tx_mode: str = ""
    ) -> SchemaApplyReport:
        """
        Plan the statements moving the database to the environment's ``src``, and run them.

        Args:
            dry_run: Only compute the statements
            auto_approve: Run without asking for confirmation
            tx_mode: Transaction mode (``file``, ``all`` or ``none``; empty for the default)

        Raises:
            ExecutorError: If the command fails or a statement failed
        """
        args = self._base_args("apply", command="schema")
        if tx_mode:
            args.extend(["--tx-mode", tx_mode])
        if dry_run:
            args.append("--dry-run")
        if auto_approve:
            args.append("--auto-approve")
        report = self._decode(SchemaApplyReport, self._run(args))
        stmt_error = report.changes.error
        if report.error or stmt_error is not None:
            summary = report.error or stmt_error.text
            detail = f"statement: {stmt_error.stmt.strip()}" if stmt_error and stmt_error.stmt else None
            raise ExecutorError(summary, detail=detail)
        return report

    def schema_clean(self, dry_run: bool = False, auto_approve: bool = False) -> SchemaCleanReport:
        """Drop every resource of the environment's ``url``."""
        args = self._base_args("clean", command="schema")
        if dry_run:
            args.append("--dry-run")
        if auto_approve:
            args.append("--auto-approve")
        report = self._decode(SchemaCleanReport, self._run(args))
        if report.error:
            failed = [report.applied] if report.applied and report.applied.error else []
            raise ExecutorError(report.error, detail=_failed_files(failed) or None)
        return report

    def _base_args(self, op: str, command: str = "migrate", json_format: bool = True) -> list[str]:
        config_url = f"{SCHEME_FILE}://{(self.working_dir / CONFIG_FILE_NAME).as_posix()}"
        args = [command, op, "--env", self.env_name, "--config", config_url]
        if json_format:
            args.extend(["--format", EXECUTOR_JSON_FORMAT])
        for key in sorted(self.variables):
            for value in _var_values(self.variables[key]):
                args.extend(["--var", f"{key}={value}"])
        return args

    def _context(self) -> str:
        return json.dumps({"triggerVersion": __version__})

    def _run(self, args: list[str]) -> str:
        """
        Run the executor and return its stdout.

        Raises:
            ExecutorError: If the process fails or cannot be started
            Cancelled: If the cancellation token fires first
        """
        cmd = [str(self.executable), *args]
        logger.debug("Running atlas %s", " ".join(args[:2]))
        try:
            result = run_command(
                cmd, cwd=self.working_dir, env=EXECUTOR_ENV, check=False, cancel=self.cancel
            )
        except OSError as e:
            raise ExecutorError(f"Failed to run {self.executable}: {e}") from e

        stdout, stderr = result.stdout or "", result.stderr or ""
        if result.returncode == 0:
            return stdout
        if stderr.strip():
            raise ExecutorError(stderr, detail=stdout)
        if result.returncode != 1 or not _is_json(stdout):
            raise ExecutorError("Atlas CLI", detail=stdout)
        # Exit code 1 with a JSON report: the report carries the failure
        return stdout

    @staticmethod
    def _decode(model: type[BaseModel], stdout: str) -> Any:
        try:
            data, _ = json.JSONDecoder().raw_decode(stdout.strip())
            return model.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ExecutorError(f"Failed to decode executor output: {e}", detail=stdout) from e


def _var_values(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [v for item in value for v in _var_values(item)]
    if isinstance(value, bool):
        return ["true" if value else "false"]
    if isinstance(value, (dict,)):
        return [json.dumps(value)]
    return [str(value)]


def _failed_files(files: list[AppliedFile]) -> str:
    """One line per failed file naming the statement that broke it."""
    lines = []
    for f in files:
        lines.append(f"{f.name}: {f.error.text}")
        if f.error.stmt:
            lines.append(f"  statement: {f.error.stmt.strip()}")
    return "\n".join(lines)


def _is_json(text: str) -> bool:
    try:
        json.JSONDecoder().raw_decode(text.strip())
    except json.JSONDecodeError:
        return False
    return True
