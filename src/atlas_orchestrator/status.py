"""Status reconciliation between applied revisions and available migration files."""

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import LATEST_VERSION, NO_MIGRATION, ReportStatus


class ExecutorReport(BaseModel):
    """Base for executor reports: PascalCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        """Treat JSON nulls (atlas reports empty lists as null) as missing fields."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class FileInfo(ExecutorReport):
    """Migration file as listed by the executor."""

    name: str = Field(default="", alias="Name")
    version: str = Field(alias="Version")
    description: str = Field(default="", alias="Description")


class Revision(ExecutorReport):
    """Row of the database's revision ledger."""

    version: str = Field(alias="Version")
    description: str = Field(default="", alias="Description")
    type: str | int = Field(default="", alias="Type")
    applied: int = Field(default=0, alias="Applied")
    total: int = Field(default=0, alias="Total")
    error: str | None = Field(default=None, alias="Error")


class EnvInfo(ExecutorReport):
    """Environment the executor ran against."""

    driver: str = Field(default="", alias="Driver")
    url: dict[str, Any] | str = Field(default="", alias="URL")
    dir: str = Field(default="", alias="Dir")


class StatusReport(ExecutorReport):
    """Derived view of a database against a migration directory."""

    env: EnvInfo = Field(default_factory=EnvInfo, alias="Env")
    available: list[FileInfo] = Field(default_factory=list, alias="Available")
    pending: list[FileInfo] = Field(default_factory=list, alias="Pending")
    applied: list[Revision] = Field(default_factory=list, alias="Applied")
    current: str = Field(default=NO_MIGRATION, alias="Current")
    next: str = Field(default=LATEST_VERSION, alias="Next")
    status: ReportStatus = Field(default=ReportStatus.OK, alias="Status")
    error: str | None = Field(default=None, alias="Error")

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    @property
    def available_count(self) -> int:
        return len(self.available)

    @property
    def latest_version(self) -> str:
        """Version of the last available file, or empty for an empty directory."""
        return self.available[-1].version if self.available else ""

    @property
    def is_downing(self) -> bool:
        """
        Whether the database holds revisions the directory no longer has.

        This is a heuristic: it cannot tell an intended rollback from files
        that were deleted by accident.
        """
        return (
            not self.pending
            and self.applied_count > 0
            and self.applied_count > self.available_count
        )

    def amount(self, version: str) -> tuple[int, bool]:
        """
        Number of pending files to apply to reach a version.

        Args:
            version: Target version; empty means "everything pending"

        Returns:
            Tuple of (amount, synced). ``(0, False)`` for a non-empty version
            means it is neither current nor pending.
        """
        return amount(self, version)


def evaluate(
    applied: Sequence[Revision],
    available: Sequence[FileInfo],
    env: EnvInfo | None = None,
    error: str | None = None,
) -> StatusReport:
    """
    Build a status report from the revision ledger and the directory listing.

    Args:
        applied: Revisions already applied, in ledger order
        available: Files of the directory, in version order
        env: Environment reported by the executor
        error: Error reported by the executor, if any

    Returns:
        StatusReport with current/next/pending derived from the inputs
    """
    applied_versions = {r.version for r in applied}
    pending = [f for f in available if f.version not in applied_versions]

    return StatusReport(
        env=env or EnvInfo(),
        available=list(available),
        pending=pending,
        applied=list(applied),
        current=applied[-1].version if applied else NO_MIGRATION,
        next=pending[0].version if pending else LATEST_VERSION,
        status=ReportStatus.PENDING if pending else ReportStatus.OK,
        error=error,
    )


def amount(report: StatusReport, version: str) -> tuple[int, bool]:
    """Resolve a target version to (pending steps, synced). Never raises."""
    if not version:
        count = len(report.pending)
        return count, count == 0

    if report.current == version:
        return 0, True

    for idx, f in enumerate(report.pending):
        if f.version == version:
            return idx + 1, False

    return 0, False


class MigrationStatus(BaseModel):
    """Observable migration state with sentinels replaced by None."""

    status: ReportStatus
    current: str | None = None
    next: str | None = None
    latest: str | None = None

    @classmethod
    def from_report(cls, report: StatusReport) -> "MigrationStatus":
        """Summarize a status report."""
        current = report.current
        if report.status == ReportStatus.PENDING and current == NO_MIGRATION:
            current = None

        nxt = report.next
        if report.status == ReportStatus.OK and nxt == LATEST_VERSION:
            nxt = None

        return cls(
            status=report.status,
            current=current,
            next=nxt,
            latest=report.latest_version or None,
        )
