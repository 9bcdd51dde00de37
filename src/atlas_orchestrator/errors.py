"""Error taxonomy for Atlas-Orchestrator.

Every failure raised by the package derives from OrchestratorError and carries
a kind, so callers can branch on ``err.kind`` instead of probing types.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of orchestration failures."""

    PARSE = "parse"
    VERSION_NOT_FOUND = "version_not_found"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    EXECUTOR = "executor"
    CANCELLED = "cancelled"
    CONFIG = "config"


class OrchestratorError(Exception):
    """Base class for all orchestration failures."""

    kind: ErrorKind = ErrorKind.CONFIG

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        return self.message


class ParseError(OrchestratorError):
    """
    Raised when a configuration document cannot be parsed.

    The position points at the offending character (1-based) so the user
    can fix the input without re-running with more verbosity.
    """

    kind = ErrorKind.PARSE

    def __init__(self, message: str, line: int = 0, column: int = 0, filename: str = "atlas.hcl"):
        self.line = line
        self.column = column
        self.filename = filename
        location = f"{filename}:{line},{column}: " if line else ""
        super().__init__(f"{location}{message}")


class VersionNotFound(OrchestratorError):
    """Raised when a requested version is absent from a migration directory."""

    kind = ErrorKind.VERSION_NOT_FOUND

    def __init__(self, version: str, message: str | None = None):
        self.version = version
        super().__init__(message or f"version {version!r} not found")


class IncorrectVersion(VersionNotFound):
    """Raised when the target version is neither applied nor pending."""

    def __init__(self, version: str):
        super().__init__(
            version,
            f"Incorrect version: the version {version} is not found in the pending migrations.",
        )


class ChecksumMismatch(OrchestratorError):
    """
    Raised when a migration directory fails its integrity check.

    This covers:
    - A missing checksum sidecar file
    - A malformed checksum sidecar file
    - A recomputed manifest that differs from the stored one
    """

    kind = ErrorKind.CHECKSUM_MISMATCH


class ExecutorError(OrchestratorError):
    """
    Raised when the migration executor fails.

    ``summary`` is the short diagnostic (usually the executor's stderr) and
    ``detail`` the raw output that came with it.
    """

    kind = ErrorKind.EXECUTOR

    def __init__(self, summary: str, detail: str | None = None):
        summary = summary.strip()
        if summary.startswith("Error: "):
            summary = summary.removeprefix("Error: ")
        self.summary = summary
        super().__init__(summary, detail.strip() if detail else None)


class RunAborted(ExecutorError):
    """Raised when a gated down-migration run was aborted by a reviewer."""

    def __init__(self, url: str | None = None):
        self.url = url
        super().__init__(f"Migration was aborted, review here: {url or 'N/A'}")


class Cancelled(OrchestratorError):
    """Raised when an operation is aborted by a deadline or a cancellation signal."""

    kind = ErrorKind.CANCELLED

    def __init__(self, reason: str = "operation cancelled"):
        super().__init__(reason)


class ConfigError(OrchestratorError):
    """Raised when a migration request or the composed configuration is invalid."""

    kind = ErrorKind.CONFIG


class UnrecognizedResources(ConfigError):
    """
    Raised when the first apply of a schema would drop existing resources.

    The database holds resources the desired schema does not define, most
    likely because it was not created from that schema.
    """

    def __init__(self, statements: list[str]):
        self.statements = statements
        super().__init__(
            "Unrecognized schema resources",
            detail="The database contains resources that Atlas wants to drop because they are not "
            "defined in the HCL file on the first run.\n" + "\n".join(f"- {s}" for s in statements),
        )
