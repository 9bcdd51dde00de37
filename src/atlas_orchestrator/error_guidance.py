"""Actionable error guidance for common failure scenarios."""

import platform
from dataclasses import dataclass

from .errors import (
    Cancelled,
    ChecksumMismatch,
    ConfigError,
    ExecutorError,
    IncorrectVersion,
    OrchestratorError,
    ParseError,
    RunAborted,
    UnrecognizedResources,
    VersionNotFound,
)


@dataclass
class ErrorGuidance:
    """Structured error guidance with checks and suggestions."""

    title: str
    checks: list[str]  # Things to check
    fixes: list[str]  # How to fix
    examples: list[str] | None = None  # Example commands


class GuidanceProvider:
    """Provides context-aware guidance for errors."""

    @staticmethod
    def get_atlas_not_found() -> ErrorGuidance:
        """Guidance when the atlas binary is not installed."""
        os_name = platform.system()

        fixes = {
            "Linux": ["Install script: curl -sSf https://atlasgo.sh | sh"],
            "Darwin": ["Homebrew: brew install ariga/tap/atlas", "Or: curl -sSf https://atlasgo.sh | sh"],
            "Windows": ["Download from: https://release.ariga.io/atlas/atlas-windows-amd64-latest.exe"],
        }.get(os_name, ["See: https://atlasgo.io/getting-started"])
        fixes.append("Or point [global.executor] search_dir at the directory holding the binary")

        return ErrorGuidance(
            title="Atlas CLI is not installed or not in PATH",
            checks=[
                "Verify atlas is installed: which atlas (Unix) or where atlas (Windows)",
                "Check PATH environment variable",
            ],
            fixes=fixes,
            examples=["atlas version"],
        )

    @staticmethod
    def get_checksum_mismatch(path: str) -> ErrorGuidance:
        """Guidance when a migration directory fails its integrity check."""
        return ErrorGuidance(
            title="Migration directory does not match its atlas.sum",
            checks=[
                "Were migration files edited after they were hashed?",
                "Were files added, removed or renamed by hand?",
            ],
            fixes=[
                "Revert accidental edits to applied migration files",
                "Re-hash the directory if the change is intended",
            ],
            examples=[f"atlas-orchestrator hash {path}", f"atlas migrate hash --dir file://{path}"],
        )

    @staticmethod
    def get_version_not_found(version: str) -> ErrorGuidance:
        """Guidance when a target version does not exist."""
        return ErrorGuidance(
            title=f"Version '{version}' is not available",
            checks=[
                "Check the version against the migration file names (prefix before '_')",
                "A version that is already applied but not current cannot be targeted",
            ],
            fixes=[
                "Use the version of a pending file, or omit --version to apply everything",
                "Run the status command to see current and pending versions",
            ],
            examples=["atlas-orchestrator status --dir migrations --url <database-url>"],
        )

    @staticmethod
    def get_config_error(message: str) -> ErrorGuidance:
        """Guidance for invalid requests and base configs."""
        fixes = ["Check the request options against the settings file"]
        if "env block" in message:
            fixes = [
                "Set --env-name to the label of an env block in the base config",
                "Or add an unlabeled env {} block to the base config",
            ]
        elif "migrate down" in message:
            fixes = ["Pass --allow-down --auto-approve to allow reverting a local directory"]
        elif "auto_approve" in message or "allow" in message:
            fixes = [
                "Local directories need both --allow-down and --auto-approve",
                "Remote directories need --allow-down without --auto-approve",
            ]
        return ErrorGuidance(title="Invalid migration request", checks=[message], fixes=fixes)

    @staticmethod
    def get_run_aborted(url: str | None) -> ErrorGuidance:
        """Guidance when a gated down migration was rejected."""
        return ErrorGuidance(
            title="Down migration was aborted",
            checks=[f"Review the run: {url or 'N/A'}"],
            fixes=["Approve a new run, or set --version back to the current version"],
        )

    @staticmethod
    def get_unrecognized_resources() -> ErrorGuidance:
        """Guidance when a first schema apply would drop existing resources."""
        return ErrorGuidance(
            title="The database holds resources missing from the schema",
            checks=["Was the database created from this schema file?"],
            fixes=[
                "Inspect the database and copy the missing resources into the schema file",
                "Or add the resources to --exclude to leave them alone",
            ],
            examples=["atlas-orchestrator schema inspect --url <database-url>"],
        )

    @staticmethod
    def format_guidance(guidance: ErrorGuidance) -> str:
        """Format guidance as rich-compatible string."""
        lines = [f"[bold yellow]{guidance.title}[/bold yellow]\n"]

        if guidance.checks:
            lines.append("[cyan]Checks:[/cyan]")
            for check in guidance.checks:
                lines.append(f"  • {check}")
            lines.append("")

        if guidance.fixes:
            lines.append("[cyan]How to fix:[/cyan]")
            for fix in guidance.fixes:
                lines.append(f"  • {fix}")
            lines.append("")

        if guidance.examples:
            lines.append("[cyan]Try these commands:[/cyan]")
            for example in guidance.examples:
                lines.append(f"  $ {example}")

        return "\n".join(lines)


def guidance_for(error: OrchestratorError, path: str = "migrations") -> str | None:
    """
    Pick formatted guidance for an orchestration error.

    Args:
        error: Error being reported
        path: Migration directory of the request, used in examples

    Returns:
        Rich-formatted guidance, or None when there is nothing to add
    """
    guidance: ErrorGuidance | None = None
    if isinstance(error, Cancelled | ParseError):
        return None
    if isinstance(error, RunAborted):
        guidance = GuidanceProvider.get_run_aborted(error.url)
    elif isinstance(error, ExecutorError) and "not found" in error.summary and "executable" in error.summary:
        guidance = GuidanceProvider.get_atlas_not_found()
    elif isinstance(error, ChecksumMismatch):
        guidance = GuidanceProvider.get_checksum_mismatch(path)
    elif isinstance(error, IncorrectVersion | VersionNotFound):
        guidance = GuidanceProvider.get_version_not_found(error.version)
    elif isinstance(error, UnrecognizedResources):
        guidance = GuidanceProvider.get_unrecognized_resources()
    elif isinstance(error, ConfigError):
        guidance = GuidanceProvider.get_config_error(error.message)
    return GuidanceProvider.format_guidance(guidance) if guidance else None
