"""Desired-state input of one orchestration and its validation."""

import json
import logging
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from .config import Config
from .constants import DEFAULT_DIR, DEFAULT_ENV_NAME, SCHEME_ATLAS
from .errors import ConfigError
from .project import (
    CloudConfig,
    DiffConfig,
    EnvConfig,
    MigrationConfig,
    ProjectConfig,
    absolute_file_url,
    absolute_sqlite_url,
    remote_dir_url,
)

logger = logging.getLogger(__name__)


class Advisory(BaseModel):
    """Non-fatal diagnostic surfaced to the caller."""

    summary: str
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.summary}: {self.detail}" if self.detail else self.summary


class CloudBlock(BaseModel):
    """Atlas Cloud connection of a request."""

    token: str | None = None
    project: str | None = None
    url: str | None = None
    repo: str | None = None


class RemoteDirBlock(BaseModel):
    """Migration directory stored in the cloud registry."""

    name: str | None = None
    tag: str | None = None


class MigrateDownFlow(BaseModel):
    allow: bool = False
    auto_approve: bool = False


class ProtectedFlows(BaseModel):
    """Flows that need an explicit opt-in."""

    migrate_down: MigrateDownFlow | None = None


class MigrationRequest(BaseModel):
    """
    Desired migration state of one database.

    ``None`` means "unset"; several rules below depend on telling an unset
    field apart from an empty one.
    """

    config: str | None = None
    variables: str | None = None
    url: str | None = None
    dev_url: str | None = None
    dir: str | None = None
    revisions_schema: str | None = None
    version: str | None = None
    baseline: str | None = None
    exec_order: Literal["linear", "linear-skip", "non-linear"] | None = None
    env_name: str | None = None
    cloud: CloudBlock | None = None
    remote_dir: RemoteDirBlock | None = None
    protected_flows: ProtectedFlows | None = None
    timeout: float | None = Field(default=None, gt=0)

    @property
    def allows_migrate_down(self) -> bool:
        flows = self.protected_flows
        return bool(flows and flows.migrate_down and flows.migrate_down.allow)

    @property
    def auto_approve(self) -> bool:
        flows = self.protected_flows
        return bool(flows and flows.migrate_down and flows.migrate_down.auto_approve)


def parse_variables(variables: str | None) -> dict[str, Any]:
    """
    Decode the request's input variables.

    Raises:
        ConfigError: If the value is not a JSON object
    """
    if not variables:
        return {}
    try:
        data = json.loads(variables)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse variables: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("failed to parse variables: expected a JSON object")
    return data


def validate_config(request: MigrationRequest, settings: Config | None = None) -> list[Advisory]:
    """
    Check a request before any work is done.

    Args:
        request: Request to check
        settings: Loaded settings, used for the provider-level dev URL

    Returns:
        Warnings that do not prevent the request from running

    Raises:
        ConfigError: On the first rule the request breaks
    """
    warnings: list[Advisory] = []
    parse_variables(request.variables)

    if request.config and request.env_name == "":
        raise ConfigError("env_name is empty", detail="env_name is required when config is set")

    dir_url = (request.dir or "").replace("\\", "/")
    try:
        scheme = urlsplit(dir_url).scheme
    except ValueError as e:
        raise ConfigError("url is invalid", detail=str(e)) from e

    if scheme == SCHEME_ATLAS:
        if request.allows_migrate_down and request.auto_approve:
            raise ConfigError("auto_approve is not allowed for a remote directory")
        return warnings

    if not request.dev_url and not (settings and settings.dev_url):
        warnings.append(
            Advisory(
                summary="dev_url is unset",
                detail="It is highly recommended that you use 'dev_url' to specify a dev database.",
            )
        )
    if request.allows_migrate_down and not request.auto_approve:
        raise ConfigError("allow cannot be true without auto_approve for local migration directory")

    if request.version is None:
        warnings.append(
            Advisory(
                summary="version is unset",
                detail="If you don't specify a version, the latest version will be used.",
            )
        )

    if request.config is not None:
        return warnings

    if request.remote_dir is not None:
        if request.remote_dir.name is None:
            raise ConfigError(
                "remote_dir.name is unset", detail="remote_dir.name is required when remote_dir is set"
            )
        if request.dir is not None:
            raise ConfigError("dir is set", detail="dir is not allowed when remote_dir is set")
    elif request.dir is None:
        raise ConfigError("dir is unset", detail="dir is required when remote_dir is unset")
    elif request.dir == "":
        raise ConfigError("dir is empty", detail="dir is required when remote_dir is unset")
    return warnings


def build_project(request: MigrationRequest, settings: Config) -> ProjectConfig:
    """
    Translate a request into the project configuration of its workspace.

    Args:
        request: Desired state
        settings: Loaded settings (provider-level defaults)

    Returns:
        ProjectConfig ready to be rendered

    Raises:
        ConfigError: If the protected flow settings are inconsistent or a URL is invalid
    """
    env = EnvConfig(
        url=absolute_sqlite_url(request.url or ""),
        dev_url=request.dev_url or settings.dev_url,
    )

    cloud_repo = (request.cloud and request.cloud.repo) or settings.cloud.repo
    migration = MigrationConfig(
        baseline=request.baseline or "",
        revisions_schema=request.revisions_schema or "",
        exec_order=request.exec_order or "",
        repo=cloud_repo,
    )
    if request.remote_dir is not None:
        migration.dir_url = remote_dir_url(request.remote_dir.name or "", request.remote_dir.tag or "")
    elif not request.config:
        # Without a base config the default migrations directory is used
        migration.dir_url = absolute_file_url(request.dir or DEFAULT_DIR)
    elif request.dir:
        migration.dir_url = absolute_file_url(request.dir)

    migrate_down = False
    if request.allows_migrate_down:
        if migration.dir_url.startswith(f"{SCHEME_ATLAS}://"):
            if request.auto_approve:
                raise ConfigError("auto_approve is not allowed for a remote directory")
        elif not request.auto_approve:
            raise ConfigError("allow cannot be true without auto_approve for local migration directory")
        migrate_down = True

    if not migration.is_empty():
        env.migration = migration

    return ProjectConfig(
        config=request.config or "",
        env_name=request.env_name or settings.env_name or DEFAULT_ENV_NAME,
        env=env,
        cloud=_cloud_config(request.cloud, settings),
        vars=parse_variables(request.variables),
        migrate_down=migrate_down,
    )


def _cloud_config(block: CloudBlock | None, settings: Config) -> CloudConfig | None:
    """Request cloud settings win over the provider-level ones."""
    for source in (block, settings.cloud):
        if source is not None and source.token:
            return CloudConfig(
                token=source.token,
                project=source.project or None,
                url=source.url or None,
            )
    return None


class SchemaRequest(BaseModel):
    """
    Desired schema of one database, managed declaratively.

    ``hcl`` is the full desired schema; statements are planned by diffing it
    against the database at ``url``.
    """

    hcl: str | None = None
    url: str | None = None
    dev_url: str | None = None
    exclude: list[str] | None = None
    tx_mode: Literal["file", "all", "none"] | None = None
    diff: DiffConfig | None = None
    config: str | None = None
    variables: str | None = None
    env_name: str | None = None
    timeout: float | None = Field(default=None, gt=0)


def validate_schema_request(
    request: SchemaRequest, settings: Config | None = None, require_hcl: bool = True
) -> list[Advisory]:
    """
    Check a schema request before any work is done.

    Args:
        request: Request to check
        settings: Loaded settings, used for the provider-level dev URL
        require_hcl: Whether the desired schema must be set (False for inspect)

    Returns:
        Warnings that do not prevent the request from running

    Raises:
        ConfigError: On the first rule the request breaks
    """
    parse_variables(request.variables)
    if request.config and request.env_name == "":
        raise ConfigError("env_name is empty", detail="env_name is required when config is set")
    if not request.url and not request.config:
        raise ConfigError("url is unset", detail="url is required when config is unset")
    if require_hcl and not request.hcl:
        raise ConfigError("hcl is unset", detail="the desired schema is required")

    warnings: list[Advisory] = []
    if require_hcl and not request.dev_url and not (settings and settings.dev_url):
        warnings.append(
            Advisory(
                summary="dev_url is unset",
                detail="A dev database is required to normalize the schema and plan changes.",
            )
        )
    return warnings


def build_schema_project(request: SchemaRequest, settings: Config, src: str = "") -> ProjectConfig:
    """
    Translate a schema request into the project configuration of its workspace.

    Args:
        request: Desired state
        settings: Loaded settings (provider-level defaults)
        src: URL of the desired schema inside the workspace; empty to leave it unset

    Returns:
        ProjectConfig ready to be rendered
    """
    env = EnvConfig(
        url=absolute_sqlite_url(request.url or ""),
        dev_url=request.dev_url or settings.dev_url,
        src=src,
        exclude=request.exclude or [],
        diff=request.diff,
    )
    return ProjectConfig(
        config=request.config or "",
        env_name=request.env_name or settings.env_name or DEFAULT_ENV_NAME,
        env=env,
        cloud=_cloud_config(None, settings),
        vars=parse_variables(request.variables),
    )
