"""Builder for the working atlas.hcl: user base config plus generated overlay."""

import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit

from pydantic import BaseModel, Field

from .constants import CHUNKED_DIR_PREFIX, DEFAULT_ENV_NAME, SCHEME_ATLAS, SCHEME_FILE, SCHEME_SQLITE
from .errors import ConfigError
from .hcl import Block, Body, Document, parse_config
from .merge import merge_env_block, merge_file
from .migrate_dir import LocalDirectory, truncate, write_directory

logger = logging.getLogger(__name__)


class MigrationConfig(BaseModel):
    """Settings of the nested ``migration`` block."""

    dir_url: str = ""
    baseline: str = ""
    exec_order: str = ""
    revisions_schema: str = ""
    repo: str = ""

    def is_empty(self) -> bool:
        return not any(self.model_dump().values())


class ConcurrentIndexConfig(BaseModel):
    create: bool | None = None
    drop: bool | None = None


class SkipChangesConfig(BaseModel):
    """Change kinds the schema diff leaves out of the plan."""

    add_schema: bool | None = None
    drop_schema: bool | None = None
    modify_schema: bool | None = None
    add_table: bool | None = None
    drop_table: bool | None = None
    modify_table: bool | None = None
    add_column: bool | None = None
    drop_column: bool | None = None
    modify_column: bool | None = None
    add_index: bool | None = None
    drop_index: bool | None = None
    modify_index: bool | None = None
    add_foreign_key: bool | None = None
    drop_foreign_key: bool | None = None
    modify_foreign_key: bool | None = None


class DiffConfig(BaseModel):
    """Settings of the nested ``diff`` block."""

    concurrent_index: ConcurrentIndexConfig | None = None
    skip: SkipChangesConfig | None = None


class CloudConfig(BaseModel):
    """Settings of the ``atlas { cloud {} }`` block."""

    token: str
    project: str | None = None
    url: str | None = None

    def as_document(self) -> Document:
        doc = Document()
        cloud = doc.body.append_new_block("atlas").body.append_new_block("cloud").body
        cloud.set_attribute_value("token", self.token)
        if self.project is not None:
            cloud.set_attribute_value("project", self.project)
        if self.url is not None:
            cloud.set_attribute_value("url", self.url)
        return doc


class EnvConfig(BaseModel):
    """Generated env overlay."""

    url: str = ""
    dev_url: str = ""
    src: str = ""
    exclude: list[str] = Field(default_factory=list)
    migration: MigrationConfig | None = None
    diff: DiffConfig | None = None

    def as_block(self) -> Block:
        """
        Build the unlabeled env block holding only the fields that are set.

        Returns:
            Block such as::

                env {
                  url = "mysql://..."
                  dev = "docker://..."
                  migration {
                    dir        = "file://migrations"
                    exec_order = LINEAR_SKIP
                  }
                }
        """
        blk = Block(type="env")
        env = blk.body
        if self.url:
            env.set_attribute_value("url", self.url)
        if self.dev_url:
            env.set_attribute_value("dev", self.dev_url)
        if self.src:
            env.set_attribute_value("src", self.src)
        if exclude := [e for e in self.exclude if e]:
            env.set_attribute_value("exclude", exclude)
        if md := self.migration:
            m = env.append_new_block("migration").body
            if md.dir_url:
                m.set_attribute_value("dir", md.dir_url)
            if md.baseline:
                m.set_attribute_value("baseline", md.baseline)
            if md.exec_order:
                m.set_attribute_traversal("exec_order", hcl_value(md.exec_order))
            if md.revisions_schema:
                m.set_attribute_value("revisions_schema", md.revisions_schema)
            if md.repo:
                m.append_new_block("repo").body.set_attribute_value("name", md.repo)
        if dd := self.diff:
            d = env.append_new_block("diff").body
            if dd.concurrent_index is not None:
                _set_flags(d.append_new_block("concurrent_index").body, dd.concurrent_index)
            if dd.skip is not None:
                _set_flags(d.append_new_block("skip").body, dd.skip)
        return blk

    def dir_url(self, working_dir: Path, version: str) -> str:
        """
        URL of the migration directory to hand to the executor.

        Remote directories are used as is. A local directory is truncated at
        version and copied into the working area with a recomputed atlas.sum.

        Args:
            working_dir: Scoped working area of the current operation
            version: Target version; empty keeps every file

        Returns:
            ``atlas://`` URL, or ``file://`` URL of the materialized copy

        Raises:
            ConfigError: If no migration directory is configured or it does not exist
            ChecksumMismatch: If the local directory fails its integrity check
            VersionNotFound: If version is not in the local directory
        """
        dir_url = self._require_dir_url()
        parts = _split_url(dir_url)
        if parts.scheme == SCHEME_ATLAS:
            return dir_url

        try:
            directory = LocalDirectory(Path(parts.netloc + parts.path))
        except NotADirectoryError as e:
            raise ConfigError(str(e)) from e

        target = write_directory(
            truncate(directory, version), working_dir / f"{CHUNKED_DIR_PREFIX}{version}"
        )
        logger.debug("Materialized %s at %s", dir_url, target)
        return _file_url(str(target))

    def dir_url_latest(self) -> str:
        """
        URL of the newest contents of the migration directory.

        ``atlas://remote-dir?tag=tag`` becomes ``atlas://remote-dir``; local
        URLs are returned unchanged.
        """
        dir_url = self._require_dir_url()
        parts = _split_url(dir_url)
        if parts.scheme != SCHEME_ATLAS:
            return dir_url

        query = urlencode([(k, v) for k, v in parse_qsl(parts.query) if k != "tag"])
        return f"{parts.scheme}://{parts.netloc}{parts.path}" + (f"?{query}" if query else "")

    def _require_dir_url(self) -> str:
        if self.migration is None or not self.migration.dir_url:
            raise ConfigError("missing migration directory in the config")
        return self.migration.dir_url


class ProjectConfig(BaseModel):
    """Everything needed to render the working atlas.hcl of one operation."""

    config: str = ""
    env_name: str = DEFAULT_ENV_NAME
    env: EnvConfig = Field(default_factory=EnvConfig)
    cloud: CloudConfig | None = None
    vars: dict[str, Any] = Field(default_factory=dict)
    migrate_down: bool = False

    def as_document(self) -> Document:
        """
        Merge the generated overlay into the user's base config.

        Raises:
            ParseError: If the base config is malformed
            ConfigError: If the base config has env blocks but none for env_name
        """
        dst = parse_config(self.config)
        if self.cloud is not None:
            merge_file(dst, self.cloud.as_document())
        try:
            merge_env_block(dst.body, self.env.as_block(), self.env_name)
        except ConfigError as e:
            raise ConfigError(e.message, detail=self.config) from e
        return dst

    def render(self) -> str:
        return self.as_document().render()


def hcl_value(s: str) -> str:
    """Enum value in HCL form: ``linear-skip`` becomes ``LINEAR_SKIP``."""
    return s.upper().replace("-", "_")


def remote_dir_url(name: str, tag: str = "") -> str:
    """
    Build the URL of a directory stored in the cloud registry.

    Raises:
        ConfigError: If name is empty
    """
    if not name:
        raise ConfigError("remote_dir.name is required")
    query = urlencode({"tag": tag}) if tag else ""
    return f"{SCHEME_ATLAS}://{name}" + (f"?{query}" if query else "")


def absolute_file_url(s: str) -> str:
    """
    Turn a (possibly relative) directory path or file URL into an absolute file URL.

    ``atlas://`` URLs are returned unchanged.

    Raises:
        ConfigError: If the value is not a valid URL
    """
    parts = _split_url(s.replace(os.sep, "/"))
    if parts.scheme.lower() == SCHEME_ATLAS:
        return s
    return _file_url(os.path.abspath(parts.netloc + parts.path), parts.query)


def absolute_sqlite_url(s: str) -> str:
    """
    Make the path of a ``sqlite://`` database URL absolute.

    URLs of other drivers, and the empty string, are returned unchanged.
    """
    if not s:
        return ""
    parts = _split_url(s.replace(os.sep, "/"))
    if parts.scheme != SCHEME_SQLITE:
        return s
    path = Path(os.path.abspath(parts.netloc + parts.path)).as_posix()
    return f"{SCHEME_SQLITE}://{path}" + (f"?{parts.query}" if parts.query else "")


def _set_flags(body: Body, flags: BaseModel) -> None:
    """Set the boolean fields that are not None, in declaration order."""
    for name, value in flags.model_dump().items():
        if value is not None:
            body.set_attribute_value(name, value)


def _file_url(path: str, query: str = "") -> str:
    url = f"{SCHEME_FILE}://{Path(path).as_posix()}"
    return url + (f"?{query}" if query else "")


def _split_url(s: str):
    try:
        return urlsplit(s)
    except ValueError as e:
        raise ConfigError(f"failed to parse URL {s!r}: {e}") from e
