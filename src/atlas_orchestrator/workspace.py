"""Scoped working area holding the rendered atlas.hcl of one operation."""

import logging
import tempfile
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .config import Config
from .constants import CONFIG_FILE_NAME
from .executor import AtlasClient, MigrationExecutor, find_executable
from .project import ProjectConfig
from .utils import CancelToken, safe_rmtree

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Path, ProjectConfig, CancelToken | None], MigrationExecutor]


@dataclass
class Workspace:
    """Working directory, executor client and the project rendered into it."""

    dir: Path
    exec: MigrationExecutor
    project: ProjectConfig


def atlas_client_factory(settings: Config) -> ClientFactory:
    """
    Build a factory creating AtlasClient instances from settings.

    The executable is looked up once, when the factory is created.
    """
    executable = find_executable(settings.executor_search_dir, settings.executor_binary)

    def factory(working_dir: Path, project: ProjectConfig, cancel: CancelToken | None) -> MigrationExecutor:
        return AtlasClient(
            working_dir,
            executable,
            env_name=project.env_name,
            variables=project.vars,
            cancel=cancel,
        )

    return factory


@contextmanager
def open_workspace(
    project: ProjectConfig,
    client_factory: ClientFactory,
    cancel: CancelToken | None = None,
    files: dict[str, str] | None = None,
) -> Iterator[Workspace]:
    """
    Create a temporary working area with the rendered atlas.hcl.

    The area is removed on every exit path, including errors and cancellation.

    Args:
        project: Project configuration to render
        client_factory: Creates the executor client bound to the area
        cancel: Cancellation token handed to the client
        files: Extra files written next to atlas.hcl, by name

    Yields:
        Workspace for the duration of the block

    Raises:
        ParseError: If the base config is malformed
        ConfigError: If the overlay cannot be merged into the base config
    """
    path = Path(tempfile.mkdtemp(prefix="atlas-orchestrator-"))
    try:
        (path / CONFIG_FILE_NAME).write_text(project.render(), encoding="utf-8")
        for name, content in (files or {}).items():
            (path / name).write_text(content, encoding="utf-8")
        yield Workspace(dir=path, exec=client_factory(path, project, cancel), project=project)
    finally:
        try:
            safe_rmtree(path)
        except (OSError, ValueError) as e:
            logger.debug(f"Failed to cleanup working directory {path}: {e}")
