"""Migration directories and their truncated, checksum-consistent views."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from .checksum import ChecksumManifest
from .constants import HASH_FILE_NAME, MIGRATION_FILE_SUFFIX
from .errors import ChecksumMismatch, VersionNotFound
from .utils import ensure_dir

logger = logging.getLogger(__name__)


class MigrationFile(BaseModel):
    """Immutable, versioned unit of schema change."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes

    @property
    def version(self) -> str:
        """Version prefix of the file name (``20221101163823`` for ``20221101163823_users.sql``)."""
        return self.name.removesuffix(MIGRATION_FILE_SUFFIX).split("_", 1)[0]

    @property
    def description(self) -> str:
        """Free text after the version in the file name."""
        parts = self.name.removesuffix(MIGRATION_FILE_SUFFIX).split("_", 1)
        return parts[1] if len(parts) > 1 else ""


class MigrationDir(ABC):
    """Ordered set of migration files plus their checksum sidecar."""

    @abstractmethod
    def files(self) -> list[MigrationFile]:
        """Return the migration files in version order."""
        pass

    @abstractmethod
    def open(self, name: str) -> bytes:
        """Return the raw bytes of a file in the directory."""
        pass

    @property
    def path(self) -> str:
        """Location of the directory, if it has one."""
        return ""

    @property
    def commit_id(self) -> str:
        """Content-addressable identifier of the directory, if it has one."""
        return ""

    def checksum(self) -> ChecksumManifest:
        """Compute the manifest over the directory's files."""
        return ChecksumManifest.compute(self.files())


class LocalDirectory(MigrationDir):
    """Migration directory on the local filesystem."""

    def __init__(self, path: Path):
        """
        Initialize local directory.

        Args:
            path: Directory holding ``*.sql`` files and ``atlas.sum``

        Raises:
            NotADirectoryError: If path is not an existing directory
        """
        if not path.is_dir():
            raise NotADirectoryError(f"Migration directory not found: {path}")
        self._path = path

    @property
    def path(self) -> str:
        return str(self._path)

    def files(self) -> list[MigrationFile]:
        names = sorted(
            p.name for p in self._path.iterdir() if p.is_file() and p.suffix == MIGRATION_FILE_SUFFIX
        )
        return [MigrationFile(name=name, content=(self._path / name).read_bytes()) for name in names]

    def open(self, name: str) -> bytes:
        return (self._path / name).read_bytes()


class MemoryDirectory(MigrationDir):
    """In-memory migration directory, mostly used for remote contents and tests."""

    def __init__(self, files: list[MigrationFile] | None = None, sum_file: bytes | None = None):
        self._files = sorted(files or [], key=lambda f: f.name)
        self._sum = sum_file

    def files(self) -> list[MigrationFile]:
        return list(self._files)

    def open(self, name: str) -> bytes:
        if name == HASH_FILE_NAME:
            if self._sum is None:
                raise FileNotFoundError(name)
            return self._sum
        for f in self._files:
            if f.name == name:
                return f.content
        raise FileNotFoundError(name)

    def write_sum(self) -> None:
        """Store the current manifest as the directory's sidecar."""
        self._sum = self.checksum().marshal_text()


class VersionedDirectory(MigrationDir):
    """
    View of a directory that only holds files up to a version (inclusive).

    Reading ``atlas.sum`` through the view yields a manifest recomputed over
    exactly the visible files, so the executor's integrity check passes for
    the prefix that is being applied.
    """

    def __init__(self, full: MigrationDir, latest_index: int):
        self.full = full
        self.latest_index = latest_index

    @property
    def path(self) -> str:
        return self.full.path

    @property
    def commit_id(self) -> str:
        return self.full.commit_id

    def files(self) -> list[MigrationFile]:
        return self.full.files()[: self.latest_index]

    def open(self, name: str) -> bytes:
        if name != HASH_FILE_NAME:
            return self.full.open(name)
        return self.checksum().marshal_text()


def validate(directory: MigrationDir) -> None:
    """
    Check a directory against its checksum sidecar.

    Raises:
        ChecksumMismatch: If the sidecar is missing, malformed or stale
        OSError: If the directory cannot be read
    """
    try:
        stored = directory.open(HASH_FILE_NAME)
    except FileNotFoundError as e:
        raise ChecksumMismatch(
            f"checksum file {HASH_FILE_NAME} not found in {directory.path or 'directory'}"
        ) from e

    directory.checksum().verify(ChecksumManifest.unmarshal_text(stored))


def truncate(directory: MigrationDir, version: str) -> MigrationDir:
    """
    Return a view of the directory holding files up to version (inclusive).

    Args:
        directory: Full migration directory
        version: Target version; empty means the whole directory

    Returns:
        The directory itself for an empty version, a VersionedDirectory otherwise

    Raises:
        ChecksumMismatch: If the full directory fails its integrity check
        VersionNotFound: If no file carries the version
    """
    if not version:
        return directory

    validate(directory)

    for idx, f in enumerate(directory.files()):
        if f.version == version:
            logger.debug("Truncating %s at %s (%d files)", directory.path, version, idx + 1)
            return VersionedDirectory(directory, idx + 1)

    raise VersionNotFound(version)


def write_directory(directory: MigrationDir, target: Path) -> Path:
    """
    Materialize a directory's files and its checksum sidecar on disk.

    Args:
        directory: Directory (or truncated view) to copy
        target: Destination directory, created if needed

    Returns:
        The destination path
    """
    ensure_dir(target)
    for f in directory.files():
        (target / f.name).write_bytes(f.content)
    try:
        (target / HASH_FILE_NAME).write_bytes(directory.open(HASH_FILE_NAME))
    except FileNotFoundError:
        # Unhashed full directory; the executor reports the missing sum itself
        logger.debug("No %s in %s", HASH_FILE_NAME, directory.path)
    return target


def write_sum(path: Path) -> ChecksumManifest:
    """
    Hash a local directory and (re)write its checksum sidecar.

    Returns:
        The written manifest
    """
    manifest = LocalDirectory(path).checksum()
    (path / HASH_FILE_NAME).write_bytes(manifest.marshal_text())
    return manifest
