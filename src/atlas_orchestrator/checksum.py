"""Order-sensitive checksum manifests for migration directories.

The manifest is written next to the migration files (``atlas.sum``) and lets
the executor detect files that were edited, added, removed or reordered after
the directory was hashed::

    h1:<total>
    20221101163823_create_users.sql h1:<running hash>
    20221101164227_pets_owner.sql h1:<running hash>

Each entry holds the running SHA-256 over ``name || content`` of every file up
to and including that one, so the total covers all names and contents in order.
"""

import base64
import hashlib
from collections.abc import Iterable
from typing import Protocol

from pydantic import BaseModel, ConfigDict

from .constants import HASH_FILE_NAME, HASH_PREFIX
from .errors import ChecksumMismatch


class NamedContent(Protocol):
    """Anything with a file name and its raw bytes."""

    name: str
    content: bytes


class ManifestEntry(BaseModel):
    """Single (name, hash) pair of a manifest."""

    model_config = ConfigDict(frozen=True)

    name: str
    hash: str


class ChecksumManifest(BaseModel):
    """Combined digest plus one running hash per file."""

    model_config = ConfigDict(frozen=True)

    total: str
    entries: tuple[ManifestEntry, ...] = ()

    @classmethod
    def compute(cls, files: Iterable[NamedContent]) -> "ChecksumManifest":
        """
        Compute the manifest over an ordered sequence of files.

        Args:
            files: Files in directory order

        Returns:
            ChecksumManifest whose total changes when any name, any byte or
            the order of the files changes
        """
        h = hashlib.sha256()
        entries = []
        for f in files:
            h.update(f.name.encode())
            h.update(f.content)
            entries.append(ManifestEntry(name=f.name, hash=_encode(h.digest())))
        return cls(total=_encode(h.digest()), entries=tuple(entries))

    @property
    def names(self) -> list[str]:
        """File names covered by the manifest, in order."""
        return [e.name for e in self.entries]

    def get(self, name: str) -> str | None:
        """Return the running hash recorded for a file name."""
        for entry in self.entries:
            if entry.name == name:
                return entry.hash
        return None

    def marshal_text(self) -> bytes:
        """Encode the manifest in its sidecar text format."""
        lines = [f"{HASH_PREFIX}{self.total}"]
        lines.extend(f"{e.name} {HASH_PREFIX}{e.hash}" for e in self.entries)
        return ("\n".join(lines) + "\n").encode()

    @classmethod
    def unmarshal_text(cls, data: bytes) -> "ChecksumManifest":
        """
        Decode a manifest from its sidecar text format.

        Raises:
            ChecksumMismatch: If the text is not a valid manifest
        """
        try:
            lines = data.decode().splitlines()
        except UnicodeDecodeError as e:
            raise ChecksumMismatch(f"{HASH_FILE_NAME} is not valid UTF-8") from e

        lines = [line for line in lines if line.strip()]
        if not lines or not lines[0].startswith(HASH_PREFIX):
            raise ChecksumMismatch(f"{HASH_FILE_NAME} is malformed: missing total sum")

        entries = []
        for number, line in enumerate(lines[1:], start=2):
            name, sep, digest = line.rpartition(" ")
            if not sep or not name or not digest.startswith(HASH_PREFIX):
                raise ChecksumMismatch(f"{HASH_FILE_NAME} is malformed at line {number}: {line!r}")
            entries.append(ManifestEntry(name=name, hash=digest.removeprefix(HASH_PREFIX)))

        return cls(total=lines[0].removeprefix(HASH_PREFIX), entries=tuple(entries))

    def verify(self, expected: "ChecksumManifest") -> None:
        """
        Compare this (recomputed) manifest against a stored one.

        Raises:
            ChecksumMismatch: Naming the first file whose hash differs
        """
        if self.total == expected.total:
            return

        for ours, theirs in zip(self.entries, expected.entries):
            if ours != theirs:
                raise ChecksumMismatch(
                    f"checksum mismatch at {ours.name!r}",
                    detail=f"Expected: {theirs.name} {theirs.hash}\nActual: {ours.name} {ours.hash}",
                )
        raise ChecksumMismatch(
            "checksum mismatch: files were added or removed",
            detail=f"Expected files: {expected.names}\nActual files: {self.names}",
        )


def _encode(digest: bytes) -> str:
    return base64.b64encode(digest).decode()


_FNV128_OFFSET = 0x6C62272E07BB014262B821756295C58D
_FNV128_PRIME = 0x0000000001000000000000000000013B
_MASK128 = (1 << 128) - 1


def schema_id(hcl: str | None) -> str:
    """
    Fingerprint of a (normalized) schema document.

    FNV-1 128-bit hash of the UTF-8 text, base64-encoded without padding.
    ``None`` and the empty string share the fingerprint of no input.
    """
    h = _FNV128_OFFSET
    for byte in (hcl or "").encode("utf-8"):
        h = (h * _FNV128_PRIME) & _MASK128
        h ^= byte
    return base64.b64encode(h.to_bytes(16, "big")).decode("ascii").rstrip("=")
