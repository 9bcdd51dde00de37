"""Tests for migrate_dir module."""

from pathlib import Path

import pytest

from atlas_orchestrator.checksum import ChecksumManifest
from atlas_orchestrator.errors import ChecksumMismatch, VersionNotFound
from atlas_orchestrator.migrate_dir import (
    LocalDirectory,
    MemoryDirectory,
    MigrationFile,
    VersionedDirectory,
    truncate,
    validate,
    write_directory,
    write_sum,
)


class TestMigrationFile:
    """Tests for MigrationFile."""

    def test_version_and_description(self) -> None:
        """Test splitting the file name into version and description."""
        f = MigrationFile(name="20221101163823_create_users.sql", content=b"")

        assert f.version == "20221101163823"
        assert f.description == "create_users"

    def test_version_without_description(self) -> None:
        """Test a file name that holds only a version."""
        f = MigrationFile(name="20221101163823.sql", content=b"")

        assert f.version == "20221101163823"
        assert f.description == ""


class TestLocalDirectory:
    """Tests for LocalDirectory."""

    def test_lists_sql_files_in_order(self, migrations_dir: Path) -> None:
        """Test that only .sql files are listed, sorted by name."""
        (migrations_dir / "README.md").write_text("docs", encoding="utf-8")

        names = [f.name for f in LocalDirectory(migrations_dir).files()]

        assert names == sorted(names)
        assert len(names) == 3
        assert all(name.endswith(".sql") for name in names)

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing path is rejected."""
        with pytest.raises(NotADirectoryError):
            LocalDirectory(tmp_path / "missing")


class TestValidate:
    """Tests for validate."""

    def test_valid_directory(self, migrations_dir: Path) -> None:
        """Test that a freshly hashed directory validates."""
        validate(LocalDirectory(migrations_dir))

    def test_edited_file(self, migrations_dir: Path) -> None:
        """Test that editing a file after hashing fails validation."""
        (migrations_dir / "20221101163841_create_blog_posts.sql").write_text("DROP TABLE users;\n")

        with pytest.raises(ChecksumMismatch, match="20221101163841_create_blog_posts.sql"):
            validate(LocalDirectory(migrations_dir))

    def test_missing_sum_file(self, migrations_dir: Path) -> None:
        """Test that a directory without atlas.sum fails validation."""
        (migrations_dir / "atlas.sum").unlink()

        with pytest.raises(ChecksumMismatch, match="not found"):
            validate(LocalDirectory(migrations_dir))

    def test_memory_directory(self) -> None:
        """Test validating an in-memory directory."""
        directory = MemoryDirectory([MigrationFile(name="1_a.sql", content=b"a")])
        directory.write_sum()

        validate(directory)


class TestTruncate:
    """Tests for truncate."""

    def test_empty_version_returns_directory(self, migrations_dir: Path) -> None:
        """Test that an empty version keeps the whole directory."""
        directory = LocalDirectory(migrations_dir)

        assert truncate(directory, "") is directory

    def test_truncates_inclusively(self, migrations_dir: Path) -> None:
        """Test that files up to and including the version are kept."""
        view = truncate(LocalDirectory(migrations_dir), "20221101163841")

        assert isinstance(view, VersionedDirectory)
        assert [f.version for f in view.files()] == ["20221101163823", "20221101163841"]

    def test_view_sum_matches_visible_files(self, migrations_dir: Path) -> None:
        """Test that the view's atlas.sum covers exactly the visible files."""
        view = truncate(LocalDirectory(migrations_dir), "20221101163823")

        manifest = ChecksumManifest.unmarshal_text(view.open("atlas.sum"))

        assert manifest.names == ["20221101163823_create_users.sql"]
        validate(view)

    def test_unknown_version(self, migrations_dir: Path) -> None:
        """Test that an unknown version is reported."""
        with pytest.raises(VersionNotFound) as exc_info:
            truncate(LocalDirectory(migrations_dir), "19990101000000")

        assert exc_info.value.version == "19990101000000"

    def test_corrupt_directory(self, migrations_dir: Path) -> None:
        """Test that the full directory is validated before truncating."""
        (migrations_dir / "20221101164227_pets_owner.sql").write_text("-- edited\n")

        with pytest.raises(ChecksumMismatch):
            truncate(LocalDirectory(migrations_dir), "20221101163823")


class TestWriteDirectory:
    """Tests for write_directory and write_sum."""

    def test_materializes_view(self, migrations_dir: Path, tmp_path: Path) -> None:
        """Test that a truncated view is written with its own atlas.sum."""
        view = truncate(LocalDirectory(migrations_dir), "20221101163841")

        target = write_directory(view, tmp_path / "out" / "migration-20221101163841")

        assert sorted(p.name for p in target.iterdir()) == [
            "20221101163823_create_users.sql",
            "20221101163841_create_blog_posts.sql",
            "atlas.sum",
        ]
        validate(LocalDirectory(target))

    def test_unhashed_directory(self, tmp_path: Path) -> None:
        """Test that a directory without atlas.sum is copied without one."""
        source = tmp_path / "src"
        source.mkdir()
        (source / "1_a.sql").write_text("a")

        target = write_directory(LocalDirectory(source), tmp_path / "dst")

        assert not (target / "atlas.sum").exists()
        assert (target / "1_a.sql").read_text() == "a"

    def test_write_sum(self, tmp_path: Path) -> None:
        """Test that write_sum writes a manifest matching the files."""
        (tmp_path / "1_a.sql").write_text("a")

        manifest = write_sum(tmp_path)

        assert (tmp_path / "atlas.sum").read_bytes() == manifest.marshal_text()
        assert manifest.names == ["1_a.sql"]
