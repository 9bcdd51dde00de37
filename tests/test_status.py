"""Tests for status module."""

from atlas_orchestrator.constants import LATEST_VERSION, NO_MIGRATION, ReportStatus
from atlas_orchestrator.status import MigrationStatus, StatusReport, evaluate


class TestEvaluate:
    """Tests for building status reports."""

    def test_nothing_applied(self, status_factory) -> None:
        """Test that every file is pending on an empty database."""
        report = status_factory(applied=[], available=["A", "B", "C"])

        assert [f.version for f in report.pending] == ["A", "B", "C"]
        assert report.current == NO_MIGRATION
        assert report.next == "A"
        assert report.status == ReportStatus.PENDING

    def test_partially_applied(self, status_factory) -> None:
        """Test current and next on a partially migrated database."""
        report = status_factory(applied=["A"], available=["A", "B", "C"])

        assert [f.version for f in report.pending] == ["B", "C"]
        assert report.current == "A"
        assert report.next == "B"

    def test_fully_applied(self, status_factory) -> None:
        """Test that a synced database reports OK and the latest sentinel."""
        report = status_factory(applied=["A", "B"], available=["A", "B"])

        assert report.pending == []
        assert report.status == ReportStatus.OK
        assert report.next == LATEST_VERSION
        assert report.latest_version == "B"

    def test_empty_directory(self) -> None:
        """Test the report of an empty directory."""
        report = evaluate([], [])

        assert report.latest_version == ""
        assert report.status == ReportStatus.OK


class TestAmount:
    """Tests for resolving target versions."""

    def test_empty_target_counts_all_pending(self, status_factory) -> None:
        """Test that an empty target applies everything pending."""
        report = status_factory(applied=[], available=["A", "B", "C"])

        assert report.amount("") == (3, False)

    def test_target_in_pending(self, status_factory) -> None:
        """Test that a pending target resolves to its 1-based position."""
        report = status_factory(applied=[], available=["A", "B", "C"])

        assert report.amount("B") == (2, False)

    def test_absent_target(self, status_factory) -> None:
        """Test that an unknown target resolves to (0, False)."""
        report = status_factory(applied=[], available=["A", "B", "C"])

        assert report.amount("D") == (0, False)

    def test_current_target_is_synced(self, status_factory) -> None:
        """Test that targeting the current version is synced."""
        report = status_factory(applied=["A", "B"], available=["A", "B", "C"])

        assert report.amount("B") == (0, True)

    def test_empty_target_without_pending_is_synced(self, status_factory) -> None:
        """Test that an empty target on a synced database is synced."""
        report = status_factory(applied=["A"], available=["A"])

        assert report.amount("") == (0, True)

    def test_applied_but_not_current_target(self, status_factory) -> None:
        """Test that an older applied version cannot be targeted."""
        report = status_factory(applied=["A", "B"], available=["A", "B", "C"])

        assert report.amount("A") == (0, False)


class TestDowning:
    """Tests for the down-migration condition."""

    def test_more_applied_than_available(self, status_factory) -> None:
        """Test that extra applied revisions trigger the condition."""
        report = status_factory(applied=["A", "B"], available=["A"])

        assert report.pending == []
        assert report.is_downing is True

    def test_pending_files_prevent_downing(self, status_factory) -> None:
        """Test that pending work is never a down migration."""
        report = status_factory(applied=["A", "X", "Y"], available=["A", "B"])

        assert report.is_downing is False

    def test_nothing_applied(self, status_factory) -> None:
        """Test that an empty database is never downing."""
        assert status_factory(applied=[], available=[]).is_downing is False

    def test_synced(self, status_factory) -> None:
        """Test that a synced database is not downing."""
        assert status_factory(applied=["A"], available=["A"]).is_downing is False


class TestExecutorReport:
    """Tests for decoding executor JSON."""

    def test_nulls_are_dropped(self) -> None:
        """Test that JSON nulls fall back to field defaults."""
        report = StatusReport.model_validate(
            {
                "Env": {"Driver": "sqlite", "URL": "sqlite://file.db", "Dir": "file://migrations"},
                "Available": None,
                "Pending": None,
                "Applied": None,
                "Current": None,
                "Status": "OK",
            }
        )

        assert report.available == []
        assert report.applied == []
        assert report.current == NO_MIGRATION
        assert report.env.dir == "file://migrations"

    def test_unknown_keys_are_ignored(self) -> None:
        """Test that extra executor fields do not fail validation."""
        report = StatusReport.model_validate({"Status": "PENDING", "Count": 3, "Total": 4})

        assert report.status == ReportStatus.PENDING


class TestMigrationStatus:
    """Tests for the summarized status."""

    def test_pending_without_revisions(self, status_factory) -> None:
        """Test that the no-migration sentinel becomes None while pending."""
        status = MigrationStatus.from_report(status_factory(applied=[], available=["A", "B"]))

        assert status.status == ReportStatus.PENDING
        assert status.current is None
        assert status.next == "A"
        assert status.latest == "B"

    def test_synced(self, status_factory) -> None:
        """Test that the latest-version sentinel becomes None when synced."""
        status = MigrationStatus.from_report(status_factory(applied=["A", "B"], available=["A", "B"]))

        assert status.status == ReportStatus.OK
        assert status.current == "B"
        assert status.next is None
        assert status.latest == "B"
