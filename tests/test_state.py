"""Tests for state module."""

from datetime import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from atlas_orchestrator.constants import ReportStatus
from atlas_orchestrator.state import DeploymentRecord, StateManager
from atlas_orchestrator.status import MigrationStatus


def _record(name: str = "app", current: str | None = "20221101163823") -> DeploymentRecord:
    return DeploymentRecord(
        name=name,
        env_name="tf",
        dir="file:///srv/migrations",
        version=current,
        status=MigrationStatus(status=ReportStatus.OK, current=current),
    )


class TestDeploymentRecord:
    """Tests for DeploymentRecord Pydantic model."""

    def test_model_dump(self) -> None:
        """Test model_dump serialization."""
        record = DeploymentRecord(
            name="app",
            env_name="tf",
            version="20221101163823",
            status=MigrationStatus(status=ReportStatus.PENDING, current="1", next="2", latest="3"),
            created_at=datetime(2025, 1, 1, 12, 0, 0),
        )

        result = record.model_dump(mode="json")

        assert result["name"] == "app"
        assert result["status"] == {"status": "PENDING", "current": "1", "next": "2", "latest": "3"}
        assert result["created_at"] == "2025-01-01T12:00:00"
        assert len(result["id"]) == 36

    def test_model_validate(self) -> None:
        """Test model_validate deserialization."""
        record = DeploymentRecord.model_validate(
            {
                "name": "app",
                "id": "1234",
                "env_name": "tf",
                "status": {"status": "OK", "current": "1"},
                "created_at": "2025-01-01T12:00:00",
                "updated_at": "2025-01-02T12:00:00",
            }
        )

        assert record.status.status == ReportStatus.OK
        assert record.version is None
        assert isinstance(record.updated_at, datetime)

    def test_validation_error_missing_field(self) -> None:
        """Test that missing required fields raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            DeploymentRecord.model_validate({"name": "app"})

        assert "env_name" in str(exc_info.value)


class TestStateManager:
    """Tests for StateManager."""

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Test that the state directory is created."""
        StateManager(tmp_path / "nested" / "state.json")

        assert (tmp_path / "nested").is_dir()

    def test_save_and_get(self, tmp_path: Path) -> None:
        """Test saving and reading back a deployment."""
        state = StateManager(tmp_path / "state.json")

        state.save_deployment(_record())

        record = state.get_deployment("app")
        assert record is not None
        assert record.status.current == "20221101163823"
        assert record.dir == "file:///srv/migrations"

    def test_get_missing(self, tmp_path: Path) -> None:
        """Test that unknown deployments return None."""
        assert StateManager(tmp_path / "state.json").get_deployment("missing") is None

    def test_update_keeps_identity(self, tmp_path: Path) -> None:
        """Test that saving again keeps the id and creation time."""
        state = StateManager(tmp_path / "state.json")
        first = state.save_deployment(_record())

        second = state.save_deployment(_record(current="20221101164227"))

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at
        assert len(state.list_deployments()) == 1
        assert state.get_deployment("app").status.current == "20221101164227"

    def test_list_and_remove(self, tmp_path: Path) -> None:
        """Test listing and removing deployments."""
        state = StateManager(tmp_path / "state.json")
        state.save_deployment(_record("app"))
        state.save_deployment(_record("billing"))

        state.remove_deployment("app")

        assert [r.name for r in state.list_deployments()] == ["billing"]

    def test_persisted_across_instances(self, tmp_path: Path) -> None:
        """Test that deployments are read back by a new manager."""
        StateManager(tmp_path / "state.json").save_deployment(_record())

        assert StateManager(tmp_path / "state.json").get_deployment("app") is not None

    def test_schema_fingerprint(self, tmp_path: Path) -> None:
        """Test that a schema fingerprint is stored next to the migration state."""
        state = StateManager(tmp_path / "state.json")
        state.save_deployment(_record().model_copy(update={"schema_id": "bGInLge7AUJiuCF1YpXFjQ"}))

        record = StateManager(tmp_path / "state.json").get_deployment("app")

        assert record.schema_id == "bGInLge7AUJiuCF1YpXFjQ"
        assert record.status.current == "20221101163823"
        assert _record().schema_id is None
