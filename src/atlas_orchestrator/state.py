"""State management for Atlas-Orchestrator."""

import uuid
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field
from tinydb import Query, TinyDB

from .constants import DB_TABLE_DEPLOYMENTS
from .status import MigrationStatus
from .utils import ensure_dir


class DeploymentRecord(BaseModel):
    """Last known migration or schema state of a named deployment.

    The database URL may hold credentials and is never stored.
    """

    name: str
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    env_name: str
    dir: str = ""
    version: str | None = None
    status: MigrationStatus | None = None
    schema_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class StateManager:
    """Manages state using TinyDB for automatic atomic updates and query support."""

    def __init__(self, state_file: Path):
        """
        Initialize state manager with TinyDB.

        Args:
            state_file: Path to state file
        """
        self.state_file = state_file
        ensure_dir(state_file.parent)

        self.db = TinyDB(state_file)
        self.deployments = self.db.table(DB_TABLE_DEPLOYMENTS)

    def save_deployment(self, record: DeploymentRecord) -> DeploymentRecord:
        """
        Add or update a deployment, keeping the id and creation time of an existing one.

        Returns:
            The stored record
        """
        existing = self.get_deployment(record.name)
        if existing is not None:
            record = record.model_copy(
                update={"id": existing.id, "created_at": existing.created_at, "updated_at": datetime.now()}
            )
        Deployment = Query()
        self.deployments.upsert(record.model_dump(mode="json"), Deployment.name == record.name)
        return record

    def remove_deployment(self, name: str) -> None:
        """Remove deployment from database."""
        Deployment = Query()
        self.deployments.remove(Deployment.name == name)

    def get_deployment(self, name: str) -> DeploymentRecord | None:
        """Get deployment by name."""
        Deployment = Query()
        result = self.deployments.get(Deployment.name == name)
        return DeploymentRecord.model_validate(result) if result else None

    def list_deployments(self) -> list[DeploymentRecord]:
        """List all stored deployments."""
        return [DeploymentRecord.model_validate(r) for r in self.deployments.all()]
