"""Shared fixtures for Atlas-Orchestrator tests."""

from pathlib import Path

import pytest

from atlas_orchestrator.config import Config, create_default_config
from atlas_orchestrator.executor import (
    ApplyReport,
    DownReport,
    LintReport,
    SchemaApplyReport,
    SchemaCleanReport,
)
from atlas_orchestrator.migrate_dir import write_sum
from atlas_orchestrator.project import EnvConfig, MigrationConfig, ProjectConfig, absolute_file_url
from atlas_orchestrator.status import EnvInfo, FileInfo, Revision, StatusReport, evaluate
from atlas_orchestrator.workspace import Workspace

MIGRATION_FILES = {
    "20221101163823_create_users.sql": "CREATE TABLE users (id int);\n",
    "20221101163841_create_blog_posts.sql": "CREATE TABLE blog_posts (id int);\n",
    "20221101164227_pets_owner.sql": "CREATE TABLE pets (id int, owner_id int);\n",
}
VERSIONS = ["20221101163823", "20221101163841", "20221101164227"]


class FakeExecutor:
    """Scripted executor recording every call it receives."""

    def __init__(
        self,
        statuses: list[StatusReport] | None = None,
        down_reports: list[DownReport] | None = None,
        lint: LintReport | None = None,
        schema_reports: list[SchemaApplyReport] | None = None,
        clean_reports: list[SchemaCleanReport] | None = None,
        inspected: str = "",
    ):
        self.statuses = list(statuses or [StatusReport()])
        self.down_reports = list(down_reports or [])
        self.lint = lint or LintReport()
        self.schema_reports = list(schema_reports or [])
        self.clean_reports = list(clean_reports or [])
        self.inspected = inspected
        self.calls: list[tuple] = []

    def migrate_status(self, dir_url: str | None = None) -> StatusReport:
        self.calls.append(("status", dir_url))
        # The last scripted report keeps being returned
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]

    def migrate_apply(self, amount: int) -> ApplyReport:
        self.calls.append(("apply", amount))
        return ApplyReport()

    def migrate_down(self, to_version: str, dir_url: str) -> DownReport:
        self.calls.append(("down", to_version, dir_url))
        return self.down_reports.pop(0)

    def migrate_lint(self, latest: int) -> LintReport:
        self.calls.append(("lint", latest))
        return self.lint

    def schema_inspect(self) -> str:
        self.calls.append(("inspect",))
        return self.inspected

    def schema_apply(
        self, dry_run: bool = False, auto_approve: bool = False, tx_mode: str = ""
    ) -> SchemaApplyReport:
        self.calls.append(("schema_apply", dry_run, auto_approve, tx_mode))
        return self.schema_reports.pop(0) if self.schema_reports else SchemaApplyReport()

    def schema_clean(self, dry_run: bool = False, auto_approve: bool = False) -> SchemaCleanReport:
        self.calls.append(("schema_clean", dry_run, auto_approve))
        return self.clean_reports.pop(0) if self.clean_reports else SchemaCleanReport()

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]


def make_status(applied: list[str] = (), available: list[str] = (), dir_url: str = "") -> StatusReport:
    """Build a status report from applied and available versions."""
    return evaluate(
        [Revision(version=v) for v in applied],
        [FileInfo(name=f"{v}_file.sql", version=v) for v in available],
        env=EnvInfo(dir=dir_url),
    )


@pytest.fixture
def status_factory():
    """Factory building status reports from version lists."""
    return make_status


@pytest.fixture
def fake_executor_cls():
    """The FakeExecutor class."""
    return FakeExecutor


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """Local migration directory with three files and a valid atlas.sum."""
    path = tmp_path / "migrations"
    path.mkdir()
    for name, content in MIGRATION_FILES.items():
        (path / name).write_text(content, encoding="utf-8")
    write_sum(path)
    return path


@pytest.fixture
def project(migrations_dir: Path) -> ProjectConfig:
    """Project pointing at the local migration directory."""
    return ProjectConfig(
        env=EnvConfig(
            url="sqlite://file.db",
            migration=MigrationConfig(dir_url=absolute_file_url(str(migrations_dir))),
        ),
    )


@pytest.fixture
def workspace_factory(tmp_path: Path, project: ProjectConfig):
    """Factory opening a workspace around a fake executor."""

    def factory(executor: FakeExecutor, **project_updates) -> Workspace:
        ws_dir = tmp_path / "workspace"
        ws_dir.mkdir(exist_ok=True)
        return Workspace(dir=ws_dir, exec=executor, project=project.model_copy(update=project_updates))

    return factory


@pytest.fixture
def settings(tmp_path: Path) -> Config:
    """Settings with the state file inside tmp_path and instant polling."""
    config = create_default_config()
    config.global_config.paths.state_file = tmp_path / "state" / "state.json"
    config.global_config.migrate.poll_interval = 0.01
    config.global_config.migrate.timeout = 60.0
    return config
