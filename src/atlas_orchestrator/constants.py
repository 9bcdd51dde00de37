"""Constants used throughout Atlas-Orchestrator."""

from enum import Enum


# Report status values
class ReportStatus(str, Enum):
    """Synchronization verdict of a status report.

    Attributes:
        OK: No pending migration files
        PENDING: At least one migration file is not applied yet
    """

    OK = "OK"
    PENDING = "PENDING"


# Run status values returned by a down migration
class RunStatus(str, Enum):
    """Status of a (possibly gated) down-migration run.

    Attributes:
        PENDING_USER: Waiting for an external approval
        APPROVED: Approved, will be applied
        ABORTED: Rejected or aborted by a reviewer
        APPLIED: Already applied to the database
    """

    PENDING_USER = "PENDING_USER"
    APPROVED = "APPROVED"
    ABORTED = "ABORTED"
    APPLIED = "APPLIED"


# Outcome of a migrate operation
class MigrateAction(str, Enum):
    """What a migrate operation did.

    Attributes:
        SYNCED: Nothing to do, no mutating executor call was made
        APPLIED: Pending files were applied
        MIGRATED_DOWN: Revisions missing from the directory were reverted
    """

    SYNCED = "synced"
    APPLIED = "applied"
    MIGRATED_DOWN = "migrated_down"


# Outcome of a declarative schema operation
class SchemaAction(str, Enum):
    """What a schema apply or clean did.

    Attributes:
        SYNCED: The database already matches, no statement was planned
        PLANNED: Statements were computed but not executed (dry run)
        APPLIED: Statements were executed
    """

    SYNCED = "synced"
    PLANNED = "planned"
    APPLIED = "applied"


# Sentinels reported by the executor
NO_MIGRATION = "No migration applied yet"
LATEST_VERSION = "Already at latest version"

# Migration directory layout
HASH_FILE_NAME = "atlas.sum"
MIGRATION_FILE_SUFFIX = ".sql"
HASH_PREFIX = "h1:"
CONFIG_FILE_NAME = "atlas.hcl"
CHUNKED_DIR_PREFIX = "migration-"
SCHEMA_FILE_NAME = "schema.hcl"

# URL schemes
SCHEME_FILE = "file"
SCHEME_ATLAS = "atlas"
SCHEME_SQLITE = "sqlite"

# Executor
EXECUTOR_BINARY = "atlas"
EXECUTOR_JSON_FORMAT = "{{ json . }}"
EXECUTOR_ENV = {"ATLAS_NO_UPDATE_NOTIFIER": "1"}
EXECUTOR_TERMINATE_GRACE = 5.0  # seconds between SIGTERM and SIGKILL
EXECUTOR_WAIT_SLICE = 0.2  # seconds between cancellation checks

# Orchestration defaults
DEFAULT_ENV_NAME = "tf"
DEFAULT_DIR = "migrations"
DEFAULT_POLL_INTERVAL = 1.0  # seconds between down-migration polls
DEFAULT_TIMEOUT = 20 * 60.0  # seconds per operation
EXEC_ORDERS = ("linear", "linear-skip", "non-linear")
TX_MODES = ("file", "all", "none")

# Database table names
DB_TABLE_DEPLOYMENTS = "deployments"

# JSON output formatting
JSON_OUTPUT_INDENT = 2

# Config document rendering
HCL_INDENT = "  "

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
