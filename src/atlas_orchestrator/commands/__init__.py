"""Command handlers for Atlas-Orchestrator CLI."""

from .migrate import MigrateHandler, MigrateResult, migrate
from .plan import PlanHandler, PlanResult, plan
from .schema import NormalizedSchema, SchemaHandler, SchemaResult, apply_schema, clean_schema
from .status import ReadResult, StatusHandler, read_status

__all__ = [
    "MigrateHandler",
    "MigrateResult",
    "NormalizedSchema",
    "PlanHandler",
    "PlanResult",
    "ReadResult",
    "SchemaHandler",
    "SchemaResult",
    "StatusHandler",
    "apply_schema",
    "clean_schema",
    "migrate",
    "plan",
    "read_status",
]
