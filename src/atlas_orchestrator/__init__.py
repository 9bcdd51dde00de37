"""Atlas-Orchestrator: drive versioned schema migrations to a desired version."""

__version__ = "0.4.0"
