"""Shared plumbing of the command handlers that run the executor."""

from rich.console import Console

from ..config import Config
from ..constants import DEFAULT_DIR
from ..error_guidance import guidance_for
from ..errors import OrchestratorError
from ..request import MigrationRequest, SchemaRequest
from ..state import StateManager
from ..utils import CancelToken
from ..workspace import ClientFactory, atlas_client_factory


class WorkspaceHandler:
    """Base for handlers that open a workspace per request."""

    def __init__(
        self,
        config: Config,
        console: Console,
        client_factory: ClientFactory | None = None,
    ):
        """
        Initialize handler.

        Args:
            config: Application configuration
            console: Rich console for output
            client_factory: Executor client factory (defaults to the Atlas CLI)
        """
        self.config = config
        self.console = console
        self.state_manager = StateManager(config.state_file)
        self._client_factory = client_factory

    @property
    def client_factory(self) -> ClientFactory:
        """Executor client factory, resolving the atlas binary on first use."""
        if self._client_factory is None:
            self._client_factory = atlas_client_factory(self.config)
        return self._client_factory

    def cancel_token(
        self, request: MigrationRequest | SchemaRequest, cancel: CancelToken | None
    ) -> CancelToken:
        """Return cancel, or a fresh token with the request's deadline."""
        return cancel or CancelToken(request.timeout or self.config.timeout)

    @staticmethod
    def guidance(request: MigrationRequest):
        """Build the guidance callback used when reporting errors."""

        def for_error(e: OrchestratorError) -> str | None:
            return guidance_for(e, request.dir or DEFAULT_DIR)

        return for_error
