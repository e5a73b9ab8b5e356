"""Application wiring - builds the component graph from configuration."""

from pathlib import Path
from typing import Optional

import httpx

from filelink.security.backends.base import CredentialBackend
from filelink.security.vault import SecretVault
from filelink.utils.config import AccountConfigStore, ConfigManager
from filelink.utils.logging import get_logger, init_logging

from .events import EventRouter
from .handlers import AccountHandlers
from .session import SessionManager, make_client_factory
from .uploads import UploadOrchestrator

logger = get_logger(__name__)


class FileLinkApp:
    """Owns one instance of every long-lived component.

    Args:
        config_manager: Application settings; loaded from disk if omitted.
        accounts_path: Location of the account store (default under the app home).
        backend: Credential backend to use instead of automatic selection.
        transport: HTTP transport shared by every API client.
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        accounts_path: Optional[Path] = None,
        backend: Optional[CredentialBackend] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config_manager = config_manager or ConfigManager()
        app_config = self.config_manager.config

        init_logging().set_level(app_config.logging.log_level)

        self.vault = SecretVault(
            backend=backend,
            service_name=app_config.vault.service_name,
            backend_preference=app_config.vault.backend,
        )
        self.config_store = AccountConfigStore(accounts_path)

        client_factory = make_client_factory(app_config, transport=transport)
        self.sessions = SessionManager(
            self.config_store, self.vault, client_factory=client_factory
        )
        self.orchestrator = UploadOrchestrator(
            self.sessions,
            self.config_store,
            self.vault,
            default_upload_dir=app_config.uploads.default_upload_dir,
        )
        self.handlers = AccountHandlers(
            self.config_store, self.vault, self.sessions, client_factory=client_factory
        )
        self.router = EventRouter(self.orchestrator, self.handlers)

        logger.debug("FileLink application initialised")

    async def close(self) -> None:
        """Close every cached API session."""
        await self.sessions.close()

    async def __aenter__(self) -> "FileLinkApp":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
