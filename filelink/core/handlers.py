"""Request/response operations used by the account settings front end."""

from typing import Any, Dict, List, Optional

from filelink.security.vault import Realm, SecretVault
from filelink.utils.config import AccountConfig, AccountConfigStore
from filelink.utils.errors import FileLinkError, format_error_message
from filelink.utils.logging import async_log_call, get_logger, log_event
from filelink.utils.validation import normalize_origin, require_text

from .models import Repository
from .session import ClientFactory, SessionManager, make_client_factory

logger = get_logger(__name__)


def writable_repos(repos: List[Repository]) -> List[Dict[str, str]]:
    """Libraries an upload may target: unencrypted and read-write."""
    return [repo.to_dict() for repo in repos if repo.is_writable]


class AccountHandlers:
    """Test-connection, save/load config and library listing."""

    def __init__(
        self,
        config_store: AccountConfigStore,
        vault: SecretVault,
        sessions: SessionManager,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.config_store = config_store
        self.vault = vault
        self.sessions = sessions
        self.client_factory = client_factory or make_client_factory()

    @async_log_call
    async def test_connection(
        self,
        server_url: str,
        username: str,
        password: str,
        otp_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Log in with the given credentials and report account details.

        The token obtained is returned to the caller but not stored.
        """
        try:
            client = self.client_factory(normalize_origin(server_url))
        except FileLinkError as e:
            return {"success": False, "error": e.message, "code": e.code}

        try:
            await client.authenticate(username, password, otp_code)
            account_info = await client.get_account_info()
            repos = await client.list_repos()

            return {
                "success": True,
                "email": account_info.email,
                "usage": account_info.usage,
                "total": account_info.total,
                "repos": writable_repos(repos),
                "token": client.token,
            }

        except FileLinkError as e:
            logger.info(f"Connection test failed [{e.code}]: {e.message}")
            return {"success": False, "error": e.message, "code": e.code}

        finally:
            await client.close()

    @async_log_call
    async def save_config(self, account_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """Store an account's secrets in the vault and its settings in the config store."""
        try:
            require_text(account_id, "Account id")
            share_password = config.get("share_link_password") or ""

            account = AccountConfig.from_request(
                config,
                server_url=normalize_origin(config.get("server_url")),
                username=require_text(config.get("username"), "Username"),
                has_share_link_password=bool(share_password),
            )
            origin = account.origin

            if config.get("password"):
                await self.vault.put(origin, Realm.PASSWORD, account.username, config["password"])

            if config.get("api_token"):
                await self.vault.put(origin, Realm.TOKEN, account.username, config["api_token"])

            if share_password:
                await self.vault.put(
                    origin, Realm.SHARE_PASSWORD, account.username, share_password
                )
            else:
                await self.vault.delete_matching(origin, Realm.SHARE_PASSWORD)

            self.config_store.set(account_id, account)
            await self.sessions.evict(account_id)

        except FileLinkError as e:
            logger.warning(f"Saving config for account {account_id} failed: {e.message}")
            return {"success": False, "error": e.message}

        log_event("account_configured", {"account_id": account_id, "origin": origin})
        return {"success": True}

    async def load_config(self, account_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored settings merged with their secrets, or None."""
        try:
            config = self.config_store.get(account_id)
            if config is None:
                return None

            credentials = await self.vault.get(config.origin, Realm.PASSWORD)
            share_password = await self.vault.get(config.origin, Realm.SHARE_PASSWORD)

        except FileLinkError as e:
            logger.warning(f"Loading config failed: {format_error_message(e)}")
            return None

        return {
            **config.model_dump(),
            "password": credentials.secret if credentials else "",
            "share_link_password": share_password.secret if share_password else "",
        }

    async def list_repos(self, server_url: str, token: str) -> Dict[str, Any]:
        """List writable libraries using an already issued token."""
        try:
            require_text(token, "Token")
            client = self.client_factory(normalize_origin(server_url), token=token)
        except FileLinkError as e:
            return {"success": False, "error": e.message}

        try:
            repos = await client.list_repos()
            return {"success": True, "repos": writable_repos(repos)}
        except FileLinkError as e:
            return {"success": False, "error": e.message}
        finally:
            await client.close()
