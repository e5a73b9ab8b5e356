"""Single entry point for messages from the host application.

Messages are plain dicts with a ``type`` key naming the action. Only the
actions listed in ``EventRouter.ALLOWED_ACTIONS`` are dispatched; anything
else, including a message that is not a dict or lacks a required field,
returns None.

Usage Examples
--------------

    >>> router = EventRouter(orchestrator, handlers)
    >>> await router.dispatch({"type": "load_config", "account_id": "acc1"})
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from filelink.utils.logging import async_log_call, get_logger

from .handlers import AccountHandlers
from .uploads import UploadOrchestrator

logger = get_logger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]


class EventRouter:
    """Routes whitelisted host messages to the orchestrator and handlers."""

    ALLOWED_ACTIONS = frozenset(
        {
            "upload",
            "abort",
            "delete",
            "account_deleted",
            "test_connection",
            "save_config",
            "load_config",
            "list_repos",
        }
    )

    def __init__(self, orchestrator: UploadOrchestrator, handlers: AccountHandlers):
        self.orchestrator = orchestrator
        self.handlers = handlers
        self._routes: Dict[str, Tuple[Handler, Tuple[str, ...]]] = {
            "upload": (self._handle_upload, ("account_id", "file_id", "file_name", "data")),
            "abort": (self._handle_abort, ("file_id",)),
            "delete": (self._handle_delete, ("account_id", "file_id")),
            "account_deleted": (self._handle_account_deleted, ("account_id",)),
            "test_connection": (
                self._handle_test_connection,
                ("server_url", "username", "password"),
            ),
            "save_config": (self._handle_save_config, ("account_id", "config")),
            "load_config": (self._handle_load_config, ("account_id",)),
            "list_repos": (self._handle_list_repos, ("server_url", "token")),
        }

    @async_log_call
    async def dispatch(self, message: Any) -> Optional[Any]:
        """Handle one message and return its response, or None if rejected."""
        if not isinstance(message, dict):
            logger.warning(f"Rejected message of type {type(message).__name__}")
            return None

        action = message.get("type")
        if action not in self.ALLOWED_ACTIONS:
            logger.warning(f"Rejected message with unknown action: {action!r}")
            return None

        handler, required = self._routes[action]
        missing = [name for name in required if message.get(name) is None]
        if missing:
            logger.warning(f"Rejected '{action}' message missing {', '.join(missing)}")
            return None

        return await handler(message)

    ## Upload lifecycle

    async def _handle_upload(self, message: Dict[str, Any]) -> Dict[str, Any]:
        data = message["data"]
        if not isinstance(data, (bytes, bytearray, memoryview)):
            return {"error": "Upload data must be bytes", "code": "INVALID_INPUT"}

        result = await self.orchestrator.upload(
            str(message["account_id"]),
            str(message["file_id"]),
            message["file_name"],
            bytes(data),
        )
        return result.to_dict()

    async def _handle_abort(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return {"aborted": self.orchestrator.abort(str(message["file_id"]))}

    async def _handle_delete(self, message: Dict[str, Any]) -> Dict[str, Any]:
        deleted = await self.orchestrator.delete(
            str(message["account_id"]), str(message["file_id"])
        )
        return {"deleted": deleted}

    async def _handle_account_deleted(self, message: Dict[str, Any]) -> Dict[str, Any]:
        await self.orchestrator.remove_account(str(message["account_id"]))
        return {"success": True}

    ## Management requests

    async def _handle_test_connection(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self.handlers.test_connection(
            message["server_url"],
            message["username"],
            message["password"],
            message.get("otp_code") or None,
        )

    async def _handle_save_config(self, message: Dict[str, Any]) -> Dict[str, Any]:
        config = message["config"]
        if not isinstance(config, dict):
            return {"success": False, "error": "Config must be an object"}
        return await self.handlers.save_config(str(message["account_id"]), config)

    async def _handle_load_config(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.handlers.load_config(str(message["account_id"]))

    async def _handle_list_repos(self, message: Dict[str, Any]) -> Dict[str, Any]:
        return await self.handlers.list_repos(message["server_url"], message["token"])
