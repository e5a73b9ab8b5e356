"""Routes CLI commands to the event router and configuration manager."""

import getpass
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from filelink.core.app import FileLinkApp
from filelink.utils.errors import FileLinkError, FileSystemError
from filelink.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)

_MASK = "********"


class CommandRouter:
    """Routes commands to account operations and settings management."""

    def __init__(self, app: FileLinkApp, console: Optional[Console] = None):
        self.app = app
        self.console = console or Console()

    @async_log_call
    async def route(self, command: str, args: Optional[Dict[str, Any]] = None) -> bool:
        """Route command to its handler.

        Args:
            command: Command name
            args: Parsed arguments dictionary

        Returns:
            True if command executed successfully

        Raises:
            ValueError: If command is unknown
        """
        if args is None:
            args = {}

        handler = self._get_handler(command, args)
        if not handler:
            raise ValueError(f"Unknown command: {command}")

        try:
            return await handler(args)
        except FileLinkError as e:
            logger.error(f"Command '{command}' failed [{e.code}]: {e.message}")
            self.console.print(f"[red]Error: {e.message}[/red]")
            return False

    def _get_handler(self, command: str, args: Dict[str, Any]) -> Optional[Callable]:
        """Get handler function for command and optional subcommand."""
        simple_handlers = {
            "test-connection": self._handle_test_connection,
            "save-config": self._handle_save_config,
            "load-config": self._handle_load_config,
            "list-repos": self._handle_list_repos,
            "upload": self._handle_upload,
            "remove-account": self._handle_remove_account,
        }

        if command in simple_handlers:
            return simple_handlers[command]

        if command == "config":
            return self._get_config_handler(args)

        return None

    def _get_config_handler(self, args: Dict[str, Any]) -> Optional[Callable]:
        """Get handler for config subcommand."""
        config_command = args.get("config_command")
        config_handlers = {
            "get": self._handle_config_get,
            "set": self._handle_config_set,
            "reset": self._handle_config_reset,
        }
        return config_handlers.get(config_command)

    # Account commands

    async def _handle_test_connection(self, args: Dict[str, Any]) -> bool:
        """Log in without storing anything and show the account summary."""
        result = await self.app.router.dispatch(
            {
                "type": "test_connection",
                "server_url": args.get("server"),
                "username": args.get("username"),
                "password": self._password(args),
                "otp_code": args.get("otp"),
            }
        )

        if not result or not result.get("success"):
            self._print_failure(result)
            return False

        self.console.print(f"[green]Connected as {result['email']}[/green]")
        self.console.print(f"Usage: {_format_bytes(result['usage'])} of {_format_bytes(result['total'])}")
        self._print_repos(result["repos"])
        return True

    async def _handle_save_config(self, args: Dict[str, Any]) -> bool:
        """Store an account's settings and secrets."""
        config = {
            "server_url": args.get("server"),
            "username": args.get("username"),
            "password": self._password(args),
            "repo_id": args.get("repo_id"),
            "repo_name": args.get("repo_name"),
            "upload_dir": args.get("upload_dir"),
            "share_link_expire_days": args.get("expire_days"),
            "share_link_password": args.get("share_password"),
            "api_token": args.get("api_token"),
        }
        result = await self.app.router.dispatch(
            {"type": "save_config", "account_id": args.get("account"), "config": config}
        )

        if not result or not result.get("success"):
            self._print_failure(result)
            return False

        self.console.print(f"[green]Saved configuration for account {args['account']}[/green]")
        return True

    async def _handle_load_config(self, args: Dict[str, Any]) -> bool:
        """Show an account's stored settings."""
        config = await self.app.router.dispatch(
            {"type": "load_config", "account_id": args.get("account")}
        )

        if config is None:
            self.console.print(f"[yellow]No configuration for account {args['account']}[/yellow]")
            return False

        table = Table(title=f"Account {args['account']}")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        for key, value in config.items():
            if key in ("password", "share_link_password") and value and not args.get("show_secrets"):
                value = _MASK
            table.add_row(key, str(value))

        self.console.print(table)
        return True

    async def _handle_list_repos(self, args: Dict[str, Any]) -> bool:
        """List writable libraries through the account's session."""
        session = await self.app.sessions.get_session(args["account"])
        result = await self.app.router.dispatch(
            {"type": "list_repos", "server_url": session.origin, "token": session.token}
        )

        if not result or not result.get("success"):
            self._print_failure(result)
            return False

        self._print_repos(result["repos"])
        return True

    async def _handle_upload(self, args: Dict[str, Any]) -> bool:
        """Upload one local file and print its share link."""
        path = Path(args["file"]).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileSystemError(f"Cannot read {path}: {e.strerror}") from e

        result = await self.app.router.dispatch(
            {
                "type": "upload",
                "account_id": args.get("account"),
                "file_id": uuid.uuid4().hex,
                "file_name": args.get("name") or path.name,
                "data": data,
            }
        )

        if not result or "url" not in result:
            self._print_failure(result)
            return False

        self.console.print(f"[green]{result['url']}[/green]")

        info = result.get("templateInfo", {})
        expiry = info.get("download_expiry_date")
        if expiry:
            expires_at = datetime.fromtimestamp(expiry["timestamp"] / 1000, tz=timezone.utc)
            self.console.print(f"Expires: {expires_at:%Y-%m-%d %H:%M} UTC")
        if info.get("download_password_protected"):
            self.console.print("Password protected")
        return True

    async def _handle_remove_account(self, args: Dict[str, Any]) -> bool:
        """Forget an account and its secrets."""
        await self.app.router.dispatch(
            {"type": "account_deleted", "account_id": args.get("account")}
        )
        self.console.print(f"[green]Removed account {args['account']}[/green]")
        return True

    # Config commands

    async def _handle_config_get(self, args: Dict[str, Any]) -> bool:
        """Print one configuration value."""
        key = args.get("key")
        if not key:
            raise ValueError("Config key is required")

        missing = object()
        value = self.app.config_manager.get_config(key, default=missing)
        if value is missing:
            self.console.print(f"[red]Unknown config key: {key}[/red]")
            return False

        if isinstance(value, BaseModel):
            value = value.model_dump()
        self.console.print(f"{key} = {value!r}")
        return True

    async def _handle_config_set(self, args: Dict[str, Any]) -> bool:
        """Update one configuration value."""
        key = args.get("key")
        value = args.get("value")
        if not key or value is None:
            raise ValueError("Config key and value are required")

        self.app.config_manager.set_config(key, value)
        self.console.print(f"[green]{key} updated[/green]")
        return True

    async def _handle_config_reset(self, args: Dict[str, Any]) -> bool:
        """Reset one key, or everything, to defaults."""
        key = args.get("key")

        if key:
            value = self.app.config_manager.reset_key(key)
            self.console.print(f"[green]{key} reset to {value!r}[/green]")
        else:
            self.app.config_manager.reset_to_defaults()
            self.console.print("[green]Configuration reset to defaults[/green]")
        return True

    # Helper Methods

    @staticmethod
    def _password(args: Dict[str, Any]) -> str:
        return args.get("password") or getpass.getpass("Password: ")

    def _print_failure(self, result: Optional[Dict[str, Any]]) -> None:
        error = (result or {}).get("error") or "Request rejected"
        code = (result or {}).get("code")
        suffix = f" ({code})" if code else ""
        self.console.print(f"[red]Error: {error}{suffix}[/red]")

    def _print_repos(self, repos) -> None:
        if not repos:
            self.console.print("[yellow]No writable libraries found[/yellow]")
            return

        table = Table(title="Writable libraries")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        for repo in repos:
            table.add_row(repo["id"], repo["name"])
        self.console.print(table)


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{int(value)} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"
