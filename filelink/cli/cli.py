"""Main CLI entry point."""

import asyncio
from typing import Any, Dict

from rich.console import Console

from filelink.core.app import FileLinkApp
from filelink.utils.config import ConfigManager
from filelink.utils.errors import ErrorHandler, FileLinkError, format_error_message
from filelink.utils.logging import async_log_call, get_logger

from .cli_parser import setup_argument_parser
from .router import CommandRouter

logger = get_logger(__name__)


def _args_to_dict(args) -> Dict[str, Any]:
    """Convert argparse Namespace to dictionary."""
    result = {}
    for key, value in vars(args).items():
        if key != "command" and value is not None:
            result[key] = value
    return result


@async_log_call
async def dispatch_command(args, console: Console, config_manager: ConfigManager) -> int:
    """Dispatch command via router.

    Args:
        args: Parsed arguments
        console: Rich console
        config_manager: Loaded application settings

    Returns:
        Exit code (0 = success, 1 = error)
    """
    command = args.command

    async with FileLinkApp(config_manager) as app:
        try:
            router = CommandRouter(app, console)
            success = await router.route(command, _args_to_dict(args))

            return 0 if success else 1

        except ValueError as e:
            logger.error(f"Invalid command: {e}")
            console.print(f"[red]Error: {e}[/red]")
            return 1

        except Exception as e:
            ErrorHandler.handle(e, context=f"Command {command}")
            console.print(f"[red]{format_error_message(e)}[/red]")
            return 1


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = Console()

    try:
        parser = setup_argument_parser()
        args = parser.parse_args()

        try:
            config_manager = ConfigManager()
        except FileLinkError as e:
            logger.error(f"Configuration error: {e.message}")
            console.print(f"[red]Configuration error: {e.message}[/red]")
            return 1

        return asyncio.run(dispatch_command(args, console, config_manager))

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130  # Standard SIGINT exit code


if __name__ == "__main__":
    exit(main())
