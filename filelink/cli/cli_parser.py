"""Argument parser configuration for the FileLink CLI"""

import argparse

from filelink import __version__


## Argument Adding Utilities

def add_account_argument(parser: argparse.ArgumentParser) -> None:
    """Add the positional account id argument."""

    parser.add_argument("account", help="Account id")


def add_server_arguments(parser: argparse.ArgumentParser) -> None:
    """Add server URL and username arguments."""

    parser.add_argument("--server", required=True, help="Seafile server URL")
    parser.add_argument("--username", required=True, help="Account username or e-mail")
    parser.add_argument(
        "--password",
        help="Account password (prompted for if omitted)"
    )


## Command Setup Functions

def setup_account_commands(subparsers) -> None:
    """Setup test-connection, save-config, load-config, list-repos and remove-account."""

    test_parser = subparsers.add_parser(
        "test-connection",
        help="Log in and list writable libraries",
        description="Check credentials against a server without storing anything"
    )
    add_server_arguments(test_parser)
    test_parser.add_argument("--otp", help="Six-digit two-factor code")

    save_parser = subparsers.add_parser(
        "save-config",
        help="Store settings and secrets for an account",
    )
    add_account_argument(save_parser)
    add_server_arguments(save_parser)
    save_parser.add_argument("--repo-id", required=True, help="Target library id")
    save_parser.add_argument("--repo-name", help="Target library display name")
    save_parser.add_argument("--upload-dir", help="Directory uploads are placed in")
    save_parser.add_argument(
        "--expire-days",
        type=int,
        help="Share link lifetime in days (0 = never, max 365)"
    )
    save_parser.add_argument("--share-password", help="Password for created share links")
    save_parser.add_argument("--api-token", help="Pre-issued API token")

    load_parser = subparsers.add_parser(
        "load-config",
        help="Show stored settings for an account",
    )
    add_account_argument(load_parser)
    load_parser.add_argument(
        "--show-secrets",
        action="store_true",
        help="Print stored passwords instead of masking them"
    )

    repos_parser = subparsers.add_parser(
        "list-repos",
        help="List writable libraries for a configured account",
    )
    add_account_argument(repos_parser)

    remove_parser = subparsers.add_parser(
        "remove-account",
        help="Forget an account and delete its stored secrets",
    )
    add_account_argument(remove_parser)


def setup_upload_command(subparsers) -> None:
    """Setup the upload command."""

    upload_parser = subparsers.add_parser(
        "upload",
        help="Upload a file and print its share link",
        description="Upload a local file to the account's library and create a share link"
    )
    add_account_argument(upload_parser)
    upload_parser.add_argument("file", help="Path of the file to upload")
    upload_parser.add_argument(
        "--name",
        help="Remote file name (default: local file name)"
    )


def setup_config_commands(subparsers) -> None:
    """Setup configuration management commands."""

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage application configuration settings"
    )

    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        required=True,
        help="Configuration operation to perform"
    )

    get_parser = config_subparsers.add_parser(
        "get",
        help="Get a setting value"
    )
    get_parser.add_argument("key", help="Config key to get, e.g. http.timeout")

    set_parser = config_subparsers.add_parser(
        "set",
        help="Set a setting value"
    )
    set_parser.add_argument("key", help="Config key to set")
    set_parser.add_argument("value", help="New value for the config key")

    reset_parser = config_subparsers.add_parser(
        "reset",
        help="Reset settings to default"
    )
    reset_parser.add_argument(
        "--key",
        nargs="?",
        help="Specific config key to reset (omit to reset all)"
    )


## Main Parser Setup

def setup_argument_parser() -> argparse.ArgumentParser:
    """Setup the main argument parser for the FileLink CLI."""

    parser = argparse.ArgumentParser(
        prog="filelink",
        description="Upload attachments to Seafile and share them by link",
        epilog="Use 'filelink <command> --help' for command-specific help."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"FileLink {__version__}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="Command to execute"
    )

    setup_account_commands(subparsers)
    setup_upload_command(subparsers)
    setup_config_commands(subparsers)

    return parser
