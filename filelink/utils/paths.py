"""Centralized path definitions for the FileLink application.

This module provides a single source of truth for all application paths.
The base directory defaults to ``~/.filelink`` and can be moved with the
``FILELINK_HOME`` environment variable.
"""

import os
from pathlib import Path

# Base application directory
FILELINK_DIR = Path(os.environ.get("FILELINK_HOME", Path.home() / ".filelink"))

# Subdirectories
LOGS_DIR = FILELINK_DIR / "logs"
SECRETS_DIR = FILELINK_DIR / "secrets"

# Specific files
CONFIG_PATH = FILELINK_DIR / "config.json"
ACCOUNTS_PATH = FILELINK_DIR / "accounts.json"
MASTER_KEY_PATH = SECRETS_DIR / ".master.key"
CREDENTIALS_PATH = SECRETS_DIR / "credentials.enc"
