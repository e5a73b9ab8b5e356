"""System keyring backend"""

import asyncio
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from filelink.utils.logging import get_logger

from .base import BackendCapabilities, CredentialBackend

logger = get_logger(__name__)


class KeyringBackend(CredentialBackend):
    """System keyring backend (macOS Keychain, Secret Service, Windows Vault)."""

    name = "System Keyring"
    priority = 1
    capabilities = BackendCapabilities(supports_delete=True, os_managed=True)

    async def is_available(self) -> bool:
        """Check if a real keyring is available.

        The ``fail`` and ``null`` backends report a priority of 0 or less
        and are treated as unavailable.

        Returns:
            bool: True if keyring is available, False otherwise.
        """
        try:
            backend = await asyncio.to_thread(keyring.get_keyring)
            return getattr(backend, "priority", 0) > 0
        except Exception as e:
            logger.debug(f"Keyring availability check failed: {e}")
            return False

    async def store(self, service: str, key: str, value: str) -> None:
        """Store in system keyring.

        Args:
            service (str): The name of the service.
            key (str): The key for the credential.
            value (str): The value of the credential.
        """
        await asyncio.to_thread(keyring.set_password, service, key, value)

    async def retrieve(self, service: str, key: str) -> Optional[str]:
        """Retrieve from system keyring.

        Args:
            service (str): The name of the service.
            key (str): The key for the credential.

        Returns:
            Optional[str]: The value of the credential, or None if not found.
        """
        try:
            return await asyncio.to_thread(keyring.get_password, service, key)

        except KeyringError as e:
            logger.error(f"Keyring retrieval failed for service {service}: {e}")
            return None

    async def delete(self, service: str, key: str) -> None:
        """Delete from system keyring.

        Args:
            service (str): The name of the service.
            key (str): The key for the credential.
        """
        try:
            await asyncio.to_thread(keyring.delete_password, service, key)
        except PasswordDeleteError:
            logger.debug(f"No keyring entry to delete for service {service}, key {key}")
