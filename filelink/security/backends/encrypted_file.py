"""Encrypted file backend"""

import asyncio
import json
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from filelink.utils.errors import CorruptedSecretsError
from filelink.utils.paths import CREDENTIALS_PATH, MASTER_KEY_PATH

from .base import CredentialBackend


class EncryptedFileBackend(CredentialBackend):
    """Encrypted file backend (fallback)."""

    def __init__(
        self,
        secrets_path: Optional[Path] = None,
        master_key_path: Optional[Path] = None,
    ):
        self._secrets_path = Path(secrets_path or CREDENTIALS_PATH)
        self._master_key_path = Path(master_key_path or MASTER_KEY_PATH)
        self._master_key: Optional[bytes] = None
        self._lock = asyncio.Lock()

    name = "Encrypted File"
    priority = 99  # fallback

    async def is_available(self) -> bool:
        """Always available as fallback."""
        return True

    async def store(self, service: str, key: str, value: str) -> None:
        """Store in encrypted file.

        Args:
            service (str): The service name.
            key (str): The key name.
            value (str): The value to store.
        """
        async with self._lock:
            credentials = await self._load_credentials()
            credentials[f"{service}:{key}"] = value
            await self._save_credentials(credentials)

    async def retrieve(self, service: str, key: str) -> Optional[str]:
        """Retrieve from encrypted file.

        Args:
            service (str): The service name.
            key (str): The key name.

        Returns:
            Optional[str]: The retrieved value or None if not found.
        """
        credentials = await self._load_credentials()
        return credentials.get(f"{service}:{key}")

    async def delete(self, service: str, key: str) -> None:
        """Delete from encrypted file.

        Args:
            service (str): The service name.
            key (str): The key name.
        """
        async with self._lock:
            credentials = await self._load_credentials()
            if credentials.pop(f"{service}:{key}", None) is not None:
                await self._save_credentials(credentials)

    async def _get_master_key(self) -> bytes:
        """Get or create master encryption key.

        Returns:
            bytes: The master encryption key.
        """
        if self._master_key:
            return self._master_key

        key_path = self._master_key_path

        def load_or_create():
            key_path.parent.mkdir(parents=True, exist_ok=True)

            if key_path.exists():
                return key_path.read_bytes()

            key = Fernet.generate_key()
            key_path.write_bytes(key)
            key_path.chmod(0o600)
            return key

        self._master_key = await asyncio.to_thread(load_or_create)
        return self._master_key

    async def _load_credentials(self) -> dict:
        """Load and decrypt credentials.

        Returns:
            dict: The decrypted credentials.
        """
        if not self._secrets_path.exists():
            return {}

        def load(master_key):
            encrypted_data = self._secrets_path.read_bytes()
            if not encrypted_data:
                return {}

            try:
                decrypted = Fernet(master_key).decrypt(encrypted_data)
            except InvalidToken as e:
                raise CorruptedSecretsError(
                    "Credential file cannot be decrypted with the master key"
                ) from e
            return json.loads(decrypted)

        master_key = await self._get_master_key()
        return await asyncio.to_thread(load, master_key)

    async def _save_credentials(self, credentials: dict) -> None:
        """Encrypt and save credentials.

        Args:
            credentials (dict): The credentials to save.
        """

        def save(master_key):
            self._secrets_path.parent.mkdir(parents=True, exist_ok=True)

            encrypted = Fernet(master_key).encrypt(json.dumps(credentials).encode())

            # Atomic write
            temp_path = self._secrets_path.with_suffix(".tmp")
            temp_path.write_bytes(encrypted)
            temp_path.chmod(0o600)
            temp_path.replace(self._secrets_path)

        master_key = await self._get_master_key()
        await asyncio.to_thread(save, master_key)
