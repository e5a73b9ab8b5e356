"""Realm-tagged secret vault over a pluggable credential backend.

Secrets are addressed by (origin, realm). Each entry also remembers the
username it belongs to, so a single lookup yields both halves of a
credential. Exactly three realms exist; anything else is rejected before
the backend is touched.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from filelink.utils.errors import InvalidRealmError, KeyStoreError
from filelink.utils.logging import get_logger, log_event
from filelink.utils.validation import normalize_origin, require_text

from .backends.base import CredentialBackend
from .backends.encrypted_file import EncryptedFileBackend
from .backends.keyring import KeyringBackend

logger = get_logger(__name__)


class Realm(str, Enum):
    """Partitions of the secret namespace for one server."""

    PASSWORD = "password"
    TOKEN = "token"
    SHARE_PASSWORD = "share-password"

    @property
    def tag(self) -> str:
        """Storage tag, kept compatible with existing credential entries."""
        return _REALM_TAGS[self]

    @classmethod
    def parse(cls, value: Any) -> "Realm":
        """Return the Realm for a value or storage tag.

        Raises:
            InvalidRealmError: If the value names no known realm.
        """
        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            for realm in cls:
                if value in (realm.value, realm.tag):
                    return realm

        raise InvalidRealmError(
            f"Realm {value!r} is not allowed. Allowed: "
            + ", ".join(realm.value for realm in cls)
        )


_REALM_TAGS = {
    Realm.PASSWORD: "Seafile FileLink",
    Realm.TOKEN: "Seafile FileLink Token",
    Realm.SHARE_PASSWORD: "Seafile FileLink SharePW",
}


@dataclass(frozen=True)
class StoredSecret:
    """A secret together with the username it was stored for."""

    username: str
    secret: str

    def __repr__(self) -> str:
        return f"StoredSecret(username={self.username!r}, secret='***')"


class SecretVault:
    """
    Secret vault with pluggable backends.

    Automatically selects the best available backend unless one is injected.
    """

    # Tried in ascending priority
    AVAILABLE_BACKENDS = [
        KeyringBackend,
        EncryptedFileBackend,  # Always available as fallback
    ]

    BACKEND_NAMES = {
        "keyring": KeyringBackend,
        "file": EncryptedFileBackend,
    }

    def __init__(
        self,
        backend: Optional[CredentialBackend] = None,
        service_name: str = "filelink",
        backend_preference: str = "auto",
    ):
        self.service_name = service_name
        self.backend_preference = backend_preference
        self.backend: Optional[CredentialBackend] = backend
        self._initialised = backend is not None

    async def initialise(self) -> None:
        """Initialise vault with best available backend."""
        if self._initialised:
            return

        self.backend = await self._select_backend()
        self._initialised = True

        logger.info(f"SecretVault initialised with backend: {self.backend.name}")

    async def _select_backend(self) -> CredentialBackend:
        """Select the configured or best available backend.

        Returns:
            CredentialBackend: The selected backend.
        """
        if self.backend_preference != "auto":
            backend_class = self.BACKEND_NAMES.get(self.backend_preference)
            if backend_class is None:
                raise KeyStoreError(
                    f"Unknown vault backend: {self.backend_preference}",
                    details={"allowed": sorted(self.BACKEND_NAMES)},
                )
            return backend_class()

        for backend_class in sorted(self.AVAILABLE_BACKENDS, key=lambda cls: cls.priority):
            backend = backend_class()

            try:
                if await backend.is_available():
                    logger.debug(f"Selected backend: {backend.name}")
                    return backend

            except Exception as e:
                logger.debug(f"Backend {backend.name} not available: {e}")
                continue

        # Should never reach here (EncryptedFileBackend always available)
        raise KeyStoreError("No credential backend available")

    async def _ensure_initialised(self) -> CredentialBackend:
        if not self._initialised:
            await self.initialise()

        if self.backend is None:
            raise KeyStoreError("Credential backend is not initialised")

        return self.backend

    def _service(self, origin: str) -> str:
        return f"{self.service_name}:{origin}"

    ## Vault operations

    async def put(self, origin: str, realm: Any, username: str, secret: str) -> None:
        """Store a secret for (origin, realm), replacing any previous entry.

        Raises:
            InvalidInputError: On a malformed origin, username or secret.
            InvalidRealmError: On an unknown realm.
            KeyStoreError: If the backend fails to store the entry.
        """
        realm = Realm.parse(realm)
        origin = normalize_origin(origin)
        require_text(username, "Username")
        require_text(secret, "Secret")

        backend = await self._ensure_initialised()
        payload = json.dumps({"username": username, "secret": secret})

        try:
            await backend.store(self._service(origin), realm.tag, payload)
        except Exception as e:
            raise KeyStoreError(
                f"Failed to store credential: {str(e)}",
                details={"origin": origin, "realm": realm.value, "backend": backend.name},
            ) from e

        log_event(
            "secret_stored",
            {"origin": origin, "realm": realm.value, "backend": backend.name},
        )

    async def get(self, origin: str, realm: Any) -> Optional[StoredSecret]:
        """Return the secret stored for (origin, realm), or None."""
        realm = Realm.parse(realm)
        origin = normalize_origin(origin)
        backend = await self._ensure_initialised()

        try:
            raw = await backend.retrieve(self._service(origin), realm.tag)
        except Exception as e:
            logger.error(f"Failed to retrieve {realm.value} credential for {origin}: {e}")
            return None

        if not raw:
            logger.debug(f"No {realm.value} credential stored for {origin}")
            return None

        try:
            data = json.loads(raw)
            return StoredSecret(username=data["username"], secret=data["secret"])
        except (ValueError, KeyError, TypeError):
            logger.error(f"Ignoring malformed {realm.value} credential for {origin}")
            return None

    async def delete_matching(
        self, origin: str, realm: Any, username: Optional[str] = None
    ) -> bool:
        """Delete the (origin, realm) entry, optionally only if it belongs to ``username``.

        Returns:
            bool: True if an entry was deleted.
        """
        realm = Realm.parse(realm)
        origin = normalize_origin(origin)
        backend = await self._ensure_initialised()

        if not backend.capabilities.supports_delete:
            logger.warning(f"Backend {backend.name} does not support delete")
            return False

        existing = await self.get(origin, realm)
        if existing is None:
            return False

        if username is not None and existing.username != username:
            return False

        try:
            await backend.delete(self._service(origin), realm.tag)
        except Exception as e:
            raise KeyStoreError(
                f"Failed to delete credential: {str(e)}",
                details={"origin": origin, "realm": realm.value, "backend": backend.name},
            ) from e

        log_event("secret_deleted", {"origin": origin, "realm": realm.value})
        return True

    async def delete_all(self, origin: str) -> None:
        """Delete every realm's secret for an origin.

        All realms are attempted even if one fails; the first failure is
        raised afterwards.
        """
        origin = normalize_origin(origin)
        first_error: Optional[Exception] = None

        for realm in Realm:
            try:
                await self.delete_matching(origin, realm)
            except KeyStoreError as e:
                logger.warning(f"Failed to remove {realm.value} credential for {origin}: {e}")
                first_error = first_error or e

        if first_error is not None:
            raise first_error

    def get_backend_info(self) -> dict:
        """Get information about current backend.

        Returns:
            dict: Information about the current backend.
        """
        if not self.backend:
            return {"status": "not_initialised"}

        return self.backend.describe()
