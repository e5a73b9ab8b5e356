"""Storage contract for the vault's credential backends.

A backend is a flat string store. The vault addresses each entry by a
service name (``<service_name>:<origin>``) and a realm tag, and the value
is an opaque JSON document holding the username and the secret. Backends
never parse either side; origin normalisation and realm checks happen in
``SecretVault`` before a backend is reached.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class BackendCapabilities:
    """What a backend offers beyond store and retrieve."""

    supports_delete: bool = True
    # Secrets are held by the operating system rather than a file we manage
    os_managed: bool = False


class CredentialBackend(ABC):
    """A place the vault can keep secrets.

    ``name`` is shown to users. During automatic selection the vault tries
    backends in ascending ``priority`` and keeps the first available one.
    """

    name: str = "Credential Backend"
    priority: int = 50
    capabilities = BackendCapabilities()

    @abstractmethod
    async def is_available(self) -> bool:
        """True if the backend can be used on this system. Must not raise."""

    @abstractmethod
    async def store(self, service: str, key: str, value: str) -> None:
        """Create or replace one entry."""

    @abstractmethod
    async def retrieve(self, service: str, key: str) -> Optional[str]:
        """Return one entry, or None if there is none."""

    @abstractmethod
    async def delete(self, service: str, key: str) -> None:
        """Remove one entry. Removing a missing entry is not an error."""

    def describe(self) -> Dict[str, Any]:
        """Summary for diagnostics output."""
        return {
            "backend": self.name,
            "priority": self.priority,
            "delete": self.capabilities.supports_delete,
            "os_managed": self.capabilities.os_managed,
        }
