"""Secret storage: realm-tagged vault over pluggable credential backends."""

from .vault import Realm, SecretVault, StoredSecret

__all__ = ["Realm", "SecretVault", "StoredSecret"]
