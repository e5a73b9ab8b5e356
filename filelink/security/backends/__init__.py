from .base import BackendCapabilities, CredentialBackend
from .encrypted_file import EncryptedFileBackend
from .keyring import KeyringBackend

__all__ = [
    "BackendCapabilities",
    "CredentialBackend",
    "EncryptedFileBackend",
    "KeyringBackend",
]
