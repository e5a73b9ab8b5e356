"""Centralized error handling module."""

import inspect
from enum import Enum
from typing import Any, Callable, Dict

from filelink.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    STORAGE = "storage"
    UNKNOWN = "unknown"


## Custom Exceptions


class FileLinkError(Exception):
    """Base exception for all FileLink errors."""

    category = ErrorCategory.UNKNOWN
    code = "UNKNOWN"
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise FileLinkError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


## Validation Errors


class InvalidInputError(FileLinkError):
    """Malformed input rejected before any network call."""

    category = ErrorCategory.VALIDATION
    code = "INVALID_INPUT"
    user_message = "Invalid input"


class InvalidOriginError(InvalidInputError):
    """Exception for server URLs that cannot be normalised to an origin."""

    code = "INVALID_URL"
    user_message = "Invalid server URL"


class InvalidRealmError(InvalidInputError):
    """Exception for secret realms outside the fixed set."""

    code = "INVALID_REALM"
    user_message = "Unknown credential realm"


## Authentication Errors


class AuthenticationError(FileLinkError):
    """Base exception for authentication-related errors."""

    category = ErrorCategory.AUTHENTICATION
    code = "AUTH_ERROR"
    user_message = "An authentication error occurred"


class AuthFailedError(AuthenticationError):
    """The server rejected the supplied credentials."""

    code = "AUTH_FAILED"
    user_message = "Authentication failed"


class TwoFactorRequiredError(AuthenticationError):
    """The server requires a two-factor code that was not supplied."""

    code = "2FA_REQUIRED"
    user_message = "Two-factor authentication code required"


class TwoFactorInvalidError(AuthenticationError):
    """The supplied two-factor code was malformed or rejected."""

    code = "2FA_INVALID"
    user_message = "Invalid two-factor authentication code"


class NoCredentialsError(AuthenticationError):
    """No stored password is available for re-authentication."""

    code = "NO_CREDENTIALS"
    user_message = "No stored credentials for this server"


class UnauthenticatedError(AuthenticationError):
    """An authenticated call was issued on a client without a token."""

    code = "UNAUTHENTICATED"
    user_message = "Client is not authenticated"


## Configuration Errors


class ConfigurationError(FileLinkError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    code = "CONFIG_ERROR"
    user_message = "A configuration error occurred"


class NoConfigError(ConfigurationError):
    """The account has no stored configuration."""

    code = "NO_CONFIG"
    user_message = "Account is not configured"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    code = "INVALID_CONFIG"
    user_message = "Invalid configuration settings"


class MissingConfigKeyError(ConfigurationError):
    """Exception for unknown application configuration keys."""

    code = "MISSING_CONFIG_KEY"
    user_message = "Unknown configuration setting"


## Storage Service Errors


class StorageServiceError(FileLinkError):
    """Base exception for failed calls to the storage service."""

    category = ErrorCategory.NETWORK
    code = "SERVICE_ERROR"
    user_message = "The storage service request failed"

    @property
    def status(self) -> int | None:
        """HTTP status of the failed response, if one was received."""
        return self.details.get("status")


class ListReposError(StorageServiceError):
    code = "LIST_REPOS_FAILED"
    user_message = "Failed to list libraries"


class DirectoryCreateError(StorageServiceError):
    code = "MKDIR_FAILED"
    user_message = "Failed to create upload directory"


class UploadLinkError(StorageServiceError):
    code = "UPLOAD_LINK_FAILED"
    user_message = "Failed to obtain an upload link"


class InvalidUploadLinkError(UploadLinkError):
    code = "UPLOAD_LINK_INVALID"
    user_message = "The server returned an invalid upload link"


class UntrustedUploadTargetError(UploadLinkError):
    """The upload link points at a host other than the configured server."""

    code = "UPLOAD_LINK_UNTRUSTED"
    user_message = "The upload link does not belong to the configured server"


class UploadError(StorageServiceError):
    code = "UPLOAD_FAILED"
    user_message = "File upload failed"


class UploadAbortedError(StorageServiceError):
    code = "UPLOAD_ABORTED"
    user_message = "Upload was aborted"


class ShareLinkError(StorageServiceError):
    code = "SHARE_LINK_FAILED"
    user_message = "Failed to create share link"


class AccountInfoError(StorageServiceError):
    code = "ACCOUNT_INFO_FAILED"
    user_message = "Failed to retrieve account information"


## File System Errors


class FileSystemError(FileLinkError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    code = "FILE_SYSTEM_ERROR"
    user_message = "A file system error occurred"


## Key Store Errors


class KeyStoreError(FileLinkError):
    """Base exception for key store-related errors."""

    category = ErrorCategory.STORAGE
    code = "KEYSTORE_ERROR"
    user_message = "A key store error occurred"


class EncryptionError(KeyStoreError):
    """Exception for encryption/decryption failures."""

    user_message = "Failed to encrypt/decrypt data"


class CorruptedSecretsError(KeyStoreError):
    """Exception for corrupted key store data."""

    user_message = "Key store data is corrupted"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, FileLinkError):
            _get_logger().error(
                f"{context} [{error.code}]: {error.message}",
                extra={"context": error.details},
            )
            if log_traceback:
                _get_logger().debug("Traceback", exc_info=error)
            return error.to_dict()
        else:
            _get_logger().error(f"{context}: {str(error)}")
            if log_traceback:
                _get_logger().debug("Traceback", exc_info=error)
            return {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "code": FileLinkError.code,
                "message": str(error),
                "details": {"context": context},
            }


## Utility Functions


def safe_execute(func: Callable, *args, default=None, context: str = "", **kwargs):
    """Execute a function, logging and swallowing any failure.

    Used only for best-effort cleanup whose failure must never reach the
    caller. Coroutine functions return an awaitable.
    """
    if inspect.iscoroutinefunction(func):
        return _safe_execute_async(
            func, *args, default=default, context=context, **kwargs
        )
    else:
        try:
            return func(*args, **kwargs)

        except Exception as e:
            ErrorHandler.handle(e, context, log_traceback=False)
            return default


async def _safe_execute_async(func, *args, default, context, **kwargs):
    """Internal async safe execute helper."""
    try:
        return await func(*args, **kwargs)

    except Exception as e:
        ErrorHandler.handle(e, context, log_traceback=False)
        return default


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, FileLinkError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."
