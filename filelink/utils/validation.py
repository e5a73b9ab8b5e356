"""Input validation and normalisation helpers.

All user- or server-supplied values pass through here before reaching the
secret vault or the network layer:

- ``normalize_origin`` turns a server URL into its canonical origin
- ``sanitize_path`` neutralises traversal in remote paths
- ``clamp_days`` bounds share-link expiry values
"""

import re
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlsplit

from .errors import InvalidInputError, InvalidOriginError, TwoFactorInvalidError
from .logging import get_logger

logger = get_logger(__name__)

ALLOWED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}
MAX_EXPIRE_DAYS = 365

_OTP_PATTERN = re.compile(r"\d{6}")


@lru_cache(maxsize=None)
def warn_insecure_transport(host: str) -> None:
    """Warn about plain-http use, once per host for the life of the process."""
    logger.warning(
        f"Using insecure HTTP connection to {host}; credentials are not encrypted in transit"
    )


def normalize_origin(url: Any) -> str:
    """Validate a server URL and return its origin.

    The origin is ``scheme://host[:port]`` with a lower-case scheme and host,
    no path and no trailing slash. Default ports are dropped. Applying the
    function to its own output returns the same value.

    Raises:
        InvalidOriginError: If the URL is empty, unparsable or not http(s).
    """
    if not url or not isinstance(url, str):
        raise InvalidOriginError("Server URL must be a non-empty string")

    trimmed = url.strip().rstrip("/")

    try:
        parts = urlsplit(trimmed)
        port = parts.port
    except ValueError as e:
        raise InvalidOriginError(f"Invalid server URL: {trimmed}") from e

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidOriginError("Only http(s) server URLs are supported")

    host = parts.hostname
    if not host:
        raise InvalidOriginError(f"Invalid server URL: {trimmed}")

    if scheme == "http":
        warn_insecure_transport(host)

    if ":" in host:
        host = f"[{host}]"

    if port is not None and port != DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}:{port}"

    return f"{scheme}://{host}"


def origin_hostname(origin: str) -> Optional[str]:
    """Return the bare host name of a URL, or None if it has none."""
    try:
        return urlsplit(origin).hostname
    except ValueError:
        return None


def sanitize_path(path: Any) -> str:
    """Return a traversal-free absolute remote path.

    Repeated separators collapse, ``.`` and ``..`` segments are dropped and
    the result always starts with exactly one ``/``. Empty or non-string
    input yields ``/``.
    """
    if not path or not isinstance(path, str):
        return "/"

    segments = [
        segment
        for segment in path.replace("\\", "/").split("/")
        if segment and segment not in (".", "..")
    ]

    return "/" + "/".join(segments)


def join_remote_path(directory: str, name: str) -> str:
    """Join a directory and a file name into a sanitised remote path."""
    return sanitize_path(f"{sanitize_path(directory)}/{name}")


def clamp_days(value: Any, maximum: int = MAX_EXPIRE_DAYS, fallback: int = 0) -> int:
    """Coerce a day count into ``[0, maximum]``.

    Non-numeric and negative values return ``fallback``.
    """
    try:
        days = int(value)
    except (TypeError, ValueError):
        return fallback

    if days < 0:
        return fallback

    return min(days, maximum)


def require_text(value: Any, field: str) -> str:
    """Return ``value`` if it is a non-empty string, else raise InvalidInputError."""
    if not isinstance(value, str) or not value:
        raise InvalidInputError(f"{field} must be a non-empty string")
    return value


def validate_otp(otp_code: Any) -> Optional[str]:
    """Validate an optional six digit one-time password."""
    if otp_code is None or otp_code == "":
        return None

    if isinstance(otp_code, str) and _OTP_PATTERN.fullmatch(otp_code):
        return otp_code

    raise TwoFactorInvalidError("Two-factor code must be exactly six digits")
