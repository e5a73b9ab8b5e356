"""Async client for the Seafile web API.

One method per remote operation. Every authenticated call requires a token
to be set first (by ``authenticate`` or by assigning ``client.token``) and
raises ``UnauthenticatedError`` otherwise. Every path argument is passed
through ``sanitize_path`` before use.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union
from urllib.parse import quote, urlsplit

import httpx

from filelink.utils.errors import (
    AccountInfoError,
    AuthFailedError,
    DirectoryCreateError,
    FileLinkError,
    InvalidUploadLinkError,
    ListReposError,
    ShareLinkError,
    StorageServiceError,
    TwoFactorInvalidError,
    TwoFactorRequiredError,
    UnauthenticatedError,
    UntrustedUploadTargetError,
    UploadAbortedError,
    UploadError,
    UploadLinkError,
)
from filelink.utils.logging import get_logger
from filelink.utils.validation import (
    clamp_days,
    normalize_origin,
    origin_hostname,
    require_text,
    sanitize_path,
    validate_otp,
)

from .models import AccountInfo, Repository, ShareLink, UploadFile

logger = get_logger(__name__)

T = TypeVar("T")


class Endpoints:
    """Seafile REST endpoints (relative to the server origin)."""

    AUTH_TOKEN = "/api2/auth-token/"
    PING = "/api2/auth/ping/"
    ACCOUNT_INFO = "/api2/account/info/"
    REPOS = "/api/v2.1/repos/"
    DIRECTORY = "/api/v2.1/repos/{repo_id}/dir/"
    FILE = "/api/v2.1/repos/{repo_id}/file/"
    UPLOAD_LINK = "/api2/repos/{repo_id}/upload-link/"
    SHARE_LINKS = "/api/v2.1/share-links/"


OTP_HEADER = "X-SEAFILE-OTP"

# Statuses treated as "directory already exists" by ensure_directory
MKDIR_OK_STATUSES = (400, 409)

_TWO_FACTOR_MISSING = "Two factor auth token is missing"
_TWO_FACTOR_MARKER = "Two factor auth token"


def _repo_path(template: str, repo_id: str) -> str:
    return template.format(repo_id=quote(require_text(repo_id, "Library id"), safe=""))


def _error_reason(response: httpx.Response) -> str:
    """Short diagnostic reason for a failed response. Never shown to users."""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or ""

    if isinstance(data, dict):
        for key in ("error_msg", "detail", "non_field_errors"):
            if key in data:
                return str(data[key])[:200]

    return response.reason_phrase or ""


def _unexpected_response(
    response: httpx.Response, error_cls: Type[FileLinkError]
) -> FileLinkError:
    return error_cls(
        f"{error_cls.user_message}: unexpected server response",
        details={"status": response.status_code},
    )


class SeafileClient:
    """Stateless-except-token wrapper around the Seafile web API."""

    def __init__(
        self,
        server_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        upload_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.origin = normalize_origin(server_url)
        self.token = token
        self.upload_timeout = upload_timeout
        self._client = httpx.AsyncClient(
            base_url=self.origin,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SeafileClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    ## Request helpers

    def _auth_headers(self) -> Dict[str, str]:
        if not self.token:
            raise UnauthenticatedError(
                "Authenticated call attempted before a token was set"
            )
        return {"Authorization": f"Token {self.token}"}

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[StorageServiceError],
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an authenticated request, wrapping transport failures in ``error_cls``."""
        headers = self._auth_headers()
        headers.update(kwargs.pop("headers", {}))

        try:
            return await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(
                f"{error_cls.user_message}: could not reach server",
                details={"reason": type(e).__name__},
            ) from e

    @staticmethod
    def _json(
        response: httpx.Response,
        error_cls: Type[FileLinkError],
        expected: Optional[Union[type, Tuple[type, ...]]] = None,
    ) -> Any:
        """Decode a JSON body, raising ``error_cls`` if it is not of type ``expected``."""
        try:
            data = response.json()
        except ValueError as e:
            raise _unexpected_response(response, error_cls) from e

        if expected is not None and not isinstance(data, expected):
            raise _unexpected_response(response, error_cls)

        return data

    @staticmethod
    def _parse(
        parser: Callable[[Any], T],
        data: Any,
        response: httpx.Response,
        error_cls: Type[FileLinkError],
    ) -> T:
        """Build a model from decoded JSON; malformed fields raise ``error_cls``."""
        if not isinstance(data, dict):
            raise _unexpected_response(response, error_cls)

        try:
            return parser(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise _unexpected_response(response, error_cls) from e

    ## Authentication

    async def authenticate(
        self, username: str, password: str, otp_code: Optional[str] = None
    ) -> str:
        """Exchange username and password for an API token.

        The token is stored on the client and returned.

        Raises:
            InvalidInputError: If username or password is empty.
            TwoFactorRequiredError: If the server demands a second factor.
            TwoFactorInvalidError: If the second factor is malformed or rejected.
            AuthFailedError: For any other rejection or transport failure.
        """
        require_text(username, "Username")
        require_text(password, "Password")
        otp_code = validate_otp(otp_code)

        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if otp_code:
            headers[OTP_HEADER] = otp_code

        try:
            response = await self._client.post(
                Endpoints.AUTH_TOKEN,
                data={"username": username, "password": password},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise AuthFailedError(
                "Authentication failed: could not reach server",
                details={"reason": type(e).__name__},
            ) from e

        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = {}

            errors = payload.get("non_field_errors", []) if isinstance(payload, dict) else []
            errors = [str(error) for error in errors]

            if any(_TWO_FACTOR_MISSING in error for error in errors):
                raise TwoFactorRequiredError()
            if any(_TWO_FACTOR_MARKER in error for error in errors):
                raise TwoFactorInvalidError()

            raise AuthFailedError(
                f"Authentication failed (HTTP {response.status_code})",
                details={"status": response.status_code},
            )

        data = self._json(response, AuthFailedError, expected=dict)
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise AuthFailedError("Authentication failed: server returned no token")

        self.token = token
        logger.debug(f"Authenticated against {self.origin}")
        return token

    async def ping(self) -> bool:
        """Check whether the current token is still accepted.

        Network failures and rejected tokens both return False.
        """
        headers = self._auth_headers()

        try:
            response = await self._client.get(Endpoints.PING, headers=headers)
        except httpx.HTTPError as e:
            logger.debug(f"Liveness probe to {self.origin} failed: {type(e).__name__}")
            return False

        return response.is_success

    ## Libraries and directories

    async def list_repos(self) -> List[Repository]:
        """Return every library visible to the account, unfiltered."""
        response = await self._request("GET", Endpoints.REPOS, ListReposError)
        if not response.is_success:
            raise ListReposError(details={"status": response.status_code})

        data = self._json(response, ListReposError, expected=(dict, list))
        repos = (data.get("repos") or []) if isinstance(data, dict) else data
        if not isinstance(repos, list):
            raise _unexpected_response(response, ListReposError)

        return [
            self._parse(Repository.from_api, repo, response, ListReposError)
            for repo in repos
        ]

    async def ensure_directory(self, repo_id: str, path: str) -> str:
        """Create a directory, treating "already exists" as success.

        Returns:
            str: The sanitised directory path.
        """
        safe_path = sanitize_path(path)
        response = await self._request(
            "POST",
            _repo_path(Endpoints.DIRECTORY, repo_id),
            DirectoryCreateError,
            params={"p": safe_path},
            data={"operation": "mkdir"},
        )

        if response.is_success:
            return safe_path

        if response.status_code in MKDIR_OK_STATUSES:
            # TODO: 400 also covers malformed paths; tell those apart from
            # "exists" once the server's error_msg is stable across versions.
            logger.debug(
                f"Directory {safe_path} treated as existing (HTTP {response.status_code})"
            )
            return safe_path

        raise DirectoryCreateError(
            f"Failed to create directory {safe_path}",
            details={"status": response.status_code},
        )

    ## Uploads

    async def get_upload_link(self, repo_id: str, parent_dir: str) -> str:
        """Request a single-use upload URL on the session's own server.

        Raises:
            UploadLinkError: If the server refuses the request.
            InvalidUploadLinkError: If the returned value is not an absolute URL.
            UntrustedUploadTargetError: If the URL points at another host.
        """
        safe_path = sanitize_path(parent_dir)
        response = await self._request(
            "GET",
            _repo_path(Endpoints.UPLOAD_LINK, repo_id),
            UploadLinkError,
            params={"p": safe_path},
        )
        if not response.is_success:
            raise UploadLinkError(details={"status": response.status_code})

        link = self._json(response, UploadLinkError, expected=str)

        try:
            parts = urlsplit(link)
        except ValueError as e:
            raise InvalidUploadLinkError() from e

        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise InvalidUploadLinkError()

        if parts.hostname != origin_hostname(self.origin):
            logger.warning(
                f"Rejected upload link on {parts.hostname}; expected {origin_hostname(self.origin)}"
            )
            raise UntrustedUploadTargetError(details={"host": parts.hostname})

        return link

    async def upload_file(
        self,
        upload_link: str,
        parent_dir: str,
        file: UploadFile,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        """Upload one file to ``parent_dir`` through an upload link.

        Setting ``cancel_event`` while the request is in flight cancels it
        and raises ``UploadAbortedError``.

        Raises:
            UploadError: On a non-success response, carrying the HTTP status.
            UploadAbortedError: If cancelled through ``cancel_event``.
        """
        headers = self._auth_headers()
        request = self._client.post(
            upload_link,
            params={"ret-json": "1"},
            headers=headers,
            data={
                "parent_dir": sanitize_path(parent_dir),
                "replace": "1",
                "ret-json": "1",
            },
            files={"file": (file.name, file.content)},
            timeout=self.upload_timeout,
        )

        try:
            response = await self._cancellable(request, cancel_event)
        except httpx.HTTPError as e:
            raise UploadError(
                "File upload failed: could not reach server",
                details={"reason": type(e).__name__},
            ) from e

        if not response.is_success:
            raise UploadError(
                f"File upload failed (HTTP {response.status_code})",
                details={"status": response.status_code},
            )

        return self._json(response, UploadError)

    @staticmethod
    async def _cancellable(request, cancel_event: Optional[asyncio.Event]):
        """Await ``request`` unless ``cancel_event`` fires first."""
        if cancel_event is None:
            return await request

        if cancel_event.is_set():
            request.close()
            raise UploadAbortedError()

        request_task = asyncio.ensure_future(request)
        cancel_task = asyncio.ensure_future(cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if request_task in done:
            return request_task.result()

        request_task.cancel()
        try:
            await request_task
        except (asyncio.CancelledError, httpx.HTTPError):
            pass

        raise UploadAbortedError()

    ## Sharing and cleanup

    async def create_share_link(
        self,
        repo_id: str,
        path: str,
        password: Optional[str] = None,
        expire_days: Optional[int] = None,
    ) -> ShareLink:
        """Create a public download link for one file.

        ``password`` and ``expire_days`` are omitted from the request when
        absent; the expiry is clamped to [0, 365] and zero means no expiry.

        Raises:
            ShareLinkError: With only the HTTP status in its message. The
                server's own reason is kept in ``details`` for diagnostics.
                Also raised when a successful response carries no link.
        """
        body: Dict[str, Any] = {
            "repo_id": require_text(repo_id, "Library id"),
            "path": sanitize_path(path),
        }

        if isinstance(password, str) and password:
            body["password"] = password

        days = clamp_days(expire_days) if expire_days is not None else 0
        if days > 0:
            body["expire_days"] = days

        response = await self._request(
            "POST", Endpoints.SHARE_LINKS, ShareLinkError, json=body
        )

        if not response.is_success:
            raise ShareLinkError(
                f"Failed to create share link (HTTP {response.status_code})",
                details={"status": response.status_code, "reason": _error_reason(response)},
            )

        share = self._parse(
            ShareLink.from_api,
            self._json(response, ShareLinkError),
            response,
            ShareLinkError,
        )
        if not share.link:
            raise ShareLinkError(
                "Failed to create share link: server returned no link",
                details={"status": response.status_code},
            )

        return share

    async def delete_file(self, repo_id: str, path: str) -> bool:
        """Delete a remote file. Returns False instead of raising on failure."""
        safe_path = sanitize_path(path)
        headers = self._auth_headers()

        try:
            response = await self._client.delete(
                _repo_path(Endpoints.FILE, repo_id),
                params={"p": safe_path},
                headers=headers,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Delete of {safe_path} failed: {type(e).__name__}")
            return False

        if not response.is_success:
            logger.warning(f"Delete of {safe_path} failed (HTTP {response.status_code})")

        return response.is_success

    async def get_account_info(self) -> AccountInfo:
        """Return the account's e-mail address, usage and quota."""
        response = await self._request("GET", Endpoints.ACCOUNT_INFO, AccountInfoError)
        if not response.is_success:
            raise AccountInfoError(details={"status": response.status_code})

        return self._parse(
            AccountInfo.from_api,
            self._json(response, AccountInfoError),
            response,
            AccountInfoError,
        )
