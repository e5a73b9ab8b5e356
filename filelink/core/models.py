"""Domain models for sessions, uploads and storage-service responses."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from .seafile import SeafileClient


@dataclass
class Repository:
    """A Seafile library (container) visible to the account."""

    id: str
    name: str
    encrypted: bool = False
    permission: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Repository":
        return cls(
            id=str(data.get("repo_id") or data.get("id") or ""),
            name=data.get("repo_name") or data.get("name") or "",
            encrypted=bool(data.get("encrypted", False)),
            permission=data.get("permission", ""),
        )

    @property
    def is_writable(self) -> bool:
        """True for unencrypted libraries the account may write to."""
        return not self.encrypted and self.permission == "rw"

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass
class AccountInfo:
    """Account details reported by the server."""

    email: str
    usage: int = 0
    total: int = 0

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "AccountInfo":
        return cls(
            email=data.get("email", ""),
            usage=int(data.get("usage") or 0),
            total=int(data.get("total") or 0),
        )


@dataclass
class ShareLink:
    """A public download link for one uploaded file."""

    link: str
    token: str = ""
    expire_date: Optional[str] = None
    is_expired: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ShareLink":
        link = data.get("link") or ""
        if not isinstance(link, str):
            raise TypeError(f"Share link must be a string, got {type(link).__name__}")

        return cls(
            link=link,
            token=data.get("token", ""),
            expire_date=data.get("expire_date"),
            is_expired=bool(data.get("is_expired", False)),
        )


@dataclass
class UploadFile:
    """A named in-memory file ready for multipart upload."""

    name: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class Session:
    """An authenticated API session bound to one account.

    ``leases`` counts operations currently using the client. A session
    evicted from the cache is marked ``retired`` and its client is closed
    once the last lease is released.
    """

    origin: str
    account_id: str
    client: "SeafileClient" = field(repr=False)
    leases: int = field(default=0, repr=False)
    retired: bool = field(default=False, repr=False)

    @property
    def in_use(self) -> bool:
        return self.leases > 0

    @property
    def token(self) -> Optional[str]:
        return self.client.token


class UploadState(Enum):
    """Progress of a single upload."""

    STARTED = "started"
    DIRECTORY_ENSURED = "directory_ensured"
    TICKET_ACQUIRED = "ticket_acquired"
    UPLOADED = "uploaded"
    SHARE_LINK_CREATED = "share_link_created"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadState.DONE, UploadState.ABORTED, UploadState.FAILED)


@dataclass
class UploadJob:
    """An in-flight upload and its abort signal."""

    file_id: str
    account_id: str
    file_name: str
    state: UploadState = UploadState.STARTED
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def aborted(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class UploadRecord:
    """A completed upload, kept so the remote file can be deleted later."""

    file_id: str
    repo_id: str
    remote_path: str
    account_id: str
    share_token: str = ""


@dataclass
class UploadResult:
    """Outcome of an upload request.

    Either ``url`` is set (success) or ``error`` is set (failure); a
    half-filled success is never produced.
    """

    url: Optional[str] = None
    template_info: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    code: Optional[str] = None
    aborted: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and bool(self.url)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"url": self.url, "templateInfo": self.template_info}

        result: Dict[str, Any] = {"error": self.error or "Upload failed"}
        if self.code:
            result["code"] = self.code
        if self.aborted:
            result["aborted"] = True
        return result
