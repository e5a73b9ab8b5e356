"""Core FileLink components: API client, sessions, uploads and event routing."""

from .app import FileLinkApp
from .events import EventRouter
from .handlers import AccountHandlers
from .seafile import SeafileClient
from .session import SessionManager
from .uploads import UploadOrchestrator, UploadTracker

__all__ = [
    "AccountHandlers",
    "EventRouter",
    "FileLinkApp",
    "SeafileClient",
    "SessionManager",
    "UploadOrchestrator",
    "UploadTracker",
]
