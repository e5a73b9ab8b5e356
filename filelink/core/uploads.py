"""Upload orchestration - share attachments by link and clean up after failures.

Each upload moves through ``UploadState``:

    STARTED -> DIRECTORY_ENSURED -> TICKET_ACQUIRED -> UPLOADED
            -> SHARE_LINK_CREATED -> DONE

and ends in ABORTED or FAILED if it is cancelled or a step fails. Only
uploads that reach DONE are tracked for later deletion. An upload that
reached UPLOADED but did not finish has its remote file removed again.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from filelink.security.vault import Realm, SecretVault
from filelink.utils.config import DEFAULT_UPLOAD_DIR, AccountConfig, AccountConfigStore
from filelink.utils.errors import (
    FileLinkError,
    InvalidConfigError,
    UnauthenticatedError,
    UploadAbortedError,
    safe_execute,
)
from filelink.utils.logging import async_log_call, get_logger, log_event
from filelink.utils.validation import (
    clamp_days,
    join_remote_path,
    require_text,
    sanitize_path,
)

from .models import (
    Session,
    UploadFile,
    UploadJob,
    UploadRecord,
    UploadResult,
    UploadState,
)
from .session import SessionManager

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadTracker:
    """Completed uploads keyed by file id. In memory only."""

    def __init__(self) -> None:
        self._records: Dict[str, UploadRecord] = {}

    def add(self, record: UploadRecord) -> None:
        self._records[record.file_id] = record

    def get(self, file_id: str) -> Optional[UploadRecord]:
        return self._records.get(file_id)

    def remove(self, file_id: str) -> Optional[UploadRecord]:
        return self._records.pop(file_id, None)

    def __contains__(self, file_id: str) -> bool:
        return file_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class UploadOrchestrator:
    """Drives upload-and-share and the compensating deletion paths."""

    def __init__(
        self,
        sessions: SessionManager,
        config_store: AccountConfigStore,
        vault: SecretVault,
        tracker: Optional[UploadTracker] = None,
        clock: Callable[[], datetime] = _utcnow,
        default_upload_dir: str = DEFAULT_UPLOAD_DIR,
    ) -> None:
        self.sessions = sessions
        self.config_store = config_store
        self.vault = vault
        self.tracker = tracker if tracker is not None else UploadTracker()
        self.default_upload_dir = default_upload_dir
        self._clock = clock
        self._in_flight: Dict[str, UploadJob] = {}

    def get_job(self, file_id: str) -> Optional[UploadJob]:
        """Return the in-flight job for a file, if any."""
        return self._in_flight.get(file_id)

    ## Upload

    @async_log_call
    async def upload(
        self, account_id: str, file_id: str, file_name: str, data: bytes
    ) -> UploadResult:
        """Upload a file and return its share link.

        Failures never escape as exceptions; they come back as an error
        result. Contract violations (``UnauthenticatedError``) still raise.
        """
        job = UploadJob(file_id=file_id, account_id=account_id, file_name=file_name)
        self._in_flight[file_id] = job

        try:
            result = await self._run(job, data)

        except UnauthenticatedError:
            job.state = UploadState.FAILED
            raise

        except UploadAbortedError as e:
            job.state = UploadState.ABORTED
            logger.info(f"Upload of {file_name} aborted")
            return UploadResult(error=e.message, code=e.code, aborted=True)

        except FileLinkError as e:
            job.state = UploadState.FAILED
            logger.error(f"Upload error [{e.code}]: {e.message}", extra={"context": e.details})
            return UploadResult(error=e.message, code=e.code)

        finally:
            if self._in_flight.get(file_id) is job:
                del self._in_flight[file_id]

        log_event(
            "upload_completed",
            {"account_id": account_id, "file_id": file_id, "size": len(data)},
        )
        return result

    async def _run(self, job: UploadJob, data: bytes) -> UploadResult:
        require_text(job.file_name, "File name")
        config = self.sessions.load_config(job.account_id)
        if not config.repo_id:
            raise InvalidConfigError("No target library selected for this account")

        async with self.sessions.lease(job.account_id) as session:
            return await self._transfer(job, session, config, data)

    async def _transfer(
        self, job: UploadJob, session: Session, config: AccountConfig, data: bytes
    ) -> UploadResult:
        client = session.client
        upload_dir = sanitize_path(config.upload_dir or self.default_upload_dir)
        self._check_abort(job)

        await client.ensure_directory(config.repo_id, upload_dir)
        job.state = UploadState.DIRECTORY_ENSURED
        self._check_abort(job)

        upload_link = await client.get_upload_link(config.repo_id, upload_dir)
        job.state = UploadState.TICKET_ACQUIRED
        self._check_abort(job)

        upload = UploadFile(name=job.file_name, content=bytes(data))
        await client.upload_file(
            upload_link, upload_dir, upload, cancel_event=job.cancel_event
        )
        job.state = UploadState.UPLOADED
        remote_path = join_remote_path(upload_dir, job.file_name)

        try:
            self._check_abort(job)
            result, share_token = await self._share(job, session, config, remote_path)
            self._check_abort(job)
        except FileLinkError:
            await self._discard_remote(session, config.repo_id, remote_path)
            raise

        self.tracker.add(
            UploadRecord(
                file_id=job.file_id,
                repo_id=config.repo_id,
                remote_path=remote_path,
                account_id=job.account_id,
                share_token=share_token,
            )
        )
        job.state = UploadState.DONE
        return result

    async def _share(
        self, job: UploadJob, session: Session, config: AccountConfig, remote_path: str
    ) -> tuple[UploadResult, str]:
        share_password = await self.vault.get(session.origin, Realm.SHARE_PASSWORD)
        expire_days = clamp_days(config.share_link_expire_days)
        issued_at = self._clock()

        share_link = await session.client.create_share_link(
            config.repo_id,
            remote_path,
            password=share_password.secret if share_password else None,
            expire_days=expire_days or None,
        )
        job.state = UploadState.SHARE_LINK_CREATED

        template_info: Dict[str, Any] = {"service_url": config.server_url}
        if expire_days > 0:
            expires_at = issued_at + timedelta(days=expire_days)
            template_info["download_expiry_date"] = {
                "timestamp": int(expires_at.timestamp() * 1000)
            }
        if share_password:
            template_info["download_password_protected"] = True

        return UploadResult(url=share_link.link, template_info=template_info), share_link.token

    @staticmethod
    def _check_abort(job: UploadJob) -> None:
        if job.aborted:
            raise UploadAbortedError()

    async def _discard_remote(self, session: Session, repo_id: str, remote_path: str) -> None:
        """Best-effort removal of a file whose upload did not complete."""
        deleted = await safe_execute(
            session.client.delete_file,
            repo_id,
            remote_path,
            default=False,
            context="Compensating delete",
        )
        if not deleted:
            logger.warning(f"Could not remove unfinished upload {remote_path}")

    ## Abort, delete and account removal

    def abort(self, file_id: str) -> bool:
        """Cancel an in-flight upload and drop its tracking.

        Returns:
            bool: True if an in-flight upload was signalled.
        """
        job = self._in_flight.pop(file_id, None)
        self.tracker.remove(file_id)

        if job is None:
            return False

        job.cancel_event.set()
        logger.info(f"Abort requested for upload {file_id} in state {job.state.value}")
        return True

    @async_log_call
    async def delete(self, account_id: str, file_id: str) -> bool:
        """Delete the remote copy of a completed upload.

        Unknown file ids are a no-op. The tracking entry is dropped whatever
        the outcome, and failures are only logged.
        """
        record = self.tracker.get(file_id)
        if record is None:
            return False

        deleted = False
        try:
            async with self.sessions.lease(record.account_id) as session:
                deleted = await session.client.delete_file(
                    record.repo_id, record.remote_path
                )
        except FileLinkError as e:
            logger.warning(f"Delete error [{e.code}]: {e.message}")
        finally:
            self.tracker.remove(file_id)

        if deleted:
            log_event("file_deleted", {"account_id": account_id, "file_id": file_id})
        return deleted

    @async_log_call
    async def remove_account(self, account_id: str) -> None:
        """Forget an account: its secrets, its config and its cached session."""
        try:
            config = self.config_store.get(account_id)
        except FileLinkError as e:
            logger.warning(f"Could not read config for account {account_id}: {e.message}")
            config = None

        if config is not None:
            await safe_execute(
                self.vault.delete_all,
                config.origin,
                context="Cleanup during account deletion",
            )

        self.config_store.remove(account_id)
        await self.sessions.evict(account_id)
        log_event("account_removed", {"account_id": account_id})
