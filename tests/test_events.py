"""
Tests for host message routing

Tests cover:
- Action whitelist and malformed message rejection
- Upload, abort, delete and account deletion events
- Management requests
"""
import pytest

from filelink.core.events import EventRouter
from filelink.core.uploads import UploadOrchestrator

from .test_helpers import ORIGIN, PASSWORD, USERNAME, ConfigTestHelper


@pytest.fixture
def router(sessions, config_store, vault, handlers):
    return EventRouter(UploadOrchestrator(sessions, config_store, vault), handlers)


class TestRejection:
    """Tests for messages that are not dispatched"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            None,
            "upload",
            ["upload"],
            {},
            {"type": "shutdown"},
            {"type": "testConnection", "server_url": ORIGIN},
            {"type": "load_config"},
            {"type": "abort", "file_id": None},
            {"type": "upload", "account_id": "acc1", "file_id": "f1", "file_name": "a.txt"},
        ],
    )
    async def test_returns_none(self, router, server, message):
        assert await router.dispatch(message) is None
        assert server.requests == []

    def test_whitelist(self):
        assert EventRouter.ALLOWED_ACTIONS == {
            "upload",
            "abort",
            "delete",
            "account_deleted",
            "test_connection",
            "save_config",
            "load_config",
            "list_repos",
        }


class TestUploadEvents:
    """Tests for upload lifecycle events"""

    @pytest.mark.asyncio
    async def test_upload_then_delete(self, router, server, stored_password):
        result = await router.dispatch(
            {
                "type": "upload",
                "account_id": "acc1",
                "file_id": "f1",
                "file_name": "report.pdf",
                "data": b"0123456789",
            }
        )
        assert result["url"] == f"{ORIGIN}/f/abc123/"
        assert result["templateInfo"]["service_url"] == ORIGIN

        deleted = await router.dispatch({"type": "delete", "account_id": "acc1", "file_id": "f1"})
        assert deleted == {"deleted": True}
        assert server.deleted_paths == ["/Thunderbird-Attachments/report.pdf"]

    @pytest.mark.asyncio
    async def test_upload_requires_bytes(self, router, server):
        result = await router.dispatch(
            {"type": "upload", "account_id": "acc1", "file_id": "f1", "file_name": "a", "data": "text"}
        )
        assert result["code"] == "INVALID_INPUT"
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_upload_failure_result(self, router):
        result = await router.dispatch(
            {"type": "upload", "account_id": "nobody", "file_id": "f1", "file_name": "a", "data": b"x"}
        )
        assert result == {"error": "Account is not configured", "code": "NO_CONFIG"}

    @pytest.mark.asyncio
    async def test_abort_unknown(self, router):
        assert await router.dispatch({"type": "abort", "file_id": "f1"}) == {"aborted": False}

    @pytest.mark.asyncio
    async def test_account_deleted(self, router, config_store, vault, stored_password):
        result = await router.dispatch({"type": "account_deleted", "account_id": "acc1"})

        assert result == {"success": True}
        assert config_store.get("acc1") is None
        assert await vault.get(ORIGIN, "password") is None


class TestManagementRequests:
    """Tests for test/save/load/list requests"""

    @pytest.mark.asyncio
    async def test_test_connection(self, router):
        result = await router.dispatch(
            {
                "type": "test_connection",
                "server_url": ORIGIN,
                "username": USERNAME,
                "password": PASSWORD,
                "otp_code": "",
            }
        )
        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_save_and_load(self, router):
        saved = await router.dispatch(
            {
                "type": "save_config",
                "account_id": "acc2",
                "config": ConfigTestHelper.create_config_request(),
            }
        )
        loaded = await router.dispatch({"type": "load_config", "account_id": "acc2"})

        assert saved == {"success": True}
        assert loaded["password"] == PASSWORD
        assert loaded["share_link_expire_days"] == 7

    @pytest.mark.asyncio
    async def test_save_config_not_a_dict(self, router):
        result = await router.dispatch({"type": "save_config", "account_id": "a", "config": "x"})
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_list_repos(self, router, server):
        result = await router.dispatch(
            {"type": "list_repos", "server_url": ORIGIN, "token": server.issue_token()}
        )
        assert result["repos"] == [{"id": "lib1", "name": "Documents"}]
