"""
Tests for the account management handlers

Tests cover:
- Connection testing with and without two-factor codes
- Saving settings and secrets
- Loading settings merged with secrets
- Listing writable libraries with an issued token
"""
import pytest

from filelink.core.handlers import writable_repos
from filelink.core.models import Repository
from filelink.security.vault import Realm

from .test_helpers import ORIGIN, PASSWORD, USERNAME, ConfigTestHelper


class TestWritableRepos:
    """Tests for library filtering"""

    def test_filters_encrypted_and_read_only(self):
        repos = [
            Repository("a", "Docs", encrypted=False, permission="rw"),
            Repository("b", "Secret", encrypted=True, permission="rw"),
            Repository("c", "Shared", encrypted=False, permission="r"),
        ]
        assert writable_repos(repos) == [{"id": "a", "name": "Docs"}]


class TestTestConnection:
    """Tests for test_connection"""

    @pytest.mark.asyncio
    async def test_success(self, handlers, server, vault):
        """Test a login reports account details without storing anything"""
        result = await handlers.test_connection(ORIGIN + "/", USERNAME, PASSWORD)

        assert result["success"] is True
        assert result["email"] == USERNAME
        assert (result["usage"], result["total"]) == (1024, 1048576)
        assert result["repos"] == [{"id": "lib1", "name": "Documents"}]
        assert result["token"] in server.tokens
        assert await vault.get(ORIGIN, Realm.TOKEN) is None

    @pytest.mark.asyncio
    async def test_two_factor_required(self, handlers, server):
        server.otp_required = True

        result = await handlers.test_connection(ORIGIN, USERNAME, PASSWORD)

        assert result["success"] is False
        assert result["code"] == "2FA_REQUIRED"

    @pytest.mark.asyncio
    async def test_with_otp(self, handlers, server):
        server.otp_required = True

        result = await handlers.test_connection(ORIGIN, USERNAME, PASSWORD, "123456")

        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_bad_password(self, handlers):
        result = await handlers.test_connection(ORIGIN, USERNAME, "nope")
        assert result == {
            "success": False,
            "error": "Authentication failed (HTTP 400)",
            "code": "AUTH_FAILED",
        }

    @pytest.mark.asyncio
    async def test_bad_url(self, handlers, server):
        result = await handlers.test_connection("ftp://cloud.example.com", USERNAME, PASSWORD)

        assert result["success"] is False
        assert result["code"] == "INVALID_URL"
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_malformed_account_info(self, handlers, server):
        """Test a non-numeric quota is reported as a failure, not raised"""
        server.account = {"email": USERNAME, "usage": "n/a", "total": 10}

        result = await handlers.test_connection(ORIGIN, USERNAME, PASSWORD)

        assert result["success"] is False
        assert result["code"] == "ACCOUNT_INFO_FAILED"
        assert "token" not in result


class TestSaveConfig:
    """Tests for save_config"""

    @pytest.mark.asyncio
    async def test_saves_settings_and_secrets(self, handlers, config_store, vault):
        request = ConfigTestHelper.create_config_request(
            server_url="HTTPS://Cloud.Example.com/",
            share_link_password="share",
            api_token="tok",
            upload_dir="//mail/../files",
            share_link_expire_days=900,
        )

        result = await handlers.save_config("acc2", request)

        assert result == {"success": True}
        stored = config_store.get("acc2")
        assert stored.server_url == ORIGIN
        assert stored.upload_dir == "/mail/files"
        assert stored.share_link_expire_days == 365
        assert stored.has_share_link_password is True

        assert (await vault.get(ORIGIN, Realm.PASSWORD)).secret == PASSWORD
        assert (await vault.get(ORIGIN, Realm.TOKEN)).secret == "tok"
        assert (await vault.get(ORIGIN, Realm.SHARE_PASSWORD)).secret == "share"

    @pytest.mark.asyncio
    async def test_no_secrets_in_config_file(self, handlers, config_store):
        request = ConfigTestHelper.create_config_request(share_link_password="share-secret")

        await handlers.save_config("acc2", request)

        content = config_store.path.read_text()
        assert PASSWORD not in content
        assert "share-secret" not in content

    @pytest.mark.asyncio
    async def test_cleared_share_password_removed(self, handlers, config_store, vault):
        await handlers.save_config(
            "acc2", ConfigTestHelper.create_config_request(share_link_password="share")
        )

        await handlers.save_config("acc2", ConfigTestHelper.create_config_request())

        assert await vault.get(ORIGIN, Realm.SHARE_PASSWORD) is None
        assert config_store.get("acc2").has_share_link_password is False

    @pytest.mark.asyncio
    async def test_evicts_cached_session(self, handlers, sessions, stored_password):
        await sessions.get_session("acc1")

        await handlers.save_config("acc1", ConfigTestHelper.create_config_request())

        assert "acc1" not in sessions.cache

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"server_url": "gopher://cloud.example.com"},
            {"server_url": None},
            {"username": ""},
        ],
    )
    async def test_invalid_request(self, handlers, config_store, backend, overrides):
        result = await handlers.save_config(
            "acc2", ConfigTestHelper.create_config_request(**overrides)
        )

        assert result["success"] is False
        assert result["error"]
        assert config_store.get("acc2") is None
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_vault_failure_reported(self, handlers, config_store, backend):
        backend.fail_on_store = True

        result = await handlers.save_config("acc2", ConfigTestHelper.create_config_request())

        assert result["success"] is False
        assert config_store.get("acc2") is None


class TestLoadConfig:
    """Tests for load_config"""

    @pytest.mark.asyncio
    async def test_merges_secrets(self, handlers):
        await handlers.save_config(
            "acc2", ConfigTestHelper.create_config_request(share_link_password="share")
        )

        loaded = await handlers.load_config("acc2")

        assert loaded["server_url"] == ORIGIN
        assert loaded["repo_id"] == "lib1"
        assert loaded["password"] == PASSWORD
        assert loaded["share_link_password"] == "share"

    @pytest.mark.asyncio
    async def test_missing_secrets_are_empty(self, handlers):
        loaded = await handlers.load_config("acc1")

        assert loaded["password"] == ""
        assert loaded["share_link_password"] == ""

    @pytest.mark.asyncio
    async def test_unknown_account(self, handlers):
        assert await handlers.load_config("nobody") is None

    @pytest.mark.asyncio
    async def test_corrupt_store_returns_none(self, handlers, config_store):
        config_store.path.write_text("{not json")
        assert await handlers.load_config("acc1") is None


class TestListRepos:
    """Tests for list_repos"""

    @pytest.mark.asyncio
    async def test_lists_writable(self, handlers, server):
        result = await handlers.list_repos(ORIGIN, server.issue_token())
        assert result == {"success": True, "repos": [{"id": "lib1", "name": "Documents"}]}

    @pytest.mark.asyncio
    async def test_rejected_token(self, handlers):
        result = await handlers.list_repos(ORIGIN, "bogus")
        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_missing_token(self, handlers, server):
        result = await handlers.list_repos(ORIGIN, "")
        assert result["success"] is False
        assert server.requests == []
