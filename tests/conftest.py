"""
Shared test fixtures and configuration for pytest
"""
import os
import tempfile

# Keep logs, settings and secrets out of the real home directory
os.environ["FILELINK_HOME"] = tempfile.mkdtemp(prefix="filelink-tests-")

import pytest
import pytest_asyncio

from filelink.core.handlers import AccountHandlers
from filelink.core.session import SessionManager, make_client_factory
from filelink.core.uploads import UploadOrchestrator
from filelink.security.vault import Realm, SecretVault
from filelink.utils.config import AccountConfigStore, ConfigManager

from .test_helpers import (
    ORIGIN,
    PASSWORD,
    USERNAME,
    ConfigTestHelper,
    FakeSeafileServer,
    InMemoryBackend,
)


@pytest.fixture
def temp_dir(tmp_path):
    """Per-test directory for configuration files"""
    return tmp_path


@pytest.fixture
def server():
    """Fake Seafile server"""
    return FakeSeafileServer()


@pytest.fixture
def client_factory(server):
    """Client factory routing every request to the fake server"""
    return make_client_factory(transport=server.transport)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def vault(backend):
    """Secret vault over the in-memory backend"""
    return SecretVault(backend=backend)


@pytest.fixture
def config_manager(temp_dir):
    return ConfigManager(temp_dir / "config.json")


@pytest.fixture
def config_store(temp_dir):
    """Account store with one configured account, 'acc1'"""
    store = AccountConfigStore(temp_dir / "accounts.json")
    store.set("acc1", ConfigTestHelper.create_account_config())
    return store


@pytest_asyncio.fixture
async def stored_password(vault):
    """Store the account password for the fake server's origin"""
    await vault.put(ORIGIN, Realm.PASSWORD, USERNAME, PASSWORD)
    return PASSWORD


@pytest_asyncio.fixture
async def sessions(config_store, vault, client_factory):
    manager = SessionManager(config_store, vault, client_factory=client_factory)
    yield manager
    await manager.close()


@pytest.fixture
def orchestrator(sessions, config_store, vault):
    return UploadOrchestrator(sessions, config_store, vault)


@pytest.fixture
def handlers(config_store, vault, sessions, client_factory):
    return AccountHandlers(config_store, vault, sessions, client_factory=client_factory)
