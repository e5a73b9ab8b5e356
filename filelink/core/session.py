"""Authenticated session lifecycle.

Turns the long-lived secrets in the vault into a ready-to-use API session.
Acquisition strategies are tried in order and the first one that yields a
live session wins:

1. ``CachedSessionStrategy``  - the in-memory session for the account
2. ``StoredTokenStrategy``    - a session seeded from the vault's token realm
3. ``ReauthenticationStrategy`` - a fresh login with the stored password

Only the last strategy can fail outright; liveness failures in the first
two just fall through.

Usage Examples
--------------

    >>> sessions = SessionManager(config_store, vault)
    >>> session = await sessions.get_session("account1")
    >>> await session.client.list_repos()
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional

import httpx

from filelink.security.vault import Realm, SecretVault
from filelink.utils.config import AccountConfig, AccountConfigStore, AppConfig
from filelink.utils.errors import KeyStoreError, NoConfigError, NoCredentialsError
from filelink.utils.logging import get_logger, log_event

from .models import Session
from .seafile import SeafileClient

logger = get_logger(__name__)

ClientFactory = Callable[..., SeafileClient]


def make_client_factory(
    app_config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ClientFactory:
    """Build a factory producing clients with the configured HTTP settings."""
    app_config = app_config or AppConfig()

    def factory(origin: str, token: Optional[str] = None) -> SeafileClient:
        return SeafileClient(
            origin,
            token=token,
            timeout=app_config.http.timeout,
            upload_timeout=app_config.http.upload_timeout,
            transport=transport,
        )

    return factory


class SessionCache:
    """In-memory sessions keyed by account id.

    Process-lifetime only; a lost entry is rebuilt by re-authentication.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def get(self, account_id: str) -> Optional[Session]:
        return self._sessions.get(account_id)

    def set(self, session: Session) -> None:
        self._sessions[session.account_id] = session

    async def evict(self, account_id: str) -> bool:
        """Drop the session for an account. Returns True if one existed.

        An idle session is closed at once. A leased one is only retired and
        closed by whoever releases the last lease.
        """
        session = self._sessions.pop(account_id, None)
        if session is None:
            return False

        session.retired = True
        if session.in_use:
            logger.debug(
                f"Retired cached session for account {account_id} "
                f"({session.leases} operation(s) still running)"
            )
        else:
            await session.client.close()
            logger.debug(f"Evicted cached session for account {account_id}")
        return True

    async def clear(self) -> None:
        for account_id in list(self._sessions):
            await self.evict(account_id)

    def __contains__(self, account_id: str) -> bool:
        return account_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class AcquisitionContext:
    """What every strategy needs to know about the account."""

    account_id: str
    config: AccountConfig

    @property
    def origin(self) -> str:
        return self.config.origin


class SessionStrategy(ABC):
    """One way of obtaining a live session."""

    name = "strategy"

    def __init__(self, manager: "SessionManager") -> None:
        self.manager = manager

    @abstractmethod
    async def acquire(self, context: AcquisitionContext) -> Optional[Session]:
        """Return a live session, or None to fall through to the next strategy."""
        pass


class CachedSessionStrategy(SessionStrategy):
    """Reuse the in-memory session if its token is still accepted."""

    name = "cache"

    async def acquire(self, context: AcquisitionContext) -> Optional[Session]:
        session = self.manager.cache.get(context.account_id)
        if session is None:
            return None

        if session.origin == context.origin and await self.manager.probe(session):
            # Evicted while the liveness check was in flight
            return None if session.retired else session

        if self.manager.cache.get(context.account_id) is session:
            await self.manager.cache.evict(context.account_id)
        return None


class StoredTokenStrategy(SessionStrategy):
    """Seed a session from the token realm without sending the password."""

    name = "stored_token"

    async def acquire(self, context: AcquisitionContext) -> Optional[Session]:
        stored = await self.manager.vault.get(context.origin, Realm.TOKEN)
        if stored is None:
            return None

        session = Session(
            origin=context.origin,
            account_id=context.account_id,
            client=self.manager.client_factory(context.origin, token=stored.secret),
        )

        if await self.manager.probe(session):
            return session

        logger.info(f"Stored token for {context.origin} is no longer valid")
        await session.client.close()
        return None


class ReauthenticationStrategy(SessionStrategy):
    """Log in with the stored password and persist the new token."""

    name = "reauthenticate"

    async def acquire(self, context: AcquisitionContext) -> Optional[Session]:
        credentials = await self.manager.vault.get(context.origin, Realm.PASSWORD)
        if credentials is None:
            raise NoCredentialsError(details={"origin": context.origin})

        client = self.manager.client_factory(context.origin)
        try:
            token = await client.authenticate(credentials.username, credentials.secret)
        except BaseException:
            await client.close()
            raise

        try:
            await self.manager.vault.put(
                context.origin, Realm.TOKEN, credentials.username, token
            )
        except KeyStoreError as e:
            # The session is usable; only the next cold start pays for this.
            logger.warning(f"Could not persist token for {context.origin}: {e.message}")
        else:
            log_event("token_persisted", {"origin": context.origin})

        return Session(origin=context.origin, account_id=context.account_id, client=client)


class SessionManager:
    """Supplies a valid, cached API session per account."""

    def __init__(
        self,
        config_store: AccountConfigStore,
        vault: SecretVault,
        cache: Optional[SessionCache] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.config_store = config_store
        self.vault = vault
        self.cache = cache if cache is not None else SessionCache()
        self.client_factory = client_factory or make_client_factory()
        self.strategies: List[SessionStrategy] = [
            CachedSessionStrategy(self),
            StoredTokenStrategy(self),
            ReauthenticationStrategy(self),
        ]

    def load_config(self, account_id: str) -> AccountConfig:
        """Return the account's config or raise NoConfigError."""
        config = self.config_store.get(account_id)
        if config is None or not config.server_url:
            raise NoConfigError(details={"account_id": account_id})
        return config

    async def get_session(self, account_id: str) -> Session:
        """Return a live session for the account.

        Raises:
            NoConfigError: If the account has no stored configuration.
            NoCredentialsError: If re-authentication is needed but no password is stored.
            AuthenticationError: If the server rejects the stored password.
        """
        context = AcquisitionContext(account_id, self.load_config(account_id))

        for strategy in self.strategies:
            session = await strategy.acquire(context)
            if session is None:
                continue

            if strategy.name != CachedSessionStrategy.name:
                self.cache.set(session)
                log_event(
                    "session_created",
                    {"account_id": account_id, "origin": context.origin, "via": strategy.name},
                )
            return session

        raise NoCredentialsError(details={"origin": context.origin})

    async def probe(self, session: Session) -> bool:
        """Liveness probe that never raises."""
        try:
            return await session.client.ping()
        except Exception as e:
            logger.debug(f"Liveness probe for {session.origin} raised {type(e).__name__}")
            return False

    @asynccontextmanager
    async def lease(self, account_id: str) -> AsyncIterator[Session]:
        """Hold a live session for the length of a multi-step operation.

        Evicting the account meanwhile does not close the client under the
        operation; it is closed when the lease ends.

            >>> async with sessions.lease("account1") as session:
            ...     await session.client.list_repos()
        """
        session = await self.get_session(account_id)
        session.leases += 1
        try:
            yield session
        finally:
            session.leases -= 1
            if session.retired and not session.in_use:
                await session.client.close()
                logger.debug(f"Closed retired session for account {account_id}")

    async def evict(self, account_id: str) -> bool:
        return await self.cache.evict(account_id)

    async def close(self) -> None:
        await self.cache.clear()
