"""
Credential store: users keyed by username, plus opaque session tokens.

Owns its own sessions from the injected ``async_sessionmaker`` so the
same instance serves route handlers and authentication strategies.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from auth.exceptions import DuplicateUsernameError, StoreUnavailableError
from auth.models import SessionToken, User
from auth.password import (
    DEFAULT_ROUNDS,
    dummy_hash,
    hash_password_async,
    verify_password_async,
)

logger = logging.getLogger(__name__)


def _token_digest(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


@contextmanager
def _store_errors() -> Iterator[None]:
    """Translate connectivity failures into ``StoreUnavailableError``."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("Credential store unavailable: %s", type(exc).__name__)
        raise StoreUnavailableError() from exc


@dataclass
class _UsernameLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class CredentialStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bcrypt_rounds: int = DEFAULT_ROUNDS,
    ):
        self._session_factory = session_factory
        self._rounds = bcrypt_rounds
        self._locks: Dict[str, _UsernameLock] = {}

    # ── Users ──────────────────────────────────────────────────────────

    async def register(self, username: str, raw_password: str) -> User:
        """
        Hash ``raw_password`` and store a new user.

        Raises ``DuplicateUsernameError`` if the username is taken; the
        store is left unchanged in that case. Registrations for the same
        username are serialised in-process, and the primary key catches
        races between processes.
        """
        entry = self._locks.get(username)
        if entry is None:
            entry = self._locks[username] = _UsernameLock()
        entry.holders += 1
        try:
            async with entry.lock:
                return await self._insert_user(username, raw_password)
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[username]

    async def _insert_user(self, username: str, raw_password: str) -> User:
        with _store_errors():
            async with self._session_factory() as session:
                if await session.get(User, username) is not None:
                    raise DuplicateUsernameError(username)

                user = User(
                    username=username,
                    password_hash=await hash_password_async(raw_password, self._rounds),
                    created_at=datetime.now(timezone.utc),
                )
                session.add(user)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise DuplicateUsernameError(username)

        logger.info("Registered user %s", username)
        return user

    async def find_by_username(self, username: str) -> Optional[User]:
        with _store_errors():
            async with self._session_factory() as session:
                return await session.get(User, username)

    async def check_credentials(self, username: str, raw_password: str) -> Optional[User]:
        """
        The user if ``raw_password`` matches, otherwise ``None``.

        Unknown usernames are checked against a dummy hash with this
        store's work factor, so both failure paths cost one bcrypt check
        at the same number of rounds.
        """
        user = await self.find_by_username(username)
        if user is None:
            await verify_password_async(raw_password, await self._dummy_hash())
            return None
        if not await verify_password_async(raw_password, user.password_hash):
            return None
        return user

    async def _dummy_hash(self) -> str:
        return await asyncio.to_thread(dummy_hash, self._rounds)

    # ── Session tokens ─────────────────────────────────────────────────

    async def issue_session_token(self, username: str, ttl: timedelta) -> Tuple[str, datetime]:
        """Create an opaque token for ``username``; returns (raw_token, expires_at)."""
        raw_token = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        expires_at = now + ttl
        with _store_errors():
            async with self._session_factory() as session:
                await session.execute(
                    delete(SessionToken).where(SessionToken.expires_at <= now)
                )
                session.add(
                    SessionToken(
                        token_hash=_token_digest(raw_token),
                        username=username,
                        created_at=now,
                        expires_at=expires_at,
                    )
                )
                await session.commit()
        logger.info("Issued session token for %s", username)
        return raw_token, expires_at

    async def find_session_principal(self, raw_token: str) -> Optional[str]:
        """Username owning an unexpired session token, or ``None``."""
        with _store_errors():
            async with self._session_factory() as session:
                result = await session.execute(
                    select(SessionToken.username).where(
                        SessionToken.token_hash == _token_digest(raw_token),
                        SessionToken.expires_at > datetime.now(timezone.utc),
                    )
                )
                return result.scalar_one_or_none()

    async def revoke_session_token(self, raw_token: str) -> bool:
        with _store_errors():
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(SessionToken).where(SessionToken.token_hash == _token_digest(raw_token))
                )
                await session.commit()
        return result.rowcount > 0
