"""
Pluggable authentication strategies.

Every strategy pulls its credential out of the request and then checks
it. A missing header means ``NoResult``; a present but unusable header is
a ``Failure``. Nothing succeeds without a well-formed credential.
"""

from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from typing import Dict, Optional

from starlette.requests import HTTPConnection

from auth.models import AuthenticationResult, FailureReason
from auth.store import CredentialStore
from auth.tokens import JWT_SCHEME, TokenVerifier

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
API_KEY_HEADER = "X-Api-Key"

API_KEY_SCHEME = "ApiKey"
SESSION_TOKEN_SCHEME = "Custom"


def extract_bearer(request: HTTPConnection) -> Optional[str]:
    """
    Return the token from ``Authorization: Bearer <token>``.

    ``None`` when there is no Authorization header or it uses another
    scheme. An empty string when the Bearer scheme is used without a
    single well-formed token, so callers can reject it as malformed.
    """
    header = request.headers.get(AUTHORIZATION_HEADER)
    if header is None:
        return None
    scheme, _, rest = header.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = rest.strip()
    if not token or " " in token:
        return ""
    return token


class AuthStrategy(ABC):
    """One way of authenticating a request."""

    scheme: str

    @abstractmethod
    def extract_credential(self, request: HTTPConnection) -> Optional[str]:
        """Credential material, or ``None`` if this strategy does not apply."""

    @abstractmethod
    async def authenticate(self, credential: str) -> AuthenticationResult:
        ...

    async def __call__(self, request: HTTPConnection) -> AuthenticationResult:
        credential = self.extract_credential(request)
        if credential is None:
            return AuthenticationResult.no_result()
        if not credential:
            return AuthenticationResult.fail(FailureReason.MALFORMED)
        return await self.authenticate(credential)


class BearerJwtStrategy(AuthStrategy):
    scheme = JWT_SCHEME

    def __init__(self, verifier: TokenVerifier):
        self._verifier = verifier

    def extract_credential(self, request: HTTPConnection) -> Optional[str]:
        return extract_bearer(request)

    async def authenticate(self, credential: str) -> AuthenticationResult:
        return self._verifier.verify(credential)


class ApiKeyStrategy(AuthStrategy):
    """
    Checks ``X-Api-Key`` against the configured keys.

    Every configured key is compared with ``secrets.compare_digest`` so the
    time taken does not depend on which key (if any) matched.
    """

    scheme = API_KEY_SCHEME

    def __init__(self, api_keys: Dict[str, str]):
        if not api_keys:
            raise ValueError("ApiKeyStrategy needs at least one configured key")
        self._keys = [(key.encode(), principal) for key, principal in api_keys.items()]

    def extract_credential(self, request: HTTPConnection) -> Optional[str]:
        value = request.headers.get(API_KEY_HEADER)
        if value is None:
            return None
        return value.strip()

    async def authenticate(self, credential: str) -> AuthenticationResult:
        presented = credential.encode()
        matched: Optional[str] = None
        for key, principal in self._keys:
            if secrets.compare_digest(presented, key) and matched is None:
                matched = principal
        if matched is None:
            return AuthenticationResult.fail(FailureReason.INVALID_CREDENTIALS)
        return AuthenticationResult.success(matched, self.scheme)


class SessionTokenStrategy(AuthStrategy):
    """Bearer token looked up in the session-token table."""

    scheme = SESSION_TOKEN_SCHEME

    def __init__(self, store: CredentialStore):
        self._store = store

    def extract_credential(self, request: HTTPConnection) -> Optional[str]:
        return extract_bearer(request)

    async def authenticate(self, credential: str) -> AuthenticationResult:
        principal = await self._store.find_session_principal(credential)
        if principal is None:
            return AuthenticationResult.fail(FailureReason.INVALID_CREDENTIALS)
        return AuthenticationResult.success(principal, self.scheme)
