"""
Authentication dispatcher and its composition root.

``AuthDispatcher`` runs the configured strategies in order for each
request:

- ``NoResult`` or ``Failure`` moves on to the next strategy
- the first ``Success`` wins
- if nothing succeeds the request is rejected

``build_dispatcher`` wires the strategies named in ``AUTH_STRATEGIES``
from settings, the token verifier and the credential store.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Sequence

from starlette.requests import HTTPConnection

from auth.models import AuthenticationResult, AuthOutcome, FailureReason
from auth.store import CredentialStore
from auth.strategies import (
    ApiKeyStrategy,
    AuthStrategy,
    BearerJwtStrategy,
    SessionTokenStrategy,
)
from auth.tokens import SigningKey, TokenVerifier
from config.settings import Settings

logger = logging.getLogger(__name__)


class AuthDispatcher:
    def __init__(self, strategies: Sequence[AuthStrategy]):
        if not strategies:
            raise ValueError("AuthDispatcher needs at least one strategy")
        self._strategies = tuple(strategies)

    @property
    def schemes(self) -> List[str]:
        return [s.scheme for s in self._strategies]

    async def authenticate(self, request: HTTPConnection) -> AuthenticationResult:
        """
        Return the first successful result, or a failure if every strategy
        failed or did not apply.
        """
        failures: List[str] = []
        for strategy in self._strategies:
            result = await strategy(request)
            if result.outcome is AuthOutcome.SUCCESS:
                logger.debug("Authenticated %s via %s", result.principal, result.scheme)
                return result
            if result.outcome is AuthOutcome.FAILURE:
                failures.append(f"{strategy.scheme}={result.reason.value}")

        if failures:
            logger.debug("Rejected %s: %s", request.url.path, ", ".join(failures))
        else:
            logger.debug("Rejected %s: no credentials", request.url.path)
        return AuthenticationResult.fail(FailureReason.INVALID_CREDENTIALS)


def build_dispatcher(
    settings: Settings,
    key: SigningKey,
    store: CredentialStore,
) -> AuthDispatcher:
    """Build strategies in the order given by ``settings.strategy_order``."""
    verifier = TokenVerifier(key, leeway=timedelta(seconds=settings.jwt_leeway_seconds))
    api_keys = settings.get_api_keys()

    strategies: List[AuthStrategy] = []
    for name in settings.strategy_order:
        if name == "jwt":
            strategies.append(BearerJwtStrategy(verifier))
        elif name == "api_key":
            if not api_keys:
                logger.warning("api_key strategy enabled but API_KEYS is empty; skipping it")
                continue
            strategies.append(ApiKeyStrategy(api_keys))
        elif name == "session_token":
            strategies.append(SessionTokenStrategy(store))
        else:
            raise ValueError(f"Unknown authentication strategy: {name}")

    dispatcher = AuthDispatcher(strategies)
    logger.info("Authentication strategies: %s", ", ".join(dispatcher.schemes))
    return dispatcher
