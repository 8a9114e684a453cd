"""
FastAPI dependencies for authentication.

Provides ``get_credential_store``, ``get_token_issuer`` and
``get_current_principal``; the objects themselves are built once at
startup and live on ``app.state``.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from auth.dispatcher import AuthDispatcher
from auth.models import AuthenticationResult
from auth.store import CredentialStore
from auth.tokens import TokenIssuer

UNAUTHORIZED_DETAIL = "Not authenticated"


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


def get_dispatcher(request: Request) -> AuthDispatcher:
    return request.app.state.auth_dispatcher


async def get_current_principal(request: Request) -> AuthenticationResult:
    """
    Run the configured strategies and return the successful result.

    Raises ``HTTPException(401)`` with a generic message otherwise.
    """
    result = await get_dispatcher(request).authenticate(request)
    if not result.succeeded:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHORIZED_DETAIL,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result
