"""
Auth API routes — register, login, session tokens.

Route prefix: /api/auth
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field, field_validator

from auth.dependencies import (
    UNAUTHORIZED_DETAIL,
    get_credential_store,
    get_current_principal,
    get_token_issuer,
)
from auth.exceptions import InvalidCredentialsError
from auth.models import AuthenticationResult
from auth.password import MAX_PASSWORD_BYTES
from auth.store import CredentialStore
from auth.strategies import extract_bearer
from auth.tokens import TokenIssuer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


# ── Request / response schemas ─────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=2, max_length=64, pattern=r"^[A-Za-z0-9_.@-]+$")
    password: str = Field(..., min_length=8)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    username: str
    created_at: datetime


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime


class SessionTokenResponse(BaseModel):
    token: str
    expires_at: datetime


# ── Endpoints ──────────────────────────────────────────────────────────


@router.post("/register", response_model=UserResponse)
async def register(
    req: RegisterRequest,
    store: CredentialStore = Depends(get_credential_store),
) -> Dict[str, Any]:
    """Register a new user. The password hash is never returned."""
    user = await store.register(req.username, req.password)
    return {"username": user.username, "created_at": user.created_at}


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Dict[str, Any]:
    """Login with username + password."""
    user = await store.check_credentials(req.username, req.password)
    if user is None:
        logger.info("Failed login for %s", req.username)
        raise InvalidCredentialsError()

    issued = issuer.issue(user.username)
    logger.info("Login: %s", user.username)
    return {"token": issued.token, "token_type": "bearer", "expires_at": issued.expires_at}


@router.post("/session-tokens", response_model=SessionTokenResponse)
async def create_session_token(
    request: Request,
    principal: AuthenticationResult = Depends(get_current_principal),
    store: CredentialStore = Depends(get_credential_store),
) -> Dict[str, Any]:
    """Issue an opaque bearer token for the authenticated user."""
    if await store.find_by_username(principal.principal) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session tokens can only be issued to registered users",
        )
    ttl = timedelta(seconds=request.app.state.settings.session_token_expiry_seconds)
    token, expires_at = await store.issue_session_token(principal.principal, ttl)
    return {"token": token, "expires_at": expires_at}


@router.delete("/session-tokens", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_session_token(
    request: Request,
    store: CredentialStore = Depends(get_credential_store),
) -> Response:
    """Revoke the session token presented as the bearer credential."""
    token = extract_bearer(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=UNAUTHORIZED_DETAIL,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not await store.revoke_session_token(token):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session token not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
