"""
REST API routes: health check and the protected resource.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from auth.dependencies import get_current_principal
from auth.models import AuthenticationResult

router = APIRouter()


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/protected")
async def protected(
    principal: AuthenticationResult = Depends(get_current_principal),
) -> Dict[str, Any]:
    """Reachable only through one of the configured strategies."""
    return {
        "message": "This is a protected resource.",
        "principal": principal.principal,
        "scheme": principal.scheme,
    }
