"""
Authentication result types shared by the verifier, strategies and
dispatcher, plus a re-export of the ``User`` row.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from database.models import SessionToken, User  # noqa: F401

__all__ = [
    "AuthOutcome",
    "AuthenticationResult",
    "FailureReason",
    "SessionToken",
    "User",
]


class AuthOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    NO_RESULT = "no_result"


class FailureReason(str, Enum):
    MALFORMED = "Malformed"
    BAD_SIGNATURE = "BadSignature"
    EXPIRED = "Expired"
    AUDIENCE_MISMATCH = "AudienceMismatch"
    INVALID_CREDENTIALS = "InvalidCredentials"


@dataclass(frozen=True)
class AuthenticationResult:
    """
    Outcome of one authentication attempt.

    Exactly one shape is valid per outcome: ``principal`` and ``scheme`` are
    set only on success, ``reason`` only on failure. Build instances with
    the ``success`` / ``fail`` / ``no_result`` constructors.
    """

    outcome: AuthOutcome
    principal: Optional[str] = None
    scheme: Optional[str] = None
    reason: Optional[FailureReason] = None

    @classmethod
    def success(cls, principal: str, scheme: str) -> "AuthenticationResult":
        return cls(AuthOutcome.SUCCESS, principal=principal, scheme=scheme)

    @classmethod
    def fail(cls, reason: FailureReason) -> "AuthenticationResult":
        return cls(AuthOutcome.FAILURE, reason=reason)

    @classmethod
    def no_result(cls) -> "AuthenticationResult":
        return cls(AuthOutcome.NO_RESULT)

    @property
    def succeeded(self) -> bool:
        return self.outcome is AuthOutcome.SUCCESS
