"""
Authentication error taxonomy.

Token verification failures are not raised; they come back as
``AuthenticationResult.fail(FailureReason...)`` from the verifier. The
exceptions here are for store and configuration problems that the HTTP
layer maps to responses (see ``api/middleware.py``).
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication errors."""

    status_code = 500
    detail = "Authentication error"


class DuplicateUsernameError(AuthError):
    status_code = 409
    detail = "Username already registered"

    def __init__(self, username: str):
        super().__init__(f"Username already registered: {username}")
        self.username = username


class InvalidCredentialsError(AuthError):
    """Bad username/password. Never says which of the two was wrong."""

    status_code = 401
    detail = "Invalid username or password"


class StoreUnavailableError(AuthError):
    """The credential store could not be reached; callers may retry."""

    status_code = 503
    detail = "Credential store unavailable"


class SigningKeyError(AuthError):
    """Signing key missing or too weak. Raised at startup only."""
