"""
JWT issuance and verification.

Tokens are compact JWS (HS256 by default) produced with PyJWT. The
signing key is loaded once at startup into an immutable ``SigningKey`` and
injected into ``TokenIssuer`` / ``TokenVerifier``.
"""

from __future__ import annotations

import binascii
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from jwt.utils import base64url_decode, base64url_encode
from pydantic import SecretStr

from auth.exceptions import SigningKeyError
from auth.models import AuthenticationResult, FailureReason
from config.settings import MIN_SECRET_BYTES, SUPPORTED_ALGORITHMS, Settings

logger = logging.getLogger(__name__)

JWT_SCHEME = "Jwt"

_COMPACT_JWS = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class SigningKey:
    """Process-wide symmetric key material. Validated on construction."""

    secret: SecretStr
    algorithm: str = "HS256"
    issuer: Optional[str] = None
    audience: Optional[str] = None

    def __post_init__(self) -> None:
        raw = self.secret.get_secret_value() if self.secret is not None else ""
        if len(raw.encode()) < MIN_SECRET_BYTES:
            raise SigningKeyError(f"Signing key must be at least {MIN_SECRET_BYTES} bytes")
        if self.algorithm not in SUPPORTED_ALGORITHMS:
            raise SigningKeyError(f"Unsupported signing algorithm: {self.algorithm}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningKey":
        return cls(
            secret=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )

    def material(self) -> str:
        return self.secret.get_secret_value()


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    jti: str


class TokenIssuer:
    """Produces signed, time-bounded tokens asserting a username."""

    def __init__(self, key: SigningKey, default_ttl: timedelta = timedelta(days=1)):
        self._key = key
        self._default_ttl = default_ttl

    def issue(self, subject: str, ttl: Optional[timedelta] = None) -> IssuedToken:
        """Create a signed token for ``subject`` that expires after ``ttl``."""
        if not subject:
            raise ValueError("subject must be a non-empty username")
        ttl = self._default_ttl if ttl is None else ttl
        now = datetime.now(timezone.utc)
        expires_at = now + ttl
        jti = secrets.token_urlsafe(16)

        payload = {
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": jti,
        }
        if self._key.issuer:
            payload["iss"] = self._key.issuer
        if self._key.audience:
            payload["aud"] = self._key.audience

        token = jwt.encode(payload, self._key.material(), algorithm=self._key.algorithm)
        return IssuedToken(token=token, expires_at=expires_at, jti=jti)


class TokenVerifier:
    """
    Validates tokens produced by ``TokenIssuer``.

    Checks run in order and stop at the first failure:

    1. structure (three base64url segments) -> ``Malformed``
    2. signature over header and payload -> ``BadSignature``
    3. expiry -> ``Expired``
    4. issuer / audience, when configured -> ``AudienceMismatch``

    A correctly signed token lacking ``sub``, ``exp`` or ``iat`` is
    ``Malformed``.
    """

    def __init__(self, key: SigningKey, leeway: timedelta = timedelta(0)):
        self._key = key
        self._leeway = leeway

    def verify(self, token: str) -> AuthenticationResult:
        if not isinstance(token, str) or not _COMPACT_JWS.match(token):
            return AuthenticationResult.fail(FailureReason.MALFORMED)

        signature_segment = token.rsplit(".", 1)[1]
        if not _is_canonical_base64url(signature_segment):
            return AuthenticationResult.fail(FailureReason.BAD_SIGNATURE)

        try:
            claims = jwt.decode(
                token,
                self._key.material(),
                algorithms=[self._key.algorithm],
                audience=self._key.audience,
                issuer=self._key.issuer,
                leeway=self._leeway,
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_aud": self._key.audience is not None,
                },
            )
        except (jwt.ExpiredSignatureError, jwt.ImmatureSignatureError):
            return AuthenticationResult.fail(FailureReason.EXPIRED)
        except (jwt.InvalidAudienceError, jwt.InvalidIssuerError):
            return AuthenticationResult.fail(FailureReason.AUDIENCE_MISMATCH)
        except jwt.MissingRequiredClaimError as exc:
            if exc.claim in ("aud", "iss"):
                return AuthenticationResult.fail(FailureReason.AUDIENCE_MISMATCH)
            return AuthenticationResult.fail(FailureReason.MALFORMED)
        except (jwt.DecodeError, jwt.InvalidAlgorithmError):
            # Covers InvalidSignatureError as well as header/payload bytes
            # that no longer decode after tampering.
            return AuthenticationResult.fail(FailureReason.BAD_SIGNATURE)
        except jwt.InvalidTokenError as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            return AuthenticationResult.fail(FailureReason.MALFORMED)

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return AuthenticationResult.fail(FailureReason.MALFORMED)
        return AuthenticationResult.success(subject, JWT_SCHEME)


def _is_canonical_base64url(segment: str) -> bool:
    """
    True when ``segment`` re-encodes to itself. Decoding ignores the unused
    low bits of the final character, so distinct strings can share bytes.
    """
    try:
        decoded = base64url_decode(segment)
    except (binascii.Error, ValueError):
        return False
    return base64url_encode(decoded).decode() == segment
