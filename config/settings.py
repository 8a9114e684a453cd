"""
Application settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings

MIN_SECRET_BYTES = 32
SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")
KNOWN_STRATEGIES = ("jwt", "api_key", "session_token")


class Settings(BaseSettings):
    # ── Token signing ───────────────────────────────────────────────────
    jwt_secret: SecretStr                       # required, >= 32 bytes
    jwt_algorithm: str = "HS256"
    jwt_expiry_seconds: int = 86400             # 1 day
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    jwt_leeway_seconds: int = 0

    # ── Authentication strategies ───────────────────────────────────────
    api_keys: str = ""                          # "name:key,key2"
    auth_strategies: str = "jwt,api_key,session_token"
    session_token_expiry_seconds: int = 3600
    bcrypt_rounds: int = 12

    # ── Database ─────────────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./auth.db"
    db_connect_timeout: float = 10.0

    # ── Server ───────────────────────────────────────────────────────────
    port: int = 8000
    host: str = "0.0.0.0"
    debug: bool = False
    cors_origins: list = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }

    @field_validator("jwt_secret")
    @classmethod
    def _secret_long_enough(cls, value: SecretStr) -> SecretStr:
        if len(value.get_secret_value().encode()) < MIN_SECRET_BYTES:
            raise ValueError(
                f"JWT_SECRET must be at least {MIN_SECRET_BYTES} bytes; "
                "generate one with `python -c \"import secrets; print(secrets.token_urlsafe(48))\"`"
            )
        return value

    @field_validator("jwt_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        value = value.upper()
        if value not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"JWT_ALGORITHM must be one of {', '.join(SUPPORTED_ALGORITHMS)}")
        return value

    @field_validator("auth_strategies")
    @classmethod
    def _known_strategies(cls, value: str) -> str:
        names = [n.strip() for n in value.split(",") if n.strip()]
        if not names:
            raise ValueError("AUTH_STRATEGIES must name at least one strategy")
        unknown = [n for n in names if n not in KNOWN_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown authentication strategies: {', '.join(unknown)}")
        return ",".join(names)

    @field_validator("jwt_expiry_seconds", "session_token_expiry_seconds", "jwt_leeway_seconds")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("durations must not be negative")
        return value

    @property
    def strategy_order(self) -> List[str]:
        return self.auth_strategies.split(",")

    def get_api_keys(self) -> Dict[str, str]:
        """
        Parse ``API_KEYS`` into ``{key: principal}``.

        Entries are either ``name:key`` or a bare ``key`` (principal
        ``"api-key"``).
        """
        keys: Dict[str, str] = {}
        for entry in self.api_keys.split(","):
            entry = entry.strip()
            if not entry:
                continue
            if ":" in entry:
                name, key = entry.split(":", 1)
                keys[key.strip()] = name.strip() or "api-key"
            else:
                keys[entry] = "api-key"
        return keys


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process; raises if the environment is invalid."""
    return Settings()
