"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads happen here. No module should call os.getenv()
or os.environ.get() directly -- import get_settings() instead, or receive a
Settings instance from create_app().

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Dev mode (DEBUG=true) generates missing signing secrets with a
      warning; any other mode refuses to start without them.

Security notes:
  Secrets shorter than 32 chars are rejected outright. Access and refresh
  tokens must be signed with different secrets, otherwise a refresh token
  would pass access-token verification.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
rbac/, services/, or cache/.
"""

import logging
import re
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("rbacapi.config")

_TTL_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_TTL_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_ttl(value: str) -> int:
    """Convert a TTL string such as "15m", "7d" or "3600" into seconds.

    Raises ValueError for anything that does not match <digits><unit>.
    """
    match = _TTL_RE.match(str(value))
    if match is None:
        raise ValueError(f"Invalid TTL {value!r}. Expected e.g. '30s', '15m', '12h', '7d'.")
    amount, unit = match.groups()
    return int(amount) * _TTL_UNITS[unit]


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (as long as DEBUG=true).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # App
    # ------------------------------------------------------------------

    app_name: str = "RBAC API"
    environment: str = "development"  # development | staging | production
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    database_url: str = "sqlite:///rbacapi.db"
    cache_path: str = "rbacapi_cache.db"
    users_cache_ttl: int = 300

    # ------------------------------------------------------------------
    # JWT
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev secret or raises.
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    jwt_expires_in: str = "7d"
    jwt_refresh_expires_in: str = "30d"

    # ------------------------------------------------------------------
    # Rate limiting (limits/slowapi notation)
    # ------------------------------------------------------------------

    rate_limit: str = "100/minute"
    strict_rate_limit: str = "10/minute"
    auth_rate_limit: str = "5/15minutes"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def access_ttl_seconds(self) -> int:
        return parse_ttl(self.jwt_expires_in)

    @property
    def refresh_ttl_seconds(self) -> int:
        return parse_ttl(self.jwt_refresh_expires_in)

    def get_allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing-secret policy.

        Dev mode (DEBUG=true): missing secrets are generated. Tokens will not
            survive a restart, which is fine for local work.

        Any other mode: a missing secret is a startup failure.

        Both modes: secrets must be >= 32 chars and must differ from each other.
        """
        for field_name in ("jwt_secret", "jwt_refresh_secret"):
            if getattr(self, field_name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{field_name.upper()} is required outside development mode. "
                    "Set it in your environment or .env file, or set DEBUG=true."
                )
            setattr(self, field_name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", field_name.upper())

        if len(self.jwt_secret) < 32 or len(self.jwt_refresh_secret) < 32:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be at least 32 characters.")
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")

        parse_ttl(self.jwt_expires_in)
        parse_ttl(self.jwt_refresh_expires_in)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
