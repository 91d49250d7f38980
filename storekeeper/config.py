"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (prefix STOREKEEPER_) or a local .env file:

    STOREKEEPER_JWT_SECRET=...            # required
    STOREKEEPER_STORE_URI=redis://redis:6379/0
    STOREKEEPER_PORT=8080

Nothing here is read at import time. The bootstrap in server.main() calls
load_settings() once and hands the values to the components as constructor
arguments.
"""

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings


class ConfigError(Exception):
    """
    Raised when the service cannot start with the given configuration.

    Covers missing or invalid settings as well as an unknown store backend
    selector. It is always fatal: the process must not start half-configured.
    """


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the STOREKEEPER_ prefix,
    e.g. `jwt_secret` reads from STOREKEEPER_JWT_SECRET.
    """

    # --- Server settings ---
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"

    # --- Authentication settings ---

    # Shared HMAC secret used to verify token signatures. No default: a
    # storekeeper without a secret would accept nothing or, worse, anything.
    jwt_secret: str
    jwt_algorithm: str = "HS512"

    # --- Store settings ---

    # Selects the backend: "memory:/" for the in-process store,
    # "redis://host:port/db" for the shared persistent one.
    store_uri: str = "memory:/"

    model_config = {
        "env_prefix": "STOREKEEPER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("jwt_secret")
    @classmethod
    def _secret_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("jwt_algorithm")
    @classmethod
    def _hmac_only(cls, value: str) -> str:
        if value not in ("HS256", "HS384", "HS512"):
            raise ValueError(f"unsupported algorithm {value!r}, expected an HMAC algorithm")
        return value


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment, turning validation failures into ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
