"""
Static configuration for GuildWatch.

Values come from environment variables (a ``.env`` file is honoured through
python-dotenv) and are read once when this module is imported. Malformed or
out-of-range values fall back to the default with a warning rather than
failing the import; production additionally refuses the default signing key.

Required in production
----------------------
- DATABASE_URL: SQLAlchemy async URL (``postgresql+asyncpg://...``)
- SECRET_KEY: HMAC key for session tokens

Everything else has a default; see the class attributes. Per-tenant limits
(world limit, guilds per world) live on database rows, not here.
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from dotenv import load_dotenv

load_dotenv()

T = TypeVar("T")

_DEFAULT_SECRET_KEY = "change-me-guildwatch-dev-secret"
_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# The structured logger imports Config, so bootstrap messages go through
# the stdlib root logger.
_bootstrap_log = logging.getLogger(__name__)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{raw!r} is not a boolean")


def _env(
    key: str,
    default: T,
    parse: Callable[[str], Any] = str,
    min_val: Optional[float] = None,
    max_val: Optional[float] = None,
) -> T:
    """
    Read ``key`` from the environment, parsed and bounds-checked.

    Unset, unparsable or out-of-range values yield ``default``.
    """
    raw = os.getenv(key)
    if raw is None:
        return default

    try:
        value = parse(raw)
    except ValueError:
        _bootstrap_log.warning(f"{key}={raw!r} is invalid, using default {default!r}")
        return default

    if (min_val is not None and value < min_val) or (
        max_val is not None and value > max_val
    ):
        _bootstrap_log.warning(
            f"{key}={value!r} outside [{min_val}, {max_val}], using default {default!r}"
        )
        return default
    return value


class Config:
    """
    Process-wide settings, accessed as class attributes.

    >>> Config.DATABASE_URL
    >>> Config.is_production()
    """

    _validated: bool = False

    # Database
    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_ECHO: bool = False
    DATABASE_AUTO_CREATE: bool = True

    # Transaction retry (see DatabaseRetryPolicy)
    DATABASE_RETRY_MAX_ATTEMPTS: int = 3
    DATABASE_RETRY_INITIAL_BACKOFF_MS: int = 100
    DATABASE_RETRY_MAX_BACKOFF_MS: int = 2000
    DATABASE_RETRY_JITTER_MS: int = 25

    # TibiaData
    TIBIADATA_BASE_URL: str = "https://api.tibiadata.com/v4"
    TIBIADATA_TIMEOUT_SECONDS: int = 10
    TIBIADATA_USER_AGENT: str = "GuildWatch/1.0"

    # Pause between guilds in sync-all
    SYNC_DELAY_SECONDS: float = 1.0

    # Sessions and guild passwords
    SECRET_KEY: str = _DEFAULT_SECRET_KEY
    SESSION_TTL_SECONDS: int = 30 * 24 * 60 * 60
    BCRYPT_ROUNDS: int = 12

    # Runtime
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None

    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    DATA_DIR = PROJECT_ROOT / "data"

    APP_NAME: str = "GuildWatch"
    APP_VERSION: str = "1.0.0"

    @classmethod
    def load(cls) -> None:
        """(Re)read every setting from the environment."""
        cls.DATABASE_URL = _env(
            "DATABASE_URL", f"sqlite+aiosqlite:///{cls.DATA_DIR / 'guildwatch.db'}"
        )
        cls.DATABASE_POOL_SIZE = _env("DATABASE_POOL_SIZE", 10, int, 1, 200)
        cls.DATABASE_MAX_OVERFLOW = _env("DATABASE_MAX_OVERFLOW", 10, int, 0, 200)
        cls.DATABASE_POOL_RECYCLE = _env("DATABASE_POOL_RECYCLE", 1800, int, 60)
        cls.DATABASE_POOL_TIMEOUT = _env("DATABASE_POOL_TIMEOUT", 30, int, 1, 600)
        cls.DATABASE_ECHO = _env("DATABASE_ECHO", False, _parse_bool)
        cls.DATABASE_AUTO_CREATE = _env("DATABASE_AUTO_CREATE", True, _parse_bool)

        cls.DATABASE_RETRY_MAX_ATTEMPTS = _env("DATABASE_RETRY_MAX_ATTEMPTS", 3, int, 1, 10)
        cls.DATABASE_RETRY_INITIAL_BACKOFF_MS = _env(
            "DATABASE_RETRY_INITIAL_BACKOFF_MS", 100, int, 0
        )
        cls.DATABASE_RETRY_MAX_BACKOFF_MS = _env("DATABASE_RETRY_MAX_BACKOFF_MS", 2000, int, 0)
        cls.DATABASE_RETRY_JITTER_MS = _env("DATABASE_RETRY_JITTER_MS", 25, int, 0)

        cls.TIBIADATA_BASE_URL = _env(
            "TIBIADATA_BASE_URL", "https://api.tibiadata.com/v4"
        ).rstrip("/")
        cls.TIBIADATA_TIMEOUT_SECONDS = _env("TIBIADATA_TIMEOUT_SECONDS", 10, int, 1, 120)
        cls.TIBIADATA_USER_AGENT = _env("TIBIADATA_USER_AGENT", "GuildWatch/1.0")

        cls.SYNC_DELAY_SECONDS = _env("SYNC_DELAY_SECONDS", 1.0, float, 0.0)

        cls.SECRET_KEY = _env("SECRET_KEY", _DEFAULT_SECRET_KEY)
        cls.SESSION_TTL_SECONDS = _env("SESSION_TTL_SECONDS", 30 * 24 * 60 * 60, int, 60)
        cls.BCRYPT_ROUNDS = _env("BCRYPT_ROUNDS", 12, int, 4, 16)

        cls.ENVIRONMENT = _env("ENVIRONMENT", "development").lower()
        cls.DEBUG = _env("DEBUG", False, _parse_bool)
        cls.LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
        cls.LOG_JSON = _env("LOG_JSON", None, _parse_bool)

        cls.API_HOST = _env("API_HOST", "0.0.0.0")
        cls.API_PORT = _env("API_PORT", 8000, int, 1, 65535)

    @classmethod
    def validate(cls) -> None:
        """
        Load and sanity-check settings once per process.

        Raises:
            ValueError: Production is running with the default SECRET_KEY
        """
        if cls._validated:
            return

        cls.load()

        if cls.LOG_LEVEL not in _LOG_LEVELS:
            _bootstrap_log.warning(f"Invalid LOG_LEVEL {cls.LOG_LEVEL!r}, using INFO")
            cls.LOG_LEVEL = "INFO"

        cls.LOGS_DIR.mkdir(exist_ok=True)
        cls.DATA_DIR.mkdir(exist_ok=True)

        if cls.is_production():
            if cls.SECRET_KEY == _DEFAULT_SECRET_KEY:
                raise ValueError("SECRET_KEY must be set in production")
            if cls.DATABASE_URL.startswith("sqlite"):
                _bootstrap_log.warning("Production is running on SQLite")
            if cls.DEBUG:
                _bootstrap_log.warning("DEBUG is enabled in production")

        cls._validated = True

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT == "production"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT == "testing"

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-secret settings, for the startup log line."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "database_retry_max_attempts": cls.DATABASE_RETRY_MAX_ATTEMPTS,
            "tibiadata_base_url": cls.TIBIADATA_BASE_URL,
            "sync_delay_seconds": cls.SYNC_DELAY_SECONDS,
            "app_version": cls.APP_VERSION,
            "secret_key_is_default": cls.SECRET_KEY == _DEFAULT_SECRET_KEY,
        }


Config.validate()
