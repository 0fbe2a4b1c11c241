import datetime
import logging
import os
import re
import sys
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_TOKEN_EXPIRY, STORAGE_BACKENDS

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=False,
        case_sensitive=False,
        extra="ignore",
    )

    logging_level: str = "INFO"
    timezone: str = "UTC"

    # Persistence: "sql" (SQLModel engine on database_url) or "memory" (process-local)
    storage_backend: str = "sql"
    database_url: str | None = Field(default=None, validate_default=True)

    # Token signing; the service refuses to start without a secret
    jwt_secret: str | None = Field(default=None, validate_default=True)
    token_expiry: str = DEFAULT_TOKEN_EXPIRY

    cors_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 3000
    debug_mode: bool = False

    @field_validator("token_expiry")
    @classmethod
    def validate_token_expiry(cls, v, info):
        if v is None or (isinstance(v, str) and v.strip() == ""):
            raise ValueError(f"{info.field_name} cannot be None or empty string")
        try:
            parse_interval(str(v))
            return v
        except Exception as exc:
            raise ValueError(f"Invalid interval: {exc}") from exc

    @field_validator("storage_backend", mode="before")
    @classmethod
    def validate_storage_backend(cls, v):
        backend = str(v or "").strip().lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of: {', '.join(sorted(STORAGE_BACKENDS))}")
        return backend

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if int(v) < 1 or int(v) > 65535:
            raise ValueError("port must be between 1 and 65535")
        return int(v)

    @field_validator("jwt_secret", "database_url", mode="before")
    @classmethod
    def _prefer_docker_secret(cls, v, info):
        """
        Prefer Docker secrets mounted at /run/secrets/<NAME> over environment variables.
        Tries secret files with the field name upper-cased and as-is.
        """
        secret = None
        try:
            candidates = [info.field_name.upper(), info.field_name]
            for name in candidates:
                path = f"/run/secrets/{name}"
                if os.path.isfile(path):
                    with open(path, "r", encoding="utf-8") as f:
                        data = f.read().strip()
                    if data:
                        secret = data
                        break
        except Exception:
            secret = None
        if secret:
            logger.debug("Using docker secret for %s", info.field_name)
            return secret
        return v

    @model_validator(mode="after")
    def require_runtime_settings(self):
        """Secrets and the database address must be explicit; there are no fallbacks."""
        if not self.jwt_secret or not self.jwt_secret.strip():
            raise ValueError("jwt_secret must be set")
        if self.storage_backend == "sql" and not (self.database_url or "").strip():
            raise ValueError("database_url must be set when storage_backend is 'sql'")
        return self

    @property
    def token_expiry_seconds(self) -> int:
        return parse_interval(self.token_expiry)

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def load_settings() -> Settings:
    try:
        settings = Settings()
        return settings
    except ValidationError as e:
        logger.error("Configuration error:")
        for err in e.errors():
            logger.error(" - %s: %s", err.get('loc'), err.get('msg'))
        sys.exit(1)


class LocalISOFormatter(logging.Formatter):
    def __init__(self, fmt=None, datefmt=None, tz_name: str | None = None):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._tz = None
        self._tz_name = tz_name
        if tz_name:
            try:
                self._tz = ZoneInfo(tz_name)
            except ZoneInfoNotFoundError:
                self._tz = None

    def formatTime(self, record, datefmt=None):
        if self._tz is not None:
            dt = datetime.datetime.fromtimestamp(record.created, tz=self._tz)
        else:
            dt = datetime.datetime.fromtimestamp(record.created).astimezone()
        return dt.isoformat(timespec='milliseconds')


def configure_logging(settings: Settings | None = None):
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        tzname = getattr(settings, 'timezone', None) if settings is not None else None
        formatter = LocalISOFormatter('%(asctime)s %(levelname)s %(name)s %(message)s', tz_name=tzname)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    if settings is not None:
        lvl = str(getattr(settings, 'logging_level', 'INFO')).strip().upper()
        numeric = getattr(logging, lvl, None)
        if not isinstance(numeric, int):
            root.setLevel(logging.INFO)
        else:
            root.setLevel(numeric)
    else:
        root.setLevel(logging.INFO)

    logger.info("Logging configured; root level=%s", logging.getLevelName(root.level))

    noisy = ['httpx', 'httpcore', 'multipart', 'passlib']
    for n in noisy:
        logging.getLogger(n).setLevel(logging.WARNING)

    for logger_name in ['uvicorn', 'uvicorn.error', 'uvicorn.access']:
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    # SQL statements are only echoed at DEBUG
    if root.level <= logging.DEBUG:
        logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO)
    else:
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


_INTERVAL_RE = re.compile(
    r"([+-]?\d+)\s*(s|sec|secs|second|seconds|m|min|mins|minute|minutes|h|hr|hrs|hour|hours|d|day|days)?"
)


def parse_interval(interval: str) -> int:
    """Parse an interval like '90s', '15min', '24h' or '1d' into seconds."""
    if not interval:
        raise ValueError("Empty interval")
    s = str(interval).strip().lower()

    m = _INTERVAL_RE.fullmatch(s)
    if not m:
        raise ValueError(f"Invalid interval '{interval}'")
    raw_num = m.group(1)
    num = int(raw_num)
    unit = m.group(2) or "s"

    if raw_num.startswith('-') or num < 0:
        raise ValueError("Interval must be non-negative")
    if num == 0:
        raise ValueError("Interval must be positive")

    if unit.startswith("s"):
        return num
    if unit.startswith("m"):
        return num * 60
    if unit.startswith("h"):
        return num * 3600
    if unit.startswith("d"):
        return num * 86400
    return num
