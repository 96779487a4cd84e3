from __future__ import annotations
import os


class ConfigError(ValueError):
    """Raised when an environment setting is out of range."""


def _env_bool(name: str, default: bool) -> bool:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    return val.strip().lower() == "true"


def _env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        # unparsable numbers keep the default, like an unset variable
        return default


_SVC_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _svc_path(path: str) -> str:
    """Relative paths are taken from the svc/ directory, absolute ones are kept."""
    return os.path.join(_SVC_DIR, path)


# HTTP server bind address; an empty host listens on all interfaces
SERVER_HOST = os.getenv("SERVER_HOST", "")
SERVER_PORT = _env_int("SERVER_PORT", 18000)

# Maximum number of normalized messages kept in memory for the dashboard
MAX_DATA_STORE = _env_int("MAX_DATA_STORE", 100)

# Print a one-line summary for every ingested message
ENABLE_LOGGING = _env_bool("ENABLE_LOGGING", True)
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()
ENVIRONMENT = os.getenv("ENVIRONMENT", "dev").lower()

# Raw message archive, log files and the SQLite database live under DATA_DIR
DATA_DIR = _svc_path(os.getenv("DATA_DIR", "data"))
ENABLE_FILE_LOG = _env_bool("ENABLE_FILE_LOG", True)
LOG_FILE = os.path.join(DATA_DIR, "logs", "sensor-logger.log")
DB_FILE = _svc_path(os.getenv("DB_FILE") or os.path.join(DATA_DIR, "sensor_logger.db"))

VALID_LOG_LEVELS = ("debug", "info", "warn", "warning", "error")
VALID_ENVIRONMENTS = ("dev", "development", "prod", "production")


def validate_config() -> None:
    """Check the loaded settings and raise ConfigError on the first bad one."""
    if not 1 <= SERVER_PORT <= 65535:
        raise ConfigError(f"invalid server port: {SERVER_PORT}")
    if MAX_DATA_STORE < 1:
        raise ConfigError(f"MAX_DATA_STORE must be at least 1: {MAX_DATA_STORE}")
    if LOG_LEVEL not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"invalid log level: {LOG_LEVEL}, supported: {', '.join(VALID_LOG_LEVELS)}"
        )
    if ENVIRONMENT not in VALID_ENVIRONMENTS:
        raise ConfigError(
            f"invalid environment: {ENVIRONMENT}, supported: {', '.join(VALID_ENVIRONMENTS)}"
        )


def is_production() -> bool:
    return ENVIRONMENT in ("prod", "production")


def get_server_addr() -> str:
    host = SERVER_HOST or "0.0.0.0"
    return f"{host}:{SERVER_PORT}"
