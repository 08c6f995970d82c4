import os

from dotenv import find_dotenv, load_dotenv

from homebank_bridge.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "DB_PATH",
    "DB_BUSY_TIMEOUT_MS",
    "SESSION_SECRET",
    "SESSION_MAX_AGE",
    "SESSION_COOKIE_SECURE",
    "ALLOW_REGISTRATION",
    "BCRYPT_ROUNDS",
    "EXPORT_LOG_MAX_BYTES",
    "DEBUG",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

DEV_SESSION_SECRET = "dev-secret-do-not-use-in-production"


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    return os.path.join(os.getcwd(), CONFIG_FILENAME)


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] and raw_value[0] in {'"', "'"}:
        return raw_value[1:-1]
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    """Read ``KEY: value`` lines, ignoring blanks and ``#`` comments."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            value = _unquote_value(raw_value.strip())
            if key and value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _CONFIG_FILE_PATH = _resolve_config_path()
    file_values = read_config_file(_CONFIG_FILE_PATH)
    for key in _CONFIG_KEYS:
        if key not in os.environ and key in file_values:
            os.environ[key] = file_values[key]


def get_config_path() -> str | None:
    return _CONFIG_FILE_PATH


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


def get_data_dir() -> str:
    return os.getenv("DATA_DIR", "data")


def get_db_path() -> str:
    return os.getenv("DB_PATH") or os.path.join(get_data_dir(), "data.db")


def get_session_secret() -> str:
    secret = os.getenv("SESSION_SECRET")
    if not secret:
        logger.warning("[ENV] SESSION_SECRET not set; using the development secret.")
        return DEV_SESSION_SECRET
    return secret


def registration_allowed_by_env() -> bool:
    return get_env_bool("ALLOW_REGISTRATION", False)


def is_debug() -> bool:
    return get_env_bool("DEBUG", False)


_SENSITIVE_ENV_KEYS = ("KEY", "TOKEN", "SECRET", "PASSWORD")


def _mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not any(marker in name.upper() for marker in _SENSITIVE_ENV_KEYS):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Logging configured environment variables (masked where needed).")
    logger.info("[ENV] Config file: %s", get_config_path() or "<none>")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else _mask_env_value(key, raw_value)
        logger.info("[ENV] %s=%s", key, value)


DEFAULT_SESSION_MAX_AGE = 7 * 24 * 60 * 60
DEFAULT_BCRYPT_ROUNDS = 12
DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_EXPORT_LOG_MAX_BYTES = 10 * 1024 * 1024


load_environment()
