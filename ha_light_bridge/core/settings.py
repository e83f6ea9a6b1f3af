import json
import os
from pathlib import Path
from threading import RLock

from pydantic import ValidationError

from ha_light_bridge.core.errors import ConfigError
from ha_light_bridge.models.schemas import BridgeConfig


APP_NAME = "ha_light_bridge"
APP_VERSION = "2.0.0"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE_PATH = PROJECT_ROOT / ".env"
DEFAULT_CONFIG_FILE = PROJECT_ROOT / "config.json"


def load_local_env(env_path: Path) -> None:
    if not env_path.exists():
        return

    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]

        os.environ.setdefault(key, value)


load_local_env(ENV_FILE_PATH)


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_path(name: str, default: str) -> Path:
    raw = os.getenv(name, default)
    path = Path(raw)
    if path.is_absolute():
        return path
    return (Path.cwd() / path).resolve()


def env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    if not value:
        return default
    return value


def split_patterns(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


HA_TIMEOUT_SEC = env_float("HA_TIMEOUT_SEC", 8.0)
HA_WS_TIMEOUT_SEC = env_float("HA_WS_TIMEOUT_SEC", 8.0)
HA_HTTP_MAX_KEEPALIVE = max(1, env_int("HA_HTTP_MAX_KEEPALIVE", 5))
HA_HTTP_MAX_CONNECTIONS = max(HA_HTTP_MAX_KEEPALIVE, env_int("HA_HTTP_MAX_CONNECTIONS", 10))
HA_HTTP_KEEPALIVE_EXPIRY_SEC = env_float("HA_HTTP_KEEPALIVE_EXPIRY_SEC", 30.0)

APP_DIR = Path(__file__).resolve().parent.parent
HA_LOG_PATH = env_path("HA_LOG_PATH", str(APP_DIR / "logs" / "operations.jsonl"))
HA_LOG_MAX_BYTES = env_int("HA_LOG_MAX_BYTES", 5 * 1024 * 1024)
HA_LOG_BACKUP_COUNT = max(1, env_int("HA_LOG_BACKUP_COUNT", 10))
HA_LOG_QUEUE_MAX = max(100, env_int("HA_LOG_QUEUE_MAX", 5000))

HA_BRIDGE_HOST = env_str("HA_BRIDGE_HOST", "0.0.0.0")
HA_BRIDGE_PORT = env_int("HA_BRIDGE_PORT", 8099)

log_lock = RLock()


def _config_from_env() -> BridgeConfig | None:
    token = env_str("HA_TOKEN", "")
    url = env_str("HA_URL", "") or env_str("HA_BASE_URL", "")
    if not token or not url:
        return None
    return BridgeConfig(
        ha_token=token,
        ha_url=url,
        entity_filter=split_patterns(os.getenv("HA_ENTITY_FILTER")),
        entity_blacklist=split_patterns(os.getenv("HA_ENTITY_BLACKLIST")),
        source="env",
    )


def resolve_config_file() -> Path:
    raw = os.getenv("CONFIG_FILE", "").strip()
    if not raw:
        return DEFAULT_CONFIG_FILE
    return env_path("CONFIG_FILE", raw)


def _config_from_file(path: Path) -> BridgeConfig:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as ex:
        raise ConfigError(f"failed to read config file {path}: {ex}") from ex

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as ex:
        raise ConfigError(f"failed to parse config file {path}: {ex}") from ex
    if not isinstance(data, dict):
        raise ConfigError(f"failed to parse config file {path}: expected a JSON object")

    try:
        return BridgeConfig.model_validate({**data, "source": str(path)})
    except ValidationError as ex:
        raise ConfigError(f"invalid config file {path}: {ex.errors()[0].get('msg', ex)}") from ex


def load_bridge_config() -> BridgeConfig:
    """Environment wins when it carries both token and URL, else the JSON config file."""
    config = _config_from_env()
    if config is None:
        config = _config_from_file(resolve_config_file())

    if not config.ha_token:
        raise ConfigError(f"ha_token is empty (source: {config.source})")
    if not config.ha_url:
        raise ConfigError(f"ha_url is empty (source: {config.source})")
    return config
