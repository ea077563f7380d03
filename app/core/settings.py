import os
from pathlib import Path
from threading import RLock


APP_NAME = "ha_entity_insight"
APP_VERSION = "0.1.0"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE_PATH = PROJECT_ROOT / ".env"


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


HA_BASE_URL = env_str("HA_BASE_URL", "http://homeassistant.local:8123").rstrip("/")
HA_TOKEN = os.getenv("HA_TOKEN", "")
HA_TIMEOUT_SEC = env_float("HA_TIMEOUT_SEC", 6.0)
HA_CONTEXT_TIMEOUT_SEC = env_float("HA_CONTEXT_TIMEOUT_SEC", 8.0)
HA_WS_MAX_SIZE = max(1_000_000, env_int("HA_WS_MAX_SIZE", 16_000_000))

# Upper bound for a whole analysis request, collaborator calls included.
HA_ANALYSIS_TIMEOUT_SEC = env_float("HA_ANALYSIS_TIMEOUT_SEC", 60.0)
HA_HISTORY_WINDOW_HOURS = max(1, env_int("HA_HISTORY_WINDOW_HOURS", 24))
HA_HISTORY_MAX_ENTRIES = max(1, env_int("HA_HISTORY_MAX_ENTRIES", 20))

APP_DIR = Path(__file__).resolve().parent.parent
HA_LOG_PATH = env_path("HA_LOG_PATH", str(APP_DIR / "logs" / "operations.jsonl"))
HA_LOG_MAX_BYTES = env_int("HA_LOG_MAX_BYTES", 5 * 1024 * 1024)
HA_LOG_BACKUP_COUNT = max(1, env_int("HA_LOG_BACKUP_COUNT", 10))

log_lock = RLock()
