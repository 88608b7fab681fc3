from __future__ import annotations

import os
from datetime import timedelta, timezone
from pathlib import Path

import platformdirs
import yaml
from dotenv import load_dotenv

APP_NAME = "miele"
KEYRING_SERVICE = "miele"
KEYRING_USERNAME = "supabase-api-key"


def _resolve_config_dir_for_dotenv() -> Path | None:
    """Resolve config dir for .env loading without depending on env vars from .env itself.

    Only checks sources available before .env is loaded (env var set in the
    shell, dev layout). Returns None if only platformdirs would resolve and
    that directory does not exist yet.
    """
    from_env = os.environ.get("MIELE_CONFIG_DIR")
    if from_env:
        return Path(from_env)
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / "config"
    if candidate.is_dir():
        return candidate
    pd = Path(platformdirs.user_config_dir(APP_NAME))
    if pd.is_dir():
        return pd
    return None


# Load .env: cwd first (highest priority), then config dir (won't override)
load_dotenv()
_cfg_dir = _resolve_config_dir_for_dotenv()
if _cfg_dir is not None:
    load_dotenv(_cfg_dir / ".env")


def _resolve_dir(env_var: str, default_subdir: str, kind: str) -> Path:
    """Resolve a directory from env var, repo layout, or platform default.

    Priority: 1) env var, 2) dev repo layout, 3) platformdirs user directory.
    """
    from_env = os.environ.get(env_var)
    if from_env:
        return Path(from_env)
    # Development layout: src/miele/config.py -> ../../.. = project root
    project_root = Path(__file__).resolve().parent.parent.parent
    candidate = project_root / default_subdir
    if candidate.is_dir():
        return candidate
    if kind == "config":
        return Path(platformdirs.user_config_dir(APP_NAME))
    return Path(platformdirs.user_data_dir(APP_NAME))


def get_config_dir() -> Path:
    """Resolve config directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("MIELE_CONFIG_DIR", "config", kind="config")


def get_data_dir() -> Path:
    """Resolve data directory. Re-evaluated on each call to pick up env changes."""
    return _resolve_dir("MIELE_DATA_DIR", "data", kind="data")


BRT = timezone(timedelta(hours=-3))

BACKENDS = ("supabase", "local")

DEFAULT_PAGE_SIZE = 20
DEFAULT_REMOTE_TIMEOUT = 30.0
HTTP_TIMEOUT = 30

_TRUTHY = frozenset({"1", "true", "yes", "sim", "on"})


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def get_backend() -> str:
    """Return the configured remote backend (``supabase`` or ``local``)."""
    backend = os.environ.get("MIELE_BACKEND", "supabase").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"MIELE_BACKEND invalido: '{backend}'. Use {', '.join(BACKENDS)}.")
    return backend


def get_supabase_url() -> str:
    """Return the Supabase project URL from SUPABASE_URL.

    Raises KeyError if the variable is not set.
    """
    return os.environ["SUPABASE_URL"].rstrip("/")


def get_page_size() -> int:
    size = int(os.environ.get("MIELE_PAGE_SIZE", DEFAULT_PAGE_SIZE))
    if size < 1:
        raise ValueError(f"MIELE_PAGE_SIZE invalido: {size}. Use um valor >= 1.")
    return size


def get_remote_timeout() -> float:
    """Seconds an Entity Store waits on one accessor call before failing."""
    return float(os.environ.get("MIELE_REMOTE_TIMEOUT", DEFAULT_REMOTE_TIMEOUT))


def honor_soft_delete() -> bool:
    return _env_bool("MIELE_HONOR_SOFT_DELETE")


def get_access_token() -> str | None:
    """Return the logged-in user's JWT, if one was provided."""
    return os.environ.get("MIELE_ACCESS_TOKEN") or None


# --- Keyring helpers ---


def _get_keyring_api_key() -> str | None:
    """Try to get the API key from the OS keyring.

    Returns None on any failure (no backend, not stored, dbus errors, etc.).
    """
    try:
        import keyring

        return keyring.get_password(KEYRING_SERVICE, KEYRING_USERNAME)
    except Exception:
        return None


def _set_keyring_api_key(api_key: str) -> bool:
    """Store the API key in the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.set_password(KEYRING_SERVICE, KEYRING_USERNAME, api_key)
        return True
    except Exception:
        return False


def _delete_keyring_api_key() -> bool:
    """Remove the API key from the OS keyring. Returns True on success."""
    try:
        import keyring

        keyring.delete_password(KEYRING_SERVICE, KEYRING_USERNAME)
        return True
    except Exception:
        return False


def get_api_key() -> str:
    """Return the Supabase API key.

    Priority: 1) SUPABASE_KEY env var, 2) OS keyring.
    Raises KeyError if neither source has the key.
    """
    key = os.environ.get("SUPABASE_KEY")
    if key is not None:
        return key
    key = _get_keyring_api_key()
    if key is not None:
        return key
    raise KeyError("SUPABASE_KEY")


# --- YAML settings ---


def _settings_path() -> Path:
    return get_config_dir() / "settings.yaml"


def load_yaml(path: Path) -> dict:
    """Load and parse a YAML file, returning the top-level dict."""
    return yaml.safe_load(path.read_text()) or {}


def load_settings() -> dict:
    """Load local preferences from config/settings.yaml ({} when absent)."""
    path = _settings_path()
    if not path.exists():
        return {}
    return load_yaml(path)


def save_settings(data: dict) -> Path:
    """Save local preferences to config/settings.yaml (atomic write)."""
    path = _settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(yaml.dump(data, default_flow_style=False, allow_unicode=True))
    os.replace(tmp, path)
    return path
