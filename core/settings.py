"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``.

    ``SAVEPLUS_DATA_DIR`` wins over the platform defaults.
    """

    platform_id = (platform or sys.platform).lower()
    environ = dict(env if env is not None else os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    override = environ.get("SAVEPLUS_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return default


APP_NAME = "SavePlus"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, STORAGE_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "offline.db"
CONFIG_PATH = DATA_DIR / "config.json"
SYNC_STATE_PATH = STORAGE_DIR / "sync_state.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class SupabaseSettings:
    url: str = field(default_factory=lambda: _env("SUPABASE_URL", "VITE_SUPABASE_URL"))
    key: str = field(
        default_factory=lambda: _env("SUPABASE_ANON_KEY", "VITE_SUPABASE_PUBLISHABLE_KEY")
    )
    rest_path: str = "rest/v1"
    functions_path: str = "functions/v1"

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)


SUPABASE = SupabaseSettings()


@dataclass(frozen=True)
class OfflineSyncSettings:
    storage_key: str = "mutation_queue"
    max_attempts: int = 5
    deduplicate: bool = False
    lease_ttl_sec: int = 120
    status_poll_interval_sec: int = 5
    periodic_sync_interval_sec: int = 300
    request_timeout_sec: float = 10.0
    probe_timeout_sec: float = 3.0
    mutation_types: tuple[str, ...] = (
        "goal",
        "transaction",
        "budget",
        "pot",
        "debt",
        "automation",
    )
    mutation_actions: tuple[str, ...] = ("create", "update", "delete")


OFFLINE = OfflineSyncSettings()


@dataclass(frozen=True)
class ThemeColors:
    offline_bg: str = "#FEF3C7"
    offline_text: str = "#92400E"
    dead_letter: str = "#EF4444"
    synced: str = "#10B981"


@dataclass(frozen=True)
class UISettings:
    app_title: str = "$ave+"
    theme_mode: str = "system"
    color_scheme_seed: str = "#4F46E5"
    window_min_width: int = 420
    window_min_height: int = 560
    theme: ThemeColors = ThemeColors()


UI = UISettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "STORAGE_DIR",
    "LOG_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "SYNC_STATE_PATH",
    "SYNC_LOG_PATH",
    "SUPABASE",
    "OFFLINE",
    "UI",
    "SupabaseSettings",
    "OfflineSyncSettings",
    "get_default_data_dir",
]
