# =============================================================================
# classroom_core/config.py
# Runtime Settings for Local Storage and Supabase Sync
# =============================================================================
"""
Settings are read from Streamlit secrets when available:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
    table = "user_data"

and fall back to environment variables (SUPABASE_URL, SUPABASE_KEY,
CLASSROOM_SYNC_DEBOUNCE, CLASSROOM_SYNC_INTERVAL, CLASSROOM_DB_PATH,
CLASSROOM_LOG_LEVEL, CLASSROOM_LOG_TO_FILE).
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import streamlit as st

from classroom_core.errors import ConfigurationError
from classroom_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path("local_data") / "classroom.db"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SyncSettings:
    """Configuration for the local store and the Supabase mirror."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    table_name: str = "user_data"
    debounce_seconds: float = 1.0       # Quiet period before a key is pushed
    full_sync_interval: float = 300.0   # Safety-net full sync; 0 disables
    db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    log_to_file: bool = False           # Also write logs/app_YYYY-MM-DD.log

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets() -> Dict[str, Any]:
    """Return the [supabase] secrets section, or {} when none is configured."""
    try:
        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # st.secrets raises when no secrets.toml exists at all
        logger.debug(f"Streamlit secrets unavailable: {e}")
    return {}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}",
            config_key=name,
            expected_type="float",
        )


def _log_level_env() -> str:
    level = os.getenv("CLASSROOM_LOG_LEVEL", "INFO").upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(
            f"CLASSROOM_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}",
            config_key="CLASSROOM_LOG_LEVEL",
            expected_type="str",
        )
    return level


def load_settings() -> SyncSettings:
    """
    Build SyncSettings from Streamlit secrets, then the environment.

    Returns:
        SyncSettings (remote credentials may be missing: local-only mode)
    """
    secrets = _read_secrets()

    settings = SyncSettings(
        supabase_url=secrets.get("url") or os.getenv("SUPABASE_URL"),
        supabase_key=secrets.get("key") or os.getenv("SUPABASE_KEY"),
        table_name=secrets.get("table") or os.getenv("CLASSROOM_SYNC_TABLE", "user_data"),
        debounce_seconds=_float_env("CLASSROOM_SYNC_DEBOUNCE", 1.0),
        full_sync_interval=_float_env("CLASSROOM_SYNC_INTERVAL", 300.0),
        db_path=Path(os.getenv("CLASSROOM_DB_PATH", str(DEFAULT_DB_PATH))),
        log_level=_log_level_env(),
        log_to_file=os.getenv("CLASSROOM_LOG_TO_FILE", "").lower() in ("1", "true", "yes"),
    )

    if not settings.remote_configured:
        logger.info("Supabase credentials not configured, running local-only")

    return settings
