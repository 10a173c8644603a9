# =============================================================================
# classroom_core/ui/sync_status.py - Sidebar Sync Indicator
# =============================================================================
"""
Sidebar indicator for the sync layer, fed by
SyncOrchestrator.get_status_display().

Sync failures never raise into the page; they only change the indicator.
Explicit sign-in/sign-up failures are the exception and are shown with
report_auth_failure().
"""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import streamlit as st

from classroom_core.errors import handle_error

# label, icon, accent color
SYNCED = ("Synced", "☁️", "#22c55e")
SYNCING = ("Syncing…", "🔄", "#3b82f6")
LOCAL_ONLY = ("Offline / local-only", "💾", "#94a3b8")


def sync_status_label(status: Dict[str, Any]) -> Tuple[str, str, str]:
    """Pick the indicator variant for a status dict."""
    if not status.get("is_enabled"):
        return LOCAL_ONLY
    if status.get("is_syncing") or status.get("in_flight_keys"):
        return SYNCING
    return SYNCED


def _format_time(value: Optional[str]) -> str:
    if not value:
        return "never"
    try:
        return datetime.fromisoformat(value).strftime("%H:%M:%S")
    except ValueError:
        return value


def render_sync_status(status: Dict[str, Any]) -> None:
    """
    Renders the sync indicator card in the sidebar.

    Args:
        status: Dict from SyncOrchestrator.get_status_display()
    """
    label, icon, color = sync_status_label(status)

    if status.get("is_enabled"):
        detail = f"Last synced {_format_time(status.get('last_success'))}"
        pending = len(status.get("scheduled_keys") or [])
        if pending:
            detail += f" • {pending} pending"
        if status.get("failed_count"):
            detail += f" • {status['failed_count']} failed"
    else:
        detail = "Changes are saved on this device"

    st.sidebar.markdown(
        f"""
        <div style='
            margin: 0.5rem 0;
            padding: 0.75rem;
            border-radius: 10px;
            background: rgba(100, 116, 139, 0.1);
            border: 1px solid {color}33;
        '>
            <div style='display: flex; align-items: center; gap: 0.5rem;'>
                <span style='color: {color}; font-size: 1rem;'>{icon}</span>
                <span style='color: {color}; font-size: 0.8rem; font-weight: 600;'>{label}</span>
            </div>
            <div style='color: #94a3b8; font-size: 0.75rem; margin-top: 0.5rem;'>
                {detail}
            </div>
        </div>
        """,
        unsafe_allow_html=True
    )


def report_auth_failure(error: Exception) -> None:
    """Show an explicit sign-in/sign-up failure to the user."""
    handle_error(error, show_user_message=True)
