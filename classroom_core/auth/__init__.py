"""
Authentication state for the classroom platform.

The sync layer only needs three things from here: whether someone is
signed in, their user id, and a notification when that changes.
"""

from .auth_gate import (
    AuthEvent,
    AuthEventKind,
    AuthGate,
    SessionAuthGate,
    SupabaseAuthGate,
)

__all__ = [
    "AuthEvent",
    "AuthEventKind",
    "AuthGate",
    "SessionAuthGate",
    "SupabaseAuthGate",
]
