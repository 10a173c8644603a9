"""
Auth gate implementations.

SessionAuthGate keeps the signed-in user in a session-state mapping
(st.session_state by default), the same place the Streamlit pages keep
it. SupabaseAuthGate follows a Supabase auth session and re-emits its
state changes.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, MutableMapping, Optional

import streamlit as st
from supabase import AsyncClient

from classroom_core.errors import AuthenticationError
from classroom_core.logging import get_logger

logger = get_logger(__name__)


class AuthEventKind(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    INITIAL_SESSION = "INITIAL_SESSION"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


@dataclass
class AuthEvent:
    """An auth-state change: the kind and the user id after it (None if signed out)."""
    kind: AuthEventKind
    user_id: Optional[str] = None
    email: Optional[str] = None


AuthListener = Callable[[AuthEvent], None]
SignOutHook = Callable[[], Awaitable[None]]


class AuthGate(ABC):
    """Supplies the current user and notifies listeners of sign-in/sign-out."""

    def __init__(self):
        self._listeners: List[AuthListener] = []
        self._sign_out_hooks: List[SignOutHook] = []

    @abstractmethod
    def get_current_user_id(self) -> Optional[str]:
        pass

    def is_authenticated(self) -> bool:
        return self.get_current_user_id() is not None

    def add_listener(self, listener: AuthListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_sign_out_hook(self, hook: SignOutHook) -> None:
        """Register a coroutine function awaited before an explicit sign-out ends the session."""
        if hook not in self._sign_out_hooks:
            self._sign_out_hooks.append(hook)

    def remove_sign_out_hook(self, hook: SignOutHook) -> None:
        if hook in self._sign_out_hooks:
            self._sign_out_hooks.remove(hook)

    async def _run_sign_out_hooks(self) -> None:
        for hook in list(self._sign_out_hooks):
            try:
                await hook()
            except Exception as e:
                logger.error(f"Error in sign-out hook: {e}", exc_info=True)

    def _emit(self, event: AuthEvent) -> None:
        logger.info(f"Auth state changed: {event.kind.value}")
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in auth listener: {e}", exc_info=True)


class SessionAuthGate(AuthGate):
    """
    Auth state held in a session-state mapping.

    Keys used: "authenticated", "user_id", "email".
    """

    def __init__(self, session_state: Optional[MutableMapping[str, Any]] = None):
        super().__init__()
        self.session_state = st.session_state if session_state is None else session_state

    def get_current_user_id(self) -> Optional[str]:
        if not self.session_state.get("authenticated", False):
            return None
        return self.session_state.get("user_id")

    def sign_in(self, user_id: str, email: Optional[str] = None) -> None:
        if not user_id:
            raise AuthenticationError("A user id is required to sign in", email=email)
        self.session_state["authenticated"] = True
        self.session_state["user_id"] = user_id
        self.session_state["email"] = email
        self._emit(AuthEvent(AuthEventKind.SIGNED_IN, user_id, email))

    def sign_out(self) -> None:
        for key in ("authenticated", "user_id", "email"):
            if key in self.session_state:
                del self.session_state[key]
        self._emit(AuthEvent(AuthEventKind.SIGNED_OUT))


class SupabaseAuthGate(AuthGate):
    """
    Auth state taken from a Supabase client.

    Usage:
        gate = SupabaseAuthGate(client)
        await gate.start()
        await gate.sign_in("teacher@school.org", "secret")
    """

    def __init__(self, client: AsyncClient):
        super().__init__()
        self.client = client
        self._user_id: Optional[str] = None
        self._email: Optional[str] = None
        self._subscription = None

    def get_current_user_id(self) -> Optional[str]:
        return self._user_id

    async def start(self) -> None:
        """Load the persisted session and follow future auth changes."""
        try:
            session = await self.client.auth.get_session()
        except Exception as e:
            logger.warning(f"Could not read Supabase session: {e}")
            session = None
        self._set_user(getattr(session, "user", None))
        self._subscription = self.client.auth.on_auth_state_change(self._on_supabase_event)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _set_user(self, user: Any) -> None:
        self._user_id = getattr(user, "id", None) if user else None
        self._email = getattr(user, "email", None) if user else None

    def _on_supabase_event(self, event: Any, session: Any) -> None:
        try:
            kind = AuthEventKind(str(getattr(event, "value", event)))
        except ValueError:
            logger.debug(f"Ignoring auth event {event!r}")
            return

        self._set_user(getattr(session, "user", None) if kind is not AuthEventKind.SIGNED_OUT else None)
        self._emit(AuthEvent(kind, self._user_id, self._email))

    async def sign_in(self, email: str, password: str) -> Optional[str]:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: credentials rejected or auth service unreachable
        """
        try:
            response = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise AuthenticationError(f"Sign-in failed: {e}", email=email)
        self._set_user(response.user)
        return self._user_id

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Optional[str]:
        """Create an account. Raises AuthenticationError on failure."""
        options = {"data": {"full_name": full_name}} if full_name else {}
        try:
            response = await self.client.auth.sign_up(
                {"email": email, "password": password, "options": options}
            )
        except Exception as e:
            raise AuthenticationError(f"Sign-up failed: {e}", email=email)
        return getattr(response.user, "id", None)

    async def sign_out(self) -> None:
        """Flush pending work through the sign-out hooks, then end the Supabase session."""
        # The session token is revoked once Supabase signs out
        await self._run_sign_out_hooks()
        try:
            await self.client.auth.sign_out()
        except Exception as e:
            logger.error(f"Supabase sign-out failed: {e}")
        # Supabase emits SIGNED_OUT on success; emit locally when it could not
        if self._user_id is not None:
            self._set_user(None)
            self._emit(AuthEvent(AuthEventKind.SIGNED_OUT))
