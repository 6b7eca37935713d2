"""
Session store – the single source of truth for who is logged in and as
what role.

State machine::

    Uninitialized -> Checking -> Authenticated(role) | Unauthenticated
    Authenticated -> Checking (role refresh) | Unauthenticated

Every transition that waits on the backend is tagged with a generation
number. A result whose generation is no longer current is dropped, so
the most recent event always wins regardless of completion order.
"""

import logging
from typing import Callable, List, Optional, Union

from hms_console.config import PROFILES_TABLE
from hms_console.errors import ConsoleError, ProfileError, QueryError
from hms_console.guard import evaluate_route
from hms_console.models import (
    AuthState,
    CurrentSession,
    Identity,
    Role,
    Session,
    UserProfile,
)

logger = logging.getLogger(__name__)

Listener = Callable[[CurrentSession], None]
Notice = Callable[[str, str], None]


def log_notice(level: str, message: str) -> None:
    """Default notice sink: non-fatal notices go to the log."""
    logger.log(logging.WARNING if level == "error" else logging.INFO, message)


class SessionStore:
    """Process-wide session state over an injectable backend client.

    The backend must provide the session half of the collaborator
    contract: authenticate, create_identity, get_current_session,
    subscribe_session_changes, invalidate_session, query_one and
    insert_row (all coroutines except subscribe_session_changes).
    """

    def __init__(self, backend, on_notice: Optional[Notice] = None):
        self._backend = backend
        self._on_notice = on_notice or log_notice
        self._current = CurrentSession(AuthState.UNINITIALIZED)
        self._generation = 0
        self._listeners: List[Listener] = []
        self._unsubscribe_backend: Optional[Callable[[], None]] = None
        self._closed = False

    # ── Read side ────────────────────────────────────────────────────

    def get_current(self) -> CurrentSession:
        return self._current

    @property
    def current_session(self) -> Optional[Session]:
        return self._current.session

    @property
    def current_role(self) -> Optional[Role]:
        return self._current.role

    @property
    def generation(self) -> int:
        return self._generation

    def has_access(self, route_id: str) -> bool:
        return evaluate_route(self._current, route_id).allowed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every committed state; returns an unsubscribe."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> CurrentSession:
        """Subscribe to backend session changes, then check for a session."""
        if self._unsubscribe_backend is None:
            self._unsubscribe_backend = self._backend.subscribe_session_changes(
                self._on_session_change
            )
        return await self.revalidate()

    async def revalidate(self) -> CurrentSession:
        """Re-read the backend session and reload the role."""
        generation = self._begin()
        self._commit(generation, AuthState.CHECKING, self._current.session)
        try:
            session = await self._backend.get_current_session()
        except ConsoleError as e:
            logger.warning("Error checking user session: %s", e)
            session = None
        await self._apply(session, generation)
        return self._current

    def close(self) -> None:
        """Tear down: drop backend subscription, listeners and in-flight results."""
        self._closed = True
        self._generation += 1
        if self._unsubscribe_backend is not None:
            self._unsubscribe_backend()
            self._unsubscribe_backend = None
        self._listeners.clear()

    async def _on_session_change(self, session: Optional[Session]) -> None:
        await self._apply(session, self._begin())

    # ── Auth operations ──────────────────────────────────────────────

    async def sign_up(self, email: str, password: str, role: Union[Role, str],
                      first_name: str, last_name: str) -> Identity:
        """Create an identity and its profile. Does not sign in.

        An identity whose profile insert fails is left in place and
        reported as ProfileError.
        """
        parsed = Role.parse(role)
        if parsed is None:
            raise ValueError(f"Unknown role '{role}'.")

        identity = await self._backend.create_identity(
            email, password, {"first_name": first_name, "last_name": last_name}
        )
        try:
            await self._backend.insert_row(PROFILES_TABLE, {
                "user_id": identity.user_id,
                "role": parsed.value,
                "first_name": first_name,
                "last_name": last_name,
                "email": email,
            })
        except QueryError as e:
            logger.error("Identity %s created without a profile: %s", identity.user_id, e)
            raise ProfileError(f"Account created but profile could not be saved: {e}") from e
        return identity

    async def sign_in(self, email: str, password: str) -> CurrentSession:
        """Authenticate and load the role. AuthError leaves state untouched.

        Returns the outcome of this sign-in even when a newer session
        event has since replaced the store's state.
        """
        session = await self._backend.authenticate(email, password)
        current = self._current
        if current.state is AuthState.AUTHENTICATED and current.session == session:
            # the backend's change notification already loaded the profile
            return current

        generation = self._begin()
        self._commit(generation, AuthState.CHECKING, session)
        profile = await self._load_profile(session.user_id)
        self._commit(generation, AuthState.AUTHENTICATED, session, profile)
        return CurrentSession(
            state=AuthState.AUTHENTICATED,
            session=session,
            role=profile.role if profile else None,
            profile=profile,
        )

    async def sign_out(self) -> None:
        """Best-effort remote invalidation; local state always clears."""
        if self._current.state is AuthState.UNAUTHENTICATED:
            return
        try:
            await self._backend.invalidate_session()
        except Exception as e:
            logger.warning("Error signing out: %s", e)
            self._on_notice("error", "Error signing out")
        self._commit(self._begin(), AuthState.UNAUTHENTICATED)

    # ── Transitions ──────────────────────────────────────────────────

    async def _apply(self, session: Optional[Session], generation: int) -> None:
        if session is None:
            self._commit(generation, AuthState.UNAUTHENTICATED)
            return
        if not self._commit(generation, AuthState.CHECKING, session):
            return
        profile = await self._load_profile(session.user_id)
        self._commit(generation, AuthState.AUTHENTICATED, session, profile)

    async def _load_profile(self, user_id: str) -> Optional[UserProfile]:
        try:
            row = await self._backend.query_one(PROFILES_TABLE, {"user_id": user_id})
        except QueryError as e:
            logger.warning("Profile lookup failed for %s: %s", user_id, e)
            return None
        if row is None:
            logger.info("No profile row for user %s", user_id)
            return None
        return UserProfile.from_row(row)

    def _begin(self) -> int:
        self._generation += 1
        return self._generation

    def _commit(self, generation: int, state: AuthState,
                session: Optional[Session] = None,
                profile: Optional[UserProfile] = None) -> bool:
        if self._closed or generation != self._generation:
            logger.debug("Discarding stale session result (generation %d, current %d)",
                         generation, self._generation)
            return False
        self._current = CurrentSession(
            state=state,
            session=session,
            role=profile.role if profile else None,
            profile=profile,
        )
        for listener in list(self._listeners):
            listener(self._current)
        return True
