"""
Access guard evaluated on every protected navigation.
"""

import asyncio
import logging
from typing import Iterable, Optional

from hms_console.config import LOGIN_ROUTE
from hms_console.models import (
    CurrentSession,
    GuardDecision,
    GuardResult,
    Role,
    Session,
)
from hms_console.rbac import access_allowed, allowed_roles_for

logger = logging.getLogger(__name__)

PENDING = GuardResult(GuardDecision.PENDING)
ALLOW = GuardResult(GuardDecision.ALLOW)
DENY = GuardResult(GuardDecision.DENY, redirect_to=LOGIN_ROUTE)


def evaluate_access(session: Optional[Session], role: Optional[Role],
                    loading: bool, allowed_roles: Iterable[Role],
                    route_id: str = "") -> GuardResult:
    """Pure gate: pending while loading, deny without a session or role match."""
    if loading:
        return PENDING
    if session is None:
        return DENY
    if not access_allowed(role, route_id, allowed_roles):
        return DENY
    return ALLOW


def evaluate_route(current: CurrentSession, route_id: str) -> GuardResult:
    """Evaluate *route_id* against the registry; unregistered routes are denied."""
    allowed = allowed_roles_for(route_id)
    if allowed is None:
        if current.loading:
            return PENDING
        logger.debug("Denied unregistered route %s", route_id)
        return DENY
    return evaluate_access(current.session, current.role, current.loading,
                           allowed, route_id)


class ProtectedRoute:
    """Guard consumer for one route, bound to a session store.

    resolve() waits until the store has left the loading state; close()
    abandons the wait so a torn-down view never receives a result.
    """

    def __init__(self, store, route_id: str):
        self.route_id = route_id
        self._store = store
        self._waiter: Optional[asyncio.Future] = None
        self._closed = False
        self._unsubscribe = store.subscribe(self._on_change)

    def check(self) -> GuardResult:
        return evaluate_route(self._store.get_current(), self.route_id)

    async def resolve(self) -> Optional[GuardResult]:
        """Return the final decision, or None if the route was closed meanwhile."""
        if self._closed:
            return None
        result = self.check()
        if result.decision is not GuardDecision.PENDING:
            return result
        self._waiter = asyncio.get_running_loop().create_future()
        try:
            return await self._waiter
        except asyncio.CancelledError:
            if self._closed:
                return None
            raise
        finally:
            self._waiter = None

    def _on_change(self, current: CurrentSession) -> None:
        if self._waiter is None or self._waiter.done():
            return
        result = evaluate_route(current, self.route_id)
        if result.decision is not GuardDecision.PENDING:
            self._waiter.set_result(result)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()
