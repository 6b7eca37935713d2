"""
Dashboard aggregation – runs a role's query plan concurrently and folds
the results into a single snapshot.
"""

import asyncio
import logging
from typing import List, Optional

from hms_console.config import NOTIFICATION_LIMIT
from hms_console.errors import QueryError
from hms_console.models import (
    CurrentSession,
    DashboardSnapshot,
    Failure,
    Notification,
    QueryResult,
    QuerySpec,
    Role,
    Session,
    Success,
)
from hms_console.rbac import capabilities_for

logger = logging.getLogger(__name__)


# ── Fold policy ──────────────────────────────────────────────────────

def fold_count(result: QueryResult) -> int:
    """A failed or empty count folds to zero."""
    if isinstance(result, Success) and result.value is not None:
        return int(result.value)
    return 0


def fold_notifications(result: QueryResult) -> List[Notification]:
    """A failed notification read folds to an empty feed."""
    if isinstance(result, Success) and result.value:
        return [Notification.from_row(row) for row in result.value]
    return []


class DashboardAggregator:
    """Computes DashboardSnapshots against a backend client.

    Uses count_where and query_many from the backend contract.
    """

    def __init__(self, backend, notification_limit: int = NOTIFICATION_LIMIT):
        self._backend = backend
        self._notification_limit = notification_limit

    async def compute(self, role: Optional[Role], session: Optional[Session]) -> DashboardSnapshot:
        plan = capabilities_for(role).dashboard_plan
        if session is None or not plan:
            return DashboardSnapshot(role=role)

        results = await asyncio.gather(
            *(self._run(spec, session.user_id) for spec in plan)
        )

        snapshot = DashboardSnapshot(role=role)
        for spec, result in zip(plan, results):
            if isinstance(result, Failure):
                logger.warning("Dashboard query %s degraded: %s", spec.key, result.reason)
                snapshot.degraded.append(spec.key)
            if spec.kind == "notifications":
                notes = fold_notifications(result)
                snapshot.recent_notifications = notes[: self._notification_limit]
            else:
                snapshot.counters[spec.key] = fold_count(result)
        return snapshot

    async def _run(self, spec: QuerySpec, user_id: str) -> QueryResult:
        filters = spec.bind(user_id)
        try:
            if spec.kind == "notifications":
                rows = await self._backend.query_many(
                    spec.table, filters,
                    order_by="created_at", descending=True,
                    limit=self._notification_limit,
                )
                return Success(rows)
            count = await self._backend.count_where(spec.table, filters, below=spec.below)
            return Success(count)
        except QueryError as e:
            return Failure(str(e))


class DashboardView:
    """Dashboard consumer: recomputes on activation and on role change."""

    def __init__(self, store, aggregator: DashboardAggregator):
        self._store = store
        self._aggregator = aggregator
        self._role = store.current_role
        self._task: Optional[asyncio.Task] = None
        self.snapshot: Optional[DashboardSnapshot] = None
        self._unsubscribe = store.subscribe(self._on_change)

    async def activate(self) -> DashboardSnapshot:
        """Return a snapshot for the current role.

        A recompute already scheduled by a role change is awaited
        instead of starting a second one.
        """
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
            if self.snapshot is not None and self.snapshot.role == self._store.current_role:
                return self.snapshot
        return await self._recompute()

    async def refresh(self) -> DashboardSnapshot:
        return await self._recompute()

    async def _recompute(self) -> DashboardSnapshot:
        current = self._store.get_current()
        self._role = current.role
        self.snapshot = await self._aggregator.compute(current.role, current.session)
        return self.snapshot

    def _on_change(self, current: CurrentSession) -> None:
        if current.loading or current.role == self._role:
            return
        self._role = current.role
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._recompute())
        self._task.add_done_callback(self._task_done)

    @staticmethod
    def _task_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Dashboard recompute failed: %s", error)

    async def wait(self) -> Optional[DashboardSnapshot]:
        """Wait for a scheduled recompute, if any, and return the snapshot."""
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.snapshot

    def close(self) -> None:
        self._unsubscribe()
        if self._task is not None and not self._task.done():
            self._task.cancel()
