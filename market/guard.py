"""Serialization and reentrancy protection for mutating operations.

Every mutating marketplace call passes through ``SettlementGuard.enter``:

- calls from unrelated tasks queue on one lock, so operations never
  interleave
- a mutating call made from inside a running operation (a collaborator
  calling back into the marketplace, directly or from a task it spawned)
  is rejected with ReentrantCallError before it touches any state
- once an operation exits, work it spawned is an ordinary caller again
"""

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Optional

from .exceptions import ReentrantCallError

logger = logging.getLogger(__name__)


class GuardState(enum.Enum):
    IDLE = 'idle'
    BUSY = 'busy'
    IN_SETTLEMENT = 'in_settlement'


class _Run:
    """Marker for one execution of an operation."""

    __slots__ = ('operation',)

    def __init__(self, operation: str):
        self.operation = operation


class SettlementGuard:
    """Single marketplace-wide in-settlement flag plus an operation lock."""

    def __init__(self):
        self.state = GuardState.IDLE
        self._lock = asyncio.Lock()
        self._active: Optional[_Run] = None
        # Run started in this context; inherited by child tasks
        self._running: ContextVar[Optional[_Run]] = ContextVar(
            f"settlement_guard_{id(self)}", default=None
        )

    @property
    def in_settlement(self) -> bool:
        return self.state is GuardState.IN_SETTLEMENT

    def _live_run(self) -> Optional[_Run]:
        run = self._running.get()
        # Child tasks keep the marker after the run exits; only the live one counts
        if run is not None and run is self._active:
            return run
        return None

    @property
    def current_operation(self) -> Optional[str]:
        """Operation still running in the caller's context, if any."""
        run = self._live_run()
        return run.operation if run else None

    def check(self, operation: str) -> None:
        """Reject ``operation`` if it re-enters a running operation."""
        run = self._live_run()
        if run is not None:
            logger.warning(f"Rejected reentrant {operation} during {run.operation}")
            raise ReentrantCallError(operation)

    @asynccontextmanager
    async def enter(self, operation: str, settlement: bool = False):
        """Run one mutating operation.

        Args:
            operation: Name used in errors and logs
            settlement: Whether this call is a purchase; sets the flag
        """
        self.check(operation)
        async with self._lock:
            run = _Run(operation)
            token = self._running.set(run)
            self._active = run
            self.state = GuardState.IN_SETTLEMENT if settlement else GuardState.BUSY
            try:
                yield self
            finally:
                self.state = GuardState.IDLE
                self._active = None
                self._running.reset(token)
