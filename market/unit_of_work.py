"""All-or-nothing boundary around one marketplace operation.

A UnitOfWork opens the transaction of every transactional participant (the
store, and any collaborator that supports transactions). Durable participants
are entered last, so their commit runs first and a failing commit still rolls
back the others. If the operation raises:

1. compensating actions registered by the operation run, newest first
2. every participant rolls back its own state

Events recorded during the operation are only handed out after a commit.
"""

import logging
from contextlib import AsyncExitStack
from typing import Any, Awaitable, Callable, Iterable, List

from .events import MarketEvent
from .store import Transactional

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


class UnitOfWork:
    """Transaction scope shared by the components of one operation."""

    def __init__(self, participants: Iterable[Transactional], operation: str = 'operation'):
        self.operation = operation
        # Exit order is reverse entry order: durable commits go first
        self._participants = sorted(participants, key=lambda p: p.durable)
        self._compensations: List[tuple] = []
        self._events: List[MarketEvent] = []
        self._stack = None
        self.committed = False

    def covers(self, resource: Any) -> bool:
        """Whether ``resource`` rolls back together with this unit of work."""
        return any(resource is participant for participant in self._participants)

    def on_rollback(self, description: str, compensation: Compensation) -> None:
        """Register an action that undoes an external side effect."""
        self._compensations.append((description, compensation))

    def record(self, event: MarketEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> List[MarketEvent]:
        return list(self._events) if self.committed else []

    async def __aenter__(self) -> 'UnitOfWork':
        stack = AsyncExitStack()
        await stack.__aenter__()
        try:
            for participant in self._participants:
                await stack.enter_async_context(participant.transaction())
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            await self._compensate()
        stack, self._stack = self._stack, None
        try:
            suppressed = await stack.__aexit__(exc_type, exc, tb)
        except BaseException:
            # Commit itself failed
            if exc_type is None:
                await self._compensate()
            self._events.clear()
            raise
        if exc_type is None:
            self.committed = True
        else:
            self._events.clear()
            logger.debug(f"Rolled back {self.operation}: {exc}")
        return suppressed

    async def _compensate(self) -> None:
        while self._compensations:
            description, compensation = self._compensations.pop()
            try:
                await compensation()
                logger.info(f"Compensated {description} for {self.operation}")
            except Exception as e:
                logger.error(f"Compensation '{description}' failed for {self.operation}: {e}")
