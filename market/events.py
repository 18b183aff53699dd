"""Domain events emitted by marketplace operations.

Events are collected while an operation runs and published only once its
unit of work commits, so subscribers never see an aborted change.
"""

import inspect
import logging
from dataclasses import dataclass, asdict
from collections import deque
from typing import Any, Callable, Deque, Dict, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MarketEvent:
    """Base class for marketplace events."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {'event': self.name, **asdict(self)}


@dataclass(frozen=True)
class Minted(MarketEvent):
    asset_id: int
    to_address: str
    uri: str


@dataclass(frozen=True)
class Listed(MarketEvent):
    listing_id: int
    asset_id: int
    seller_address: str
    price: int


@dataclass(frozen=True)
class Sold(MarketEvent):
    listing_id: int
    asset_id: int
    buyer_address: str
    seller_address: str
    price: int


@dataclass(frozen=True)
class Cancelled(MarketEvent):
    listing_id: int
    asset_id: int


Subscriber = Callable[[MarketEvent], Any]


class EventBus:
    """Fans committed events out to subscribers."""

    def __init__(self, history_size: int = 1000):
        self._subscribers: List[Subscriber] = []
        self.history: Deque[MarketEvent] = deque(maxlen=history_size)

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback; coroutine functions are awaited."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    async def publish(self, events: List[MarketEvent]) -> None:
        for event in events:
            logger.info(f"{event.name}: {asdict(event)}")
            self.history.append(event)
            for callback in list(self._subscribers):
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    # Already committed, keep notifying the rest
                    logger.error(f"Event subscriber {callback!r} failed on {event.name}: {e}")
