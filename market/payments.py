"""Payment sink interface and an in-process ledger.

The marketplace pays sellers and the fee recipient through a PaymentSink.
Sending funds may run code owned by the recipient, which is the reentrancy
hazard settlement guards against.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple

from .exceptions import PaymentRejectedError
from .store.memory import SnapshotTransactionMixin

logger = logging.getLogger(__name__)

# Called as hook(to_address, amount) after funds are credited
PaymentHook = Callable[[str, int], Awaitable[None]]


class PaymentSink(ABC):
    """Destination for funds leaving the marketplace."""

    @abstractmethod
    async def send(self, to_address: str, amount: int) -> None:
        """Deliver ``amount`` to ``to_address``.

        Raises:
            PaymentRejectedError: If the recipient refuses the funds
        """

    @abstractmethod
    async def reclaim(self, from_address: str, amount: int) -> None:
        """Take back a previous payment when a settlement is unwound."""


class InMemoryPaymentLedger(SnapshotTransactionMixin, PaymentSink):
    """Tracks funds received per address in process memory."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._receivers: Dict[str, PaymentHook] = {}

    def _snapshot(self) -> Dict[str, int]:
        return dict(self._balances)

    def _restore(self, state: Dict[str, int]) -> None:
        self._balances = state

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def balances(self) -> Tuple[Tuple[str, int], ...]:
        return tuple(sorted(self._balances.items()))

    async def send(self, to_address: str, amount: int) -> None:
        if amount < 0:
            raise PaymentRejectedError(f"Cannot send negative amount {amount}", to_address, amount)

        self._balances[to_address] = self._balances.get(to_address, 0) + amount

        hook = self._receivers.get(to_address)
        if hook is None:
            return
        try:
            await hook(to_address, amount)
        except Exception as e:
            self._balances[to_address] -= amount
            logger.error(f"Recipient {to_address} rejected payment of {amount}: {e}")
            raise PaymentRejectedError(
                f"Recipient {to_address} rejected payment of {amount}: {e}",
                to_address,
                amount
            ) from e

    async def reclaim(self, from_address: str, amount: int) -> None:
        self._balances[from_address] = self._balances.get(from_address, 0) - amount

    def register_receiver(self, address: str, hook: Optional[PaymentHook]) -> None:
        """Run ``hook`` whenever ``address`` receives funds."""
        if hook is None:
            self._receivers.pop(address, None)
        else:
            self._receivers[address] = hook
