"""Asset registry interface and an in-process implementation.

The registry owns minting, ownership and approval state for assets. The
marketplace only consumes it:
- owner_of(asset_id)
- is_transfer_approved(asset_id, operator)
- transfer(from_address, to_address, asset_id)
- mint(to_address, asset_id, uri)

InMemoryAssetRegistry also implements approvals and receiver callbacks so a
transfer can run arbitrary recipient code, the same way a token contract
notifies the receiving wallet.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from .exceptions import AssetTransferError, InvalidAssetError, NotOwnerError
from .store.memory import SnapshotTransactionMixin

logger = logging.getLogger(__name__)

# Called as hook(asset_id, from_address, to_address) after a transfer lands
ReceiverHook = Callable[[int, str, str], Awaitable[None]]


class AssetRegistry(ABC):
    """Consumed interface of the asset registry."""

    @abstractmethod
    async def owner_of(self, asset_id: int) -> Optional[str]:
        """Return the owner address, or None for an unknown asset."""

    @abstractmethod
    async def is_transfer_approved(self, asset_id: int, operator: str) -> bool:
        """Whether ``operator`` may move the asset on its owner's behalf."""

    @abstractmethod
    async def transfer(self, from_address: str, to_address: str, asset_id: int) -> None:
        """Move an asset between addresses."""

    @abstractmethod
    async def mint(self, to_address: str, asset_id: int, uri: str) -> None:
        """Create a new asset owned by ``to_address``."""

    async def token_uri(self, asset_id: int) -> Optional[str]:
        """Metadata URI of an asset, if the registry exposes one."""
        return None


class InMemoryAssetRegistry(SnapshotTransactionMixin, AssetRegistry):
    """Registry state held in process memory."""

    def __init__(self):
        self._owners: Dict[int, str] = {}
        self._uris: Dict[int, str] = {}
        self._token_approvals: Dict[int, str] = {}
        self._operator_approvals: Dict[str, Set[str]] = {}
        self._receivers: Dict[str, ReceiverHook] = {}

    def _snapshot(self) -> Tuple:
        return (
            dict(self._owners),
            dict(self._uris),
            dict(self._token_approvals),
            {owner: set(ops) for owner, ops in self._operator_approvals.items()},
        )

    def _restore(self, state: Tuple) -> None:
        (self._owners, self._uris,
         self._token_approvals, self._operator_approvals) = state

    async def owner_of(self, asset_id: int) -> Optional[str]:
        return self._owners.get(asset_id)

    async def token_uri(self, asset_id: int) -> Optional[str]:
        return self._uris.get(asset_id)

    async def is_transfer_approved(self, asset_id: int, operator: str) -> bool:
        owner = self._owners.get(asset_id)
        if owner is None:
            return False
        return (
            owner == operator
            or self._token_approvals.get(asset_id) == operator
            or operator in self._operator_approvals.get(owner, ())
        )

    async def mint(self, to_address: str, asset_id: int, uri: str) -> None:
        if asset_id in self._owners:
            raise InvalidAssetError(f"Asset {asset_id} already exists")
        self._owners[asset_id] = to_address
        self._uris[asset_id] = uri
        logger.debug(f"Registry minted asset {asset_id} to {to_address}")

    async def transfer(self, from_address: str, to_address: str, asset_id: int) -> None:
        owner = self._owners.get(asset_id)
        if owner is None:
            raise AssetTransferError(f"Asset {asset_id} does not exist", asset_id)
        if owner != from_address:
            raise AssetTransferError(
                f"Asset {asset_id} is owned by {owner}, not {from_address}",
                asset_id
            )

        self._owners[asset_id] = to_address
        approval = self._token_approvals.pop(asset_id, None)

        hook = self._receivers.get(to_address)
        if hook is not None:
            try:
                await hook(asset_id, from_address, to_address)
            except Exception as e:
                # Undo so a standalone caller never sees the half-done move
                self._owners[asset_id] = owner
                if approval is not None:
                    self._token_approvals[asset_id] = approval
                logger.error(f"Receiver {to_address} rejected asset {asset_id}: {e}")
                raise AssetTransferError(
                    f"Receiver {to_address} rejected asset {asset_id}: {e}",
                    asset_id
                ) from e

    def approve(self, asset_id: int, operator: str, caller: str) -> None:
        """Let ``operator`` move a single asset. Only the owner may approve."""
        owner = self._owners.get(asset_id)
        if owner is None:
            raise InvalidAssetError(f"Asset {asset_id} does not exist")
        if owner != caller:
            raise NotOwnerError(f"Only the owner of asset {asset_id} can approve operators")
        self._token_approvals[asset_id] = operator

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        """Let ``operator`` move every asset of ``owner``."""
        operators = self._operator_approvals.setdefault(owner, set())
        if approved:
            operators.add(operator)
        else:
            operators.discard(operator)

    def register_receiver(self, address: str, hook: Optional[ReceiverHook]) -> None:
        """Run ``hook`` whenever an asset is transferred to ``address``."""
        if hook is None:
            self._receivers.pop(address, None)
        else:
            self._receivers[address] = hook
