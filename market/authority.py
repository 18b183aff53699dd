"""Owner authority for administrative operations."""

from abc import ABC, abstractmethod


class OwnerAuthority(ABC):
    """Decides who may run owner-only operations."""

    @property
    @abstractmethod
    def owner_address(self) -> str:
        """Address that receives withdrawn funds."""

    @abstractmethod
    async def is_owner(self, caller_address: str) -> bool:
        """Whether ``caller_address`` holds the owner role."""


class StaticOwnerAuthority(OwnerAuthority):
    """A single fixed owner address, taken from settings."""

    def __init__(self, owner_address: str):
        if not owner_address:
            raise ValueError("owner_address is required")
        self._owner_address = owner_address

    @property
    def owner_address(self) -> str:
        return self._owner_address

    async def is_owner(self, caller_address: str) -> bool:
        return caller_address == self._owner_address
