"""Marketplace for uniquely owned digital assets.

This package provides:
- Listing ledger with one active listing per asset
- Fee policy in basis points with a 10% cap
- Atomic, non-reentrant settlement of purchases
- Pluggable storage (in-memory or Postgres) and collaborator interfaces
"""

from .exceptions import *  # noqa: F401,F403
from .models import Listing, Settlement
from .events import EventBus, MarketEvent, Minted, Listed, Sold, Cancelled
from .store import MarketStore, MemoryStore, Transactional
from .registry import AssetRegistry, InMemoryAssetRegistry
from .payments import PaymentSink, InMemoryPaymentLedger
from .authority import OwnerAuthority, StaticOwnerAuthority
from .fees import FeePolicy, compute_split, FEE_DENOMINATOR, MAX_FEE_BASIS_POINTS
from .listings import ListingLedger
from .settlement import SettlementEngine
from .guard import SettlementGuard, GuardState
from .unit_of_work import UnitOfWork
from .marketplace import Marketplace

__all__ = [
    'Listing',
    'Settlement',
    'EventBus',
    'MarketEvent',
    'Minted',
    'Listed',
    'Sold',
    'Cancelled',
    'MarketStore',
    'MemoryStore',
    'Transactional',
    'AssetRegistry',
    'InMemoryAssetRegistry',
    'PaymentSink',
    'InMemoryPaymentLedger',
    'OwnerAuthority',
    'StaticOwnerAuthority',
    'FeePolicy',
    'compute_split',
    'FEE_DENOMINATOR',
    'MAX_FEE_BASIS_POINTS',
    'ListingLedger',
    'SettlementEngine',
    'SettlementGuard',
    'GuardState',
    'UnitOfWork',
    'Marketplace',
]
