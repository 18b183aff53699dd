"""Tests for the transaction boundary, settlement guard and memory store."""

import asyncio
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio

from market import (
    Listing, MemoryStore, InMemoryPaymentLedger, Minted, UnitOfWork,
    SettlementGuard, GuardState
)
from market.exceptions import ReentrantCallError


@pytest_asyncio.fixture
async def store():
    """Create and return an empty memory store."""
    return MemoryStore(fee_basis_points=250)


@pytest.mark.asyncio
async def test_commit_keeps_changes_and_events(store):
    """A clean exit commits state and releases recorded events."""
    uow = UnitOfWork([store], operation='mint')
    async with uow:
        asset_id = await store.next_asset_id()
        uow.record(Minted(asset_id=asset_id, to_address='a', uri='u'))
        # Not released before commit
        assert uow.events == []

    assert uow.committed is True
    assert await store.asset_count() == 1
    assert uow.events == [Minted(asset_id=0, to_address='a', uri='u')]


@pytest.mark.asyncio
async def test_rollback_restores_every_participant(store):
    """An exception restores the store and transactional collaborators."""
    ledger = InMemoryPaymentLedger()
    uow = UnitOfWork([store, ledger], operation='buy')

    with pytest.raises(RuntimeError):
        async with uow:
            await store.next_asset_id()
            await store.insert_listing(Listing(0, 0, 'seller', 10))
            await store.set_active_listing_id(0, 0)
            await store.adjust_balance(10)
            await ledger.send('seller', 10)
            uow.record(Minted(asset_id=0, to_address='a', uri='u'))
            raise RuntimeError("boom")

    assert uow.committed is False
    assert uow.events == []
    assert await store.asset_count() == 0
    assert await store.get_listing(0) is None
    assert await store.get_active_listing_id(0) is None
    assert await store.get_balance() == 0
    assert ledger.balance_of('seller') == 0


@pytest.mark.asyncio
async def test_compensations_run_newest_first(store):
    """Compensations run in reverse order; a failing one does not stop the rest."""
    calls = []

    async def undo(name):
        calls.append(name)
        if name == 'second':
            raise ValueError("cannot undo")

    with pytest.raises(RuntimeError, match="original"):
        async with UnitOfWork([store]) as uow:
            uow.on_rollback('first', lambda: undo('first'))
            uow.on_rollback('second', lambda: undo('second'))
            uow.on_rollback('third', lambda: undo('third'))
            raise RuntimeError("original")

    assert calls == ['third', 'second', 'first']


@pytest.mark.asyncio
async def test_compensations_skipped_on_commit(store):
    """Nothing is undone when the operation succeeds."""
    calls = []

    async def undo():
        calls.append('undo')

    async with UnitOfWork([store]) as uow:
        uow.on_rollback('noop', undo)

    assert calls == []


@pytest.mark.asyncio
async def test_covers(store):
    """Only participants roll back with the unit of work."""
    ledger = InMemoryPaymentLedger()
    uow = UnitOfWork([store])
    assert uow.covers(store)
    assert not uow.covers(ledger)


@pytest.mark.asyncio
async def test_nested_transactions_join_outer(store):
    """Inner transactions join the outer one and roll back with it."""
    with pytest.raises(RuntimeError):
        async with store.transaction():
            await store.next_listing_id()
            async with store.transaction():
                await store.next_listing_id()
            raise RuntimeError("outer failure")

    assert await store.listing_count() == 0

    async with store.transaction():
        await store.next_listing_id()
    assert await store.listing_count() == 1


@pytest.mark.asyncio
async def test_store_returns_copies(store):
    """Mutating a returned listing does not change the stored record."""
    await store.insert_listing(Listing(0, 7, 'seller', 10))

    listing = await store.get_listing(0)
    listing.active = False
    listing.price = 1

    stored = await store.get_listing(0)
    assert stored.active is True
    assert stored.price == 10

    await store.deactivate_listing(0)
    assert (await store.get_listing(0)).active is False


@pytest.mark.asyncio
async def test_guard_rejects_nested_entry():
    """Mutating calls inside a running operation are rejected and the flag resets."""
    guard = SettlementGuard()

    async with guard.enter('buy', settlement=True):
        assert guard.in_settlement
        assert guard.current_operation == 'buy'
        with pytest.raises(ReentrantCallError) as exc_info:
            async with guard.enter('cancel'):
                pass
        assert exc_info.value.operation == 'cancel'

    assert guard.state is GuardState.IDLE
    assert guard.current_operation is None


@pytest.mark.asyncio
async def test_guard_resets_after_failure():
    """The flag is cleared when the operation raises."""
    guard = SettlementGuard()

    with pytest.raises(RuntimeError):
        async with guard.enter('buy', settlement=True):
            raise RuntimeError("settlement failed")

    assert guard.state is GuardState.IDLE
    async with guard.enter('list'):
        assert guard.state is GuardState.BUSY


@pytest.mark.asyncio
async def test_guard_serializes_unrelated_tasks():
    """Operations from separate tasks wait for each other instead of failing."""
    guard = SettlementGuard()
    order = []

    async def operation(name):
        async with guard.enter(name, settlement=True):
            order.append(f"{name}-start")
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    await asyncio.gather(operation('a'), operation('b'))

    assert order == ['a-start', 'a-end', 'b-start', 'b-end']
    assert guard.state is GuardState.IDLE


@pytest.mark.asyncio
async def test_guard_rejects_child_task():
    """Tasks spawned inside an operation inherit its guard context."""
    guard = SettlementGuard()

    async def child():
        async with guard.enter('mint'):
            pass

    async with guard.enter('buy', settlement=True):
        with pytest.raises(ReentrantCallError):
            await asyncio.create_task(child())


@pytest.mark.asyncio
async def test_durable_participants_commit_first():
    """Durable participants are exited before in-memory ones, whatever the order given."""
    exits = []

    class Recorder(InMemoryPaymentLedger):
        def __init__(self, name, durable=False):
            super().__init__()
            self.name = name
            self.durable = durable

        @asynccontextmanager
        async def transaction(self):
            async with super().transaction():
                yield self
            exits.append(self.name)

    database = Recorder('database', durable=True)
    async with UnitOfWork([database, Recorder('first'), Recorder('second')]):
        pass

    assert exits == ['database', 'second', 'first']


@pytest.mark.asyncio
async def test_guard_allows_child_task_after_exit():
    """A task spawned inside an operation may run its own once that operation is over."""
    guard = SettlementGuard()
    released = asyncio.Event()

    async def child():
        await released.wait()
        async with guard.enter('mint'):
            return guard.current_operation

    async with guard.enter('buy', settlement=True):
        task = asyncio.create_task(child())
        assert guard.current_operation == 'buy'

    assert guard.current_operation is None
    released.set()
    assert await task == 'mint'
    assert guard.state is GuardState.IDLE
