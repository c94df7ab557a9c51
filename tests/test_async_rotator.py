from unittest.mock import AsyncMock

import pytest
from helpers import FakeClock

from keycarousel import (
    AsyncKeyRotator,
    AsyncMemoryCounterStore,
    ExhaustedError,
    StoreUnavailableError,
)


@pytest.mark.asyncio
async def test_async_scenario_matches_sync(abc_keys):
    clock = FakeClock()
    store = AsyncMemoryCounterStore(clock=clock)
    rot = AsyncKeyRotator(abc_keys, store, clock=clock)
    # cursor 2 -> first acquisition gets cursor 3, start index 0
    await store.incr(rot.cursor_key)
    await store.incr(rot.cursor_key)

    tokens = [await rot.acquire_credential() for _ in range(9)]
    assert tokens == ["token-a", "token-b", "token-c"] * 3
    with pytest.raises(ExhaustedError):
        await rot.acquire_credential()
    assert store.get(rot.usage_key(0, "2024-01-01T10:00")) == 4  # noqa: PLR2004


@pytest.mark.asyncio
async def test_async_cursor_failure_isolated(abc_keys):
    store = AsyncMock()
    store.incr.side_effect = StoreUnavailableError("INCR", "cursor", "boom")
    rot = AsyncKeyRotator(abc_keys, store)
    with pytest.raises(StoreUnavailableError):
        await rot.acquire()
    assert store.incr.await_count == 1
    store.expire.assert_not_awaited()


@pytest.mark.asyncio
async def test_async_expire_called_with_configured_seconds(abc_keys):
    store = AsyncMock()
    store.incr.side_effect = [1, 1]
    store.expire.return_value = True
    rot = AsyncKeyRotator(abc_keys, store, expiry_seconds=90)
    allocation = await rot.acquire()
    assert allocation.name == "B"
    store.expire.assert_awaited_once_with(rot.usage_key(1, allocation.window), 90)


@pytest.mark.asyncio
async def test_async_close_closes_store(abc_keys):
    store = AsyncMock()
    async with AsyncKeyRotator(abc_keys, store):
        pass
    store.close.assert_awaited_once()
