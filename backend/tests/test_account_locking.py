"""
Account Locking Tests.

Validates that only one recalculation holds an account at a time.
"""

import pytest
import asyncio

from backend.app.core.exceptions import ConcurrentRecalculationError
from backend.app.services.account_locking import (
    AccountLock,
    acquire_account_lock,
    extend_account_lock,
    is_account_locked,
    lock_key,
    release_account_lock,
)


@pytest.mark.asyncio
async def test_second_holder_is_rejected(redis_client):
    token = await acquire_account_lock(redis_client, "vendor", 7, wait_seconds=0)

    assert redis_client.store[lock_key("vendor", 7)] == token
    assert await is_account_locked(redis_client, "vendor", 7)

    with pytest.raises(ConcurrentRecalculationError) as exc_info:
        await acquire_account_lock(redis_client, "vendor", 7, wait_seconds=0)

    assert exc_info.value.error_code == "ERR_LEDGER_CONCURRENT"
    assert exc_info.value.details["stage"] == "lock"
    assert exc_info.value.details["retryable"] is True


@pytest.mark.asyncio
async def test_locks_are_per_account(redis_client):
    await acquire_account_lock(redis_client, "vendor", 7, wait_seconds=0)

    # Same id on the other ledger family, and another vendor, are independent
    assert await acquire_account_lock(redis_client, "customer", 7, wait_seconds=0)
    assert await acquire_account_lock(redis_client, "vendor", 8, wait_seconds=0)


@pytest.mark.asyncio
async def test_release_requires_matching_token(redis_client):
    token = await acquire_account_lock(redis_client, "customer", 3, wait_seconds=0)

    assert await release_account_lock(redis_client, "customer", 3, "not-mine") is False
    assert await is_account_locked(redis_client, "customer", 3)

    assert await release_account_lock(redis_client, "customer", 3, token) is True
    assert not await is_account_locked(redis_client, "customer", 3)


@pytest.mark.asyncio
async def test_release_handles_bytes_values(redis_client):
    token = await acquire_account_lock(redis_client, "vendor", 1, wait_seconds=0)
    redis_client.store[lock_key("vendor", 1)] = token.encode()

    assert await release_account_lock(redis_client, "vendor", 1, token) is True


@pytest.mark.asyncio
async def test_waiter_acquires_after_release(redis_client):
    token = await acquire_account_lock(redis_client, "vendor", 5, wait_seconds=0)

    async def release_soon():
        await asyncio.sleep(0.05)
        await release_account_lock(redis_client, "vendor", 5, token)

    releaser = asyncio.create_task(release_soon())
    second = await acquire_account_lock(
        redis_client, "vendor", 5, wait_seconds=2, poll_interval=0.01
    )
    await releaser

    assert second != token
    assert redis_client.store[lock_key("vendor", 5)] == second


@pytest.mark.asyncio
async def test_context_manager_releases_on_error(redis_client):
    with pytest.raises(RuntimeError):
        async with AccountLock(redis_client, "vendor", 9, wait_seconds=0):
            assert await is_account_locked(redis_client, "vendor", 9)
            raise RuntimeError("stage failed")

    assert not await is_account_locked(redis_client, "vendor", 9)


@pytest.mark.asyncio
async def test_expired_holder_cannot_release_new_owner(redis_client, mocker):
    key = lock_key("vendor", 1)
    token_a = await acquire_account_lock(redis_client, "vendor", 1, wait_seconds=0)

    # A's key expired and worker B took the account
    del redis_client.store[key]
    token_b = await acquire_account_lock(redis_client, "vendor", 1, wait_seconds=0)
    get_spy = mocker.spy(redis_client, "get")
    delete_spy = mocker.spy(redis_client, "delete")

    assert await release_account_lock(redis_client, "vendor", 1, token_a) is False

    assert redis_client.store[key] == token_b
    assert redis_client.evals == ["release"]
    get_spy.assert_not_called()
    delete_spy.assert_not_called()


@pytest.mark.asyncio
async def test_extend_only_for_current_owner(redis_client):
    key = lock_key("customer", 4)
    token = await acquire_account_lock(redis_client, "customer", 4, ttl_seconds=30, wait_seconds=0)

    assert await extend_account_lock(redis_client, "customer", 4, token, ttl_seconds=90) is True
    assert redis_client.ttls[key] == 90

    assert await extend_account_lock(redis_client, "customer", 4, "not-mine", ttl_seconds=5) is False
    assert redis_client.ttls[key] == 90


@pytest.mark.asyncio
async def test_held_lock_is_kept_alive(redis_client):
    key = lock_key("vendor", 12)

    async with AccountLock(redis_client, "vendor", 12, ttl_seconds=0.06, wait_seconds=0):
        await asyncio.sleep(0.1)
        assert redis_client.store[key]
        assert "extend" in redis_client.evals

    assert not await is_account_locked(redis_client, "vendor", 12)
    assert redis_client.evals[-1] == "release"
