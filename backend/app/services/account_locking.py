"""
Per-account ledger locking.

One recalculation at a time per vendor/customer ledger, across every
API worker. The Redis key is taken with SET NX and expires on its own so a
crashed worker cannot hold a ledger forever.
"""

import asyncio
import logging
import time
import uuid
from typing import Optional

from backend.app.core.config import settings
from backend.app.core.exceptions import ConcurrentRecalculationError

logger = logging.getLogger("courier_ledger.locking")


# Compare-and-delete / compare-and-expire run server side, so a lock that
# expired and changed hands is never touched by its previous holder.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


def lock_key(account_type: str, account_id: int) -> str:
    """Redis key guarding one account's ledger."""
    return f"ledger:recalc:{account_type}:{account_id}"


async def acquire_account_lock(
    redis,
    account_type: str,
    account_id: int,
    ttl_seconds: Optional[int] = None,
    wait_seconds: Optional[float] = None,
    poll_interval: Optional[float] = None
) -> str:
    """
    Acquire the recalculation lock of an account.

    Args:
        redis: Async Redis client
        account_type: "vendor" or "customer"
        account_id: Account to lock
        ttl_seconds: Lock expiry
        wait_seconds: How long to wait for a running recalculation (0 = fail fast)
        poll_interval: Delay between attempts

    Returns:
        Token identifying this holder, needed to release

    Raises:
        ConcurrentRecalculationError: If the lock is still held after waiting
    """
    ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.ledger_lock_ttl_seconds
    wait_seconds = wait_seconds if wait_seconds is not None else settings.ledger_lock_wait_seconds
    poll_interval = poll_interval if poll_interval is not None else settings.ledger_lock_poll_interval_seconds

    key = lock_key(account_type, account_id)
    token = uuid.uuid4().hex
    deadline = time.monotonic() + wait_seconds

    while True:
        if await redis.set(key, token, ex=ttl_seconds, nx=True):
            return token
        if time.monotonic() >= deadline:
            logger.warning(
                "Ledger lock busy",
                extra={"account_type": account_type, "account_id": account_id, "waited_s": wait_seconds},
            )
            raise ConcurrentRecalculationError(account_type, account_id)
        await asyncio.sleep(poll_interval)


async def release_account_lock(
    redis,
    account_type: str,
    account_id: int,
    token: str
) -> bool:
    """
    Release the lock if this holder still owns it.

    Returns:
        True if the lock was released, False if it had expired or changed hands
    """
    key = lock_key(account_type, account_id)
    released = await redis.eval(RELEASE_SCRIPT, 1, key, token)
    if not released:
        logger.warning(
            "Ledger lock lost before release",
            extra={"account_type": account_type, "account_id": account_id},
        )
        return False
    return True


async def extend_account_lock(
    redis,
    account_type: str,
    account_id: int,
    token: str,
    ttl_seconds: Optional[int] = None
) -> bool:
    """
    Reset the expiry of a lock this holder still owns.

    Returns:
        True if the expiry was reset, False if the lock is no longer ours
    """
    ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.ledger_lock_ttl_seconds
    key = lock_key(account_type, account_id)
    return bool(await redis.eval(EXTEND_SCRIPT, 1, key, token, ttl_seconds))


async def is_account_locked(redis, account_type: str, account_id: int) -> bool:
    """Check whether a recalculation currently holds the account."""
    return bool(await redis.exists(lock_key(account_type, account_id)))


class AccountLock:
    """
    Async context manager around acquire/release.

    While held, the expiry is pushed back every third of the TTL, so a
    recalculation running longer than the TTL keeps its account.

    Usage:
        async with AccountLock(redis, "vendor", 7):
            ...
    """

    def __init__(self, redis, account_type: str, account_id: int, **options):
        self.redis = redis
        self.account_type = account_type
        self.account_id = account_id
        self.options = options
        self.token: Optional[str] = None
        self._renewal: Optional[asyncio.Task] = None

    @property
    def ttl_seconds(self) -> int:
        ttl_seconds = self.options.get("ttl_seconds")
        return ttl_seconds if ttl_seconds is not None else settings.ledger_lock_ttl_seconds

    async def extend(self) -> bool:
        if self.token is None:
            return False
        return await extend_account_lock(
            self.redis, self.account_type, self.account_id, self.token, self.ttl_seconds
        )

    async def _keep_alive(self) -> None:
        interval = self.ttl_seconds / 3
        while True:
            await asyncio.sleep(interval)
            if not await self.extend():
                logger.warning(
                    "Ledger lock could not be extended",
                    extra={"account_type": self.account_type, "account_id": self.account_id},
                )
                return

    async def __aenter__(self) -> "AccountLock":
        self.token = await acquire_account_lock(
            self.redis, self.account_type, self.account_id, **self.options
        )
        self._renewal = asyncio.create_task(self._keep_alive())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._renewal is not None:
            self._renewal.cancel()
            try:
                await self._renewal
            except asyncio.CancelledError:
                pass
            self._renewal = None
        if self.token is not None:
            await release_account_lock(self.redis, self.account_type, self.account_id, self.token)
            self.token = None
