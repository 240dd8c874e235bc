"""
Per-user serialization for the booking critical section.

The partial unique indexes settle seat and duplicate races in the database,
but the time-conflict rule spans different trips and no single index can
express it. Bookings by the same user are therefore serialized:

- in-process, with an asyncio lock per user id (released locks are dropped
  so the registry does not grow with the user base);
- across processes on PostgreSQL, with a transaction-scoped advisory lock
  keyed on the user id, released automatically on commit or rollback.

On other backends only the in-process lock applies.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Arbitrary namespace so the advisory keys cannot collide with other users of
# pg_advisory_xact_lock on the same database.
ADVISORY_NAMESPACE = 0x5348


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: defaultdict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


user_booking_locks = KeyedLock()


async def acquire_user_advisory_lock(db: AsyncSession, user_id: int) -> None:
    """Take a transaction-scoped advisory lock on PostgreSQL; no-op elsewhere."""
    if db.get_bind().dialect.name != "postgresql":
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(:namespace, :key)"),
        {"namespace": ADVISORY_NAMESPACE, "key": user_id},
    )
