"""
Per-vehicle locks serializing approval decisions within this process.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class VehicleLocks:
    """
    One asyncio.Lock per vehicle id, created on demand and discarded once
    nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, vehicle_id: str):
        lock = self._locks.get(vehicle_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[vehicle_id] = lock
        self._users[vehicle_id] = self._users.get(vehicle_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[vehicle_id] -= 1
            if self._users[vehicle_id] == 0:
                del self._users[vehicle_id]
                del self._locks[vehicle_id]

    def __len__(self) -> int:
        return len(self._locks)
