from __future__ import annotations
import asyncio
from graphql_service.interfaces.schemas import PersistedQueryRecord


class MemoryPersistedQueryBackend:
    """Process-local key/value record store"""

    def __init__(self) -> None:
        self._records: dict[str, PersistedQueryRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, query_id: str) -> PersistedQueryRecord | None:
        return self._records.get(query_id)

    async def create_if_absent(self, record: PersistedQueryRecord) -> bool:
        async with self._lock:
            if record.id in self._records:
                return False
            self._records[record.id] = record
            return True

    def __len__(self) -> int:
        return len(self._records)
