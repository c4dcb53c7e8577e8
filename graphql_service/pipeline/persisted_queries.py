from __future__ import annotations
import asyncio
from hashlib import sha256
from logging import getLogger
from graphql_service.interfaces.protocols import PersistedQueryBackend
from graphql_service.interfaces.schemas import OperationParams, PersistedQueryRecord
from graphql_service.pipeline.errors import StoreUnavailableError
from graphql_service.pipeline.hooks import Hook, HookRegistry


logger = getLogger(__name__)


def hash_query(query: str) -> str:
    return sha256(query.encode("utf-8")).hexdigest()


class PersistedQueryStore:
    """Content-addressed store of GraphQL documents.

    Lets clients send a hash instead of the full document, which also makes
    GET requests small enough to be cached at the edge. The default backend
    is only consulted when ``enabled``; a ``Hook.PERSISTED_QUERY`` filter can
    supply queries from any other source and is always asked first.
    """

    def __init__(
        self,
        backend: PersistedQueryBackend | None,
        hooks: HookRegistry,
        enabled: bool = False,
        require_operation_name: bool = True,
        timeout: float | None = None,
    ):
        self.backend = backend
        self.hooks = hooks
        self.enabled = enabled and backend is not None
        self.require_operation_name = require_operation_name
        self.timeout = timeout

    async def load(
        self,
        query_id: str,
        params: OperationParams | None = None,
        timeout: float | None = None,
    ) -> str | None:
        """Query text for ``query_id``, or ``None`` when no source has it.

        ``timeout`` is the caller's budget; each lookup is bounded by the
        smaller of it and the store's own timeout.
        """
        await self.hooks.do_action(Hook.LOAD_PERSISTED_QUERY, query_id, params)

        try:
            query = await self._bounded(
                self.hooks.apply_filters(Hook.PERSISTED_QUERY, None, query_id, params),
                timeout,
            )
        except StoreUnavailableError as e:
            logger.warning("persisted query override failed id=%s: %s", query_id, e)
            query = None
        if query:
            return query

        record = await self._get_from_backend(query_id, timeout)
        return record.query_text if record is not None else None

    async def save(
        self,
        query: str | None,
        params: OperationParams,
        timeout: float | None = None,
    ) -> str | None:
        if not query:
            return None

        # Only named operations are persisted, which lets clients opt in
        label = params.operation_name or ""
        if self.require_operation_name and not label:
            return None

        query_id = hash_query(query)
        await self.hooks.do_action(Hook.SAVE_PERSISTED_QUERY, query, query_id, params)

        if await self.load(query_id, params, timeout):
            return query_id

        if not self.enabled:
            return None

        record = PersistedQueryRecord(id=query_id, query_text=query, label=label)
        try:
            created = await self._bounded(self.backend.create_if_absent(record), timeout)
        except StoreUnavailableError as e:
            logger.warning("persisted query save failed id=%s: %s", query_id, e)
            return None
        if created:
            logger.info("persisted query saved id=%s label=%s", query_id, label)
        return query_id

    async def _get_from_backend(
        self, query_id: str, timeout: float | None
    ) -> PersistedQueryRecord | None:
        if not self.enabled:
            return None
        try:
            return await self._bounded(self.backend.get(query_id), timeout)
        except StoreUnavailableError as e:
            logger.warning("persisted query lookup failed id=%s: %s", query_id, e)
            return None

    def _limit(self, timeout: float | None) -> float | None:
        limits = [value for value in (timeout, self.timeout) if value is not None]
        return min(limits) if limits else None

    async def _bounded(self, awaitable, timeout: float | None = None):
        limit = self._limit(timeout)
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(
                f"Persisted query store timed out after {limit}s"
            ) from e
