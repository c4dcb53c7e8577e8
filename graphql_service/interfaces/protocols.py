from __future__ import annotations
from typing import Any, Protocol, runtime_checkable
from graphql import ExecutionResult, GraphQLSchema
from graphql_service.interfaces.context import RequestContext
from graphql_service.interfaces.schemas import PersistedQueryRecord


@runtime_checkable
class SchemaProvider(Protocol):
    def get_schema(self) -> GraphQLSchema: ...

    def get_context(self, request: RequestContext) -> Any: ...


@runtime_checkable
class Engine(Protocol):
    async def execute(
        self,
        schema: GraphQLSchema,
        query: str,
        context: Any,
        variables: dict[str, Any] | None,
        operation_name: str | None,
    ) -> ExecutionResult: ...


@runtime_checkable
class PersistedQueryBackend(Protocol):
    """Storage for persisted queries keyed by content hash.

    ``create_if_absent`` must be atomic: of several concurrent calls for the
    same id exactly one stores the record and returns True.
    """

    async def get(self, query_id: str) -> PersistedQueryRecord | None: ...

    async def create_if_absent(self, record: PersistedQueryRecord) -> bool: ...


@runtime_checkable
class AmbientState(Protocol):
    def capture(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...
