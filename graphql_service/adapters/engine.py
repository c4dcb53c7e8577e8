from __future__ import annotations
from typing import Any, Callable
from graphql import (
    ExecutionResult,
    GraphQLField,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
    graphql,
)
from graphql_service.interfaces.context import RequestContext


class GraphQLCoreEngine:
    async def execute(
        self,
        schema: GraphQLSchema,
        query: str,
        context: Any,
        variables: dict[str, Any] | None,
        operation_name: str | None,
    ) -> ExecutionResult:
        return await graphql(
            schema,
            query,
            context_value=context,
            variable_values=variables,
            operation_name=operation_name,
        )


class StaticSchemaProvider:
    def __init__(
        self,
        schema: GraphQLSchema,
        context_factory: Callable[[RequestContext], Any] | None = None,
    ):
        self.schema = schema
        self.context_factory = context_factory

    def get_schema(self) -> GraphQLSchema:
        return self.schema

    def get_context(self, request: RequestContext) -> Any:
        if self.context_factory is not None:
            return self.context_factory(request)
        return {"request_id": request.request_id, "read_only": request.read_only}


def build_default_schema(api_version: str) -> GraphQLSchema:
    # Placeholder root type so the service answers introspection out of the box
    return GraphQLSchema(
        query=GraphQLObjectType(
            "Query",
            {
                "apiVersion": GraphQLField(
                    GraphQLNonNull(GraphQLString), resolve=lambda *_: api_version
                )
            },
        )
    )
