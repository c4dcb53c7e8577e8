from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
)

from graphql_service.adapters.engine import GraphQLCoreEngine, StaticSchemaProvider
from graphql_service.adapters.memory import MemoryPersistedQueryBackend
from graphql_service.pipeline.ambient import AttributeAmbientState
from graphql_service.pipeline.dispatcher import Dispatcher
from graphql_service.pipeline.hooks import HookRegistry
from graphql_service.pipeline.normalizer import ParamNormalizer
from graphql_service.pipeline.persisted_queries import PersistedQueryStore
from graphql_service.pipeline.request import RequestPipeline


def build_test_schema(page: SimpleNamespace) -> GraphQLSchema:
    """Schema whose resolvers poke at ``page`` the way an embedding renderer would."""

    async def resolve_slow(*_):
        await asyncio.sleep(5)
        return "slow"

    def resolve_fail(*_):
        raise RuntimeError("boom")

    def resolve_touch(*_):
        page.current_item = "inner"
        return "touched"

    def resolve_touch_and_fail(*_):
        page.current_item = "inner"
        raise RuntimeError("touch failed")

    query = GraphQLObjectType(
        "Query",
        {
            "hello": GraphQLField(
                GraphQLString,
                args={"name": GraphQLArgument(GraphQLString)},
                resolve=lambda _obj, _info, name="world": f"Hello {name}",
            ),
            "fail": GraphQLField(GraphQLString, resolve=resolve_fail),
            "slow": GraphQLField(GraphQLString, resolve=resolve_slow),
            "touch": GraphQLField(GraphQLString, resolve=resolve_touch),
            "touchAndFail": GraphQLField(GraphQLString, resolve=resolve_touch_and_fail),
        },
    )
    mutation = GraphQLObjectType(
        "Mutation", {"ping": GraphQLField(GraphQLString, resolve=lambda *_: "pong")}
    )
    return GraphQLSchema(query=query, mutation=mutation)


class SpyEngine(GraphQLCoreEngine):
    def __init__(self):
        self.queries: list[str] = []

    async def execute(self, schema, query, context, variables, operation_name):
        self.queries.append(query)
        return await super().execute(schema, query, context, variables, operation_name)


@pytest.fixture
def page() -> SimpleNamespace:
    return SimpleNamespace(current_item="outer")


@pytest.fixture
def schema(page) -> GraphQLSchema:
    return build_test_schema(page)


@pytest.fixture
def engine() -> SpyEngine:
    return SpyEngine()


@pytest.fixture
def hooks() -> HookRegistry:
    return HookRegistry()


@pytest.fixture
def backend() -> MemoryPersistedQueryBackend:
    return MemoryPersistedQueryBackend()


@pytest.fixture
def make_pipeline(page, schema, engine, hooks, backend):
    def factory(
        *,
        enabled=True,
        debug=False,
        batching=True,
        timeout=None,
        schema_provider=None,
        ambient=None,
        save_on_execute=True,
    ) -> RequestPipeline:
        store = PersistedQueryStore(backend, hooks, enabled=enabled, timeout=1.0)
        dispatcher = Dispatcher(
            schema_provider or StaticSchemaProvider(schema), engine, debug=debug
        )
        return RequestPipeline(
            ParamNormalizer(batching=batching),
            store,
            dispatcher,
            hooks,
            ambient=ambient or AttributeAmbientState(page, "current_item"),
            timeout=timeout,
            save_on_execute=save_on_execute,
        )

    return factory
