from __future__ import annotations
from contextlib import asynccontextmanager
from logging import getLogger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi_offline import FastAPIOffline
import uvicorn
from graphql_service.adapters.database import DatabaseAdapter, DatabasePersistedQueryBackend
from graphql_service.adapters.engine import (
    GraphQLCoreEngine,
    StaticSchemaProvider,
    build_default_schema,
)
from graphql_service.adapters.memory import MemoryPersistedQueryBackend
from graphql_service.config.adapters import Adapters, adapters as default_adapters
from graphql_service.config.general import General, general as default_general
from graphql_service.config.persisted_queries import (
    PersistedQueries,
    persisted_queries as default_persisted_queries,
)
from graphql_service.interfaces.protocols import (
    AmbientState,
    Engine,
    PersistedQueryBackend,
    SchemaProvider,
)
from graphql_service.middleware.requestlogger import RequestLogger
from graphql_service.pipeline.ambient import ContextVarAmbientState
from graphql_service.pipeline.dispatcher import Dispatcher
from graphql_service.pipeline.hooks import HookRegistry
from graphql_service.pipeline.normalizer import ParamNormalizer
from graphql_service.pipeline.persisted_queries import PersistedQueryStore
from graphql_service.pipeline.request import RequestPipeline
from graphql_service.routers.application import router as application_router

logger = getLogger(__name__)


def build_backend(
    pq_settings: PersistedQueries, adapter_settings: Adapters
) -> tuple[PersistedQueryBackend | None, DatabaseAdapter | None]:
    if not pq_settings.PERSISTED_QUERIES_ENABLED:
        return None, None
    if pq_settings.PERSISTED_QUERIES_BACKEND == "memory":
        return MemoryPersistedQueryBackend(), None
    database = DatabaseAdapter(
        connection_uri=adapter_settings.DATABASE_URI or "",
        pool_size=adapter_settings.DATABASE_POOL_SIZE,
        max_overflow=adapter_settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=adapter_settings.DATABASE_ECHO,
    )
    return (
        DatabasePersistedQueryBackend(database, pq_settings.PERSISTED_QUERIES_TABLE),
        database,
    )


def build_pipeline(
    schema_provider: SchemaProvider,
    hooks: HookRegistry,
    backend: PersistedQueryBackend | None,
    general_settings: General,
    pq_settings: PersistedQueries,
    engine: Engine | None = None,
    ambient: AmbientState | None = None,
) -> RequestPipeline:
    store = PersistedQueryStore(
        backend,
        hooks,
        enabled=pq_settings.PERSISTED_QUERIES_ENABLED,
        require_operation_name=pq_settings.OPERATION_NAME_REQUIRED_FOR_SAVE,
        timeout=pq_settings.STORE_TIMEOUT,
    )
    dispatcher = Dispatcher(
        schema_provider,
        engine or GraphQLCoreEngine(),
        debug=general_settings.DEBUG,
        concurrency=general_settings.BATCH_CONCURRENCY,
    )
    return RequestPipeline(
        ParamNormalizer(batching=general_settings.QUERY_BATCHING),
        store,
        dispatcher,
        hooks,
        ambient=ambient if ambient is not None else ContextVarAmbientState(),
        timeout=general_settings.REQUEST_TIMEOUT,
        save_on_execute=pq_settings.SAVE_ON_EXECUTE,
    )


def create_app(
    schema_provider: SchemaProvider | None = None,
    engine: Engine | None = None,
    hooks: HookRegistry | None = None,
    ambient: AmbientState | None = None,
    backend: PersistedQueryBackend | None = None,
    general_settings: General = default_general,
    pq_settings: PersistedQueries = default_persisted_queries,
    adapter_settings: Adapters = default_adapters,
) -> FastAPI:
    database = None
    if backend is None:
        backend, database = build_backend(pq_settings, adapter_settings)
    if schema_provider is None:
        schema_provider = StaticSchemaProvider(
            build_default_schema(general_settings.API_VERSION)
        )
    hooks = hooks if hooks is not None else HookRegistry()
    pipeline = build_pipeline(
        schema_provider,
        hooks,
        backend,
        general_settings,
        pq_settings,
        engine=engine,
        ambient=ambient,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(backend, DatabasePersistedQueryBackend):
            await backend.create_tables()
            logger.info("persisted query table ready name=%s", backend.table.name)
        try:
            yield
        finally:
            if database is not None:
                await database.dispose()

    app = FastAPIOffline(
        title=general_settings.PROJECT_NAME,
        version=general_settings.API_VERSION,
        root_path=general_settings.MOUNT_PATH,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline
    app.state.hooks = hooks

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogger)
    app.include_router(application_router)
    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "graphql_service.main:app",
        host=default_general.HOST,
        port=default_general.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
