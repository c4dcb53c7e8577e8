from __future__ import annotations
import asyncio
from logging import getLogger
from traceback import format_exception
from typing import Any
from graphql import (
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    OperationType,
    get_operation_ast,
    parse,
)
from graphql_service.interfaces.context import RequestContext
from graphql_service.interfaces.protocols import Engine, SchemaProvider
from graphql_service.interfaces.schemas import OperationParams
from graphql_service.pipeline.errors import (
    EngineExecutionError,
    OperationTimeoutError,
    PipelineError,
    RequestParamsError,
    error_result,
)


logger = getLogger(__name__)

INVALID_RESPONSE = "The GraphQL request returned an invalid response"
INTERNAL_ERROR = "Internal server error"


def invalid_response() -> dict[str, Any]:
    return {"errors": [INVALID_RESPONSE]}


def _client_safe(error: BaseException) -> bool:
    if isinstance(error, PipelineError):
        return error.client_safe
    return isinstance(error, GraphQLError)


class Dispatcher:
    """Runs resolved operations against the engine and serializes the results.

    Operations of a batch run concurrently, at most ``concurrency`` at a time,
    but results always come back in submission order. A failing or timed out
    operation only affects its own slot.
    """

    def __init__(
        self,
        schema_provider: SchemaProvider,
        engine: Engine,
        debug: bool = False,
        concurrency: int = 8,
    ):
        self.schema_provider = schema_provider
        self.engine = engine
        self.debug = debug
        self.concurrency = concurrency

    def build_unit(self, request: RequestContext) -> tuple[GraphQLSchema, Any]:
        return self.schema_provider.get_schema(), self.schema_provider.get_context(request)

    async def dispatch(
        self,
        schema: GraphQLSchema,
        context: Any,
        operations: list[OperationParams],
        timeout: float | None = None,
    ) -> list[ExecutionResult]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(operation: OperationParams) -> ExecutionResult:
            async with semaphore:
                return await self._execute_one(schema, context, operation, timeout)

        return list(await asyncio.gather(*(run(operation) for operation in operations)))

    async def _execute_one(
        self,
        schema: GraphQLSchema,
        context: Any,
        operation: OperationParams,
        timeout: float | None,
    ) -> ExecutionResult:
        if operation.read_only and not self._is_query(operation):
            return error_result(RequestParamsError("GET supports only query operation"))
        try:
            return await asyncio.wait_for(
                self.engine.execute(
                    schema,
                    operation.query,
                    context,
                    operation.variables,
                    operation.operation_name,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "operation timed out after %ss operation=%s",
                timeout,
                operation.operation_name,
            )
            return error_result(OperationTimeoutError())
        except Exception as e:
            logger.exception("engine failed operation=%s", operation.operation_name)
            error = EngineExecutionError(str(e) or type(e).__name__)
            error.__cause__ = e
            return error_result(error)

    @staticmethod
    def _is_query(operation: OperationParams) -> bool:
        try:
            document = parse(operation.query)
        except GraphQLError:
            # Syntax errors are reported by the engine
            return True
        definition = get_operation_ast(document, operation.operation_name)
        return definition is None or definition.operation == OperationType.QUERY

    def format_error(self, error: GraphQLError) -> dict[str, Any]:
        formatted = dict(error.formatted)
        original = error.original_error
        if original is None or _client_safe(original):
            return formatted
        if not self.debug:
            formatted["message"] = INTERNAL_ERROR
            return formatted
        cause = original.__cause__ or original
        extensions = dict(formatted.get("extensions") or {})
        extensions["debugMessage"] = str(cause)
        extensions["trace"] = format_exception(cause)
        formatted["extensions"] = extensions
        return formatted

    def format_result(self, result: Any) -> dict[str, Any]:
        if not isinstance(result, ExecutionResult):
            return invalid_response()
        formatted: dict[str, Any] = {}
        if result.errors:
            formatted["errors"] = [self.format_error(error) for error in result.errors]
        if result.data is not None or not result.errors:
            formatted["data"] = result.data
        if result.extensions:
            formatted["extensions"] = result.extensions
        return formatted
