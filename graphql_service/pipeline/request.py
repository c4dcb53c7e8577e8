from __future__ import annotations
from copy import deepcopy
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Callable, Mapping
from graphql import ExecutionResult
from graphql_service.interfaces.context import RequestContext, RequestState
from graphql_service.interfaces.protocols import AmbientState
from graphql_service.interfaces.schemas import OperationParams
from graphql_service.pipeline.ambient import NullAmbientState, capture, preserved
from graphql_service.pipeline.dispatcher import Dispatcher, invalid_response
from graphql_service.pipeline.errors import (
    EngineExecutionError,
    MalformedInputError,
    PersistedQueryNotFound,
    RequestParamsError,
    error_result,
)
from graphql_service.pipeline.hooks import Hook, HookRegistry
from graphql_service.pipeline.normalizer import ParamNormalizer, is_batch
from graphql_service.pipeline.persisted_queries import PersistedQueryStore, hash_query


logger = getLogger(__name__)

MISSING_QUERY = 'GraphQL Request must include at least one of those two parameters: "query" or "queryId"'


@dataclass
class PipelineResult:
    responses: list[dict[str, Any]]
    is_batch: bool = False
    malformed: bool = False

    def payload(self) -> dict[str, Any] | list[dict[str, Any]]:
        return self.responses if self.is_batch else self.responses[0]


class RequestPipeline:
    """Lifecycle of one GraphQL request.

    normalize -> resolve persisted queries -> execute -> finalize. Ambient
    state captured on entry is restored on the way out no matter how the
    request ended, so a GraphQL call made from inside another process (e.g.
    while rendering a page) leaves that process untouched.
    """

    def __init__(
        self,
        normalizer: ParamNormalizer,
        store: PersistedQueryStore,
        dispatcher: Dispatcher,
        hooks: HookRegistry,
        ambient: AmbientState | None = None,
        timeout: float | None = None,
        save_on_execute: bool = True,
    ):
        self.normalizer = normalizer
        self.store = store
        self.dispatcher = dispatcher
        self.hooks = hooks
        self.ambient = ambient if ambient is not None else NullAmbientState()
        self.timeout = timeout
        self.save_on_execute = save_on_execute

    async def execute(
        self,
        raw: Any,
        *,
        read_only: bool = False,
        timeout: float | None = None,
        request_id: str | None = None,
    ) -> PipelineResult:
        return await self._process(lambda: raw, read_only, timeout, request_id)

    async def process_http_request(
        self,
        method: str,
        content_type: str | None,
        body: bytes,
        query_params: Mapping[str, str],
        *,
        timeout: float | None = None,
        request_id: str | None = None,
    ) -> PipelineResult:
        def read_raw() -> Any:
            return self.normalizer.parse_http_request(
                method, content_type, body, query_params
            )

        return await self._process(
            read_raw, method.upper() == "GET", timeout, request_id
        )

    async def _process(
        self,
        read_raw: Callable[[], Any],
        read_only: bool,
        timeout: float | None,
        request_id: str | None,
    ) -> PipelineResult:
        snapshot = capture(self.ambient)
        request = RequestContext(
            raw_input=None,
            ambient_snapshot=snapshot,
            read_only=read_only,
            request_id=request_id,
        )
        timeout = timeout or self.timeout
        malformed = False
        with preserved(self.ambient, snapshot):
            try:
                await self._normalize(request, read_raw)
            except MalformedInputError as e:
                logger.info("rid=%s malformed request: %s", request_id, e)
                malformed = True
                request.is_batch = False
                request.responses = [self.dispatcher.format_result(error_result(e))]
            else:
                results = await self._resolve(request, timeout)
                request.state = RequestState.RESOLVED
                await self._execute(request, results, timeout)
                request.state = RequestState.EXECUTED
                request.responses = [
                    await self._finalize_one(request, operation, result)
                    for operation, result in zip(request.operations, results)
                ]
        request.state = RequestState.FINALIZED
        await self.hooks.do_action(Hook.AFTER_RESPONSE, request)
        logger.info(
            "rid=%s graphql request finalized operations=%s batch=%s",
            request_id,
            len(request.operations),
            request.is_batch,
        )
        return PipelineResult(
            responses=request.responses,
            is_batch=request.is_batch,
            malformed=malformed,
        )

    async def _normalize(self, request: RequestContext, read_raw: Callable[[], Any]) -> None:
        request.raw_input = read_raw()
        raw = await self.hooks.apply_filters(
            Hook.BEFORE_NORMALIZE, request.raw_input, request
        )
        request.operations = self.normalizer.normalize(raw, read_only=request.read_only)
        request.is_batch = is_batch(raw)
        request.state = RequestState.NORMALIZED

    async def _resolve(
        self, request: RequestContext, timeout: float | None
    ) -> list[ExecutionResult | None]:
        """Resolve each operation's document; ``None`` marks one ready to execute."""
        results: list[ExecutionResult | None] = []
        for operation in request.operations:
            if operation.error is not None:
                results.append(error_result(RequestParamsError(operation.error)))
            elif operation.query is not None:
                await self._save(operation, request.request_id, timeout)
                results.append(None)
            elif operation.query_id is None:
                results.append(error_result(RequestParamsError(MISSING_QUERY)))
            else:
                query = await self.store.load(operation.query_id, operation, timeout)
                if query:
                    operation.query = query
                    results.append(None)
                else:
                    logger.info(
                        "rid=%s persisted query not found id=%s",
                        request.request_id,
                        operation.query_id,
                    )
                    results.append(error_result(PersistedQueryNotFound()))
        return results

    async def _save(
        self, operation: OperationParams, request_id: str | None, timeout: float | None
    ) -> None:
        client_hash = operation.persisted_query_hash
        if client_hash is not None and client_hash != hash_query(operation.query):
            logger.warning(
                "rid=%s persisted query hash does not match query hash=%s",
                request_id,
                client_hash,
            )
        if not self.save_on_execute:
            return
        try:
            await self.store.save(operation.query, operation, timeout)
        except Exception:
            logger.exception("rid=%s persisted query save failed", request_id)

    async def _execute(
        self,
        request: RequestContext,
        results: list[ExecutionResult | None],
        timeout: float | None,
    ) -> None:
        pending = [index for index, result in enumerate(results) if result is None]
        if not pending:
            return
        await self.hooks.do_action(Hook.BEFORE_EXECUTE, request)
        try:
            schema, context = self.dispatcher.build_unit(request)
        except Exception as e:
            logger.exception("rid=%s unable to build schema", request.request_id)
            error = EngineExecutionError(str(e) or type(e).__name__)
            error.__cause__ = e
            for index in pending:
                results[index] = error_result(error)
            return
        executed = await self.dispatcher.dispatch(
            schema, context, [request.operations[index] for index in pending], timeout
        )
        for index, result in zip(pending, executed):
            results[index] = result

    async def _finalize_one(
        self,
        request: RequestContext,
        operation: OperationParams,
        result: ExecutionResult | None,
    ) -> dict[str, Any]:
        raw_result = self.dispatcher.format_result(result)
        await self.hooks.do_action(Hook.AFTER_EXECUTE, raw_result, operation, request)
        filtered = await self.hooks.apply_filters(
            Hook.REQUEST_RESULTS, deepcopy(raw_result), operation, request
        )
        if not isinstance(filtered, dict) or not filtered:
            filtered = invalid_response()
        await self.hooks.do_action(Hook.RETURN_RESPONSE, raw_result, filtered, operation)
        return filtered
