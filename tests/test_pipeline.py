import asyncio

import pytest

from graphql_service.interfaces.context import RequestState
from graphql_service.pipeline.ambient import AttributeAmbientState, ContextVarAmbientState, current_item
from graphql_service.pipeline.dispatcher import INVALID_RESPONSE
from graphql_service.pipeline.errors import AmbientStateError
from graphql_service.pipeline.hooks import Hook
from graphql_service.pipeline.persisted_queries import hash_query
from graphql_service.pipeline.request import MISSING_QUERY


NAMED_QUERY = "query Greeting { hello }"


def apq(sha):
    return {"persistedQuery": {"version": 1, "sha256Hash": sha}}


async def test_typename_query(make_pipeline, hooks):
    states = []
    hooks.add_action(Hook.AFTER_RESPONSE, lambda request: states.append(request.state))

    result = await make_pipeline().execute({"query": "{__typename}"})

    assert len(result.responses) == 1
    assert result.responses[0]["data"]["__typename"] == "Query"
    assert "errors" not in result.responses[0]
    assert result.payload() == result.responses[0]
    assert states == [RequestState.FINALIZED]


async def test_unknown_hash_reports_not_found_without_dispatch(make_pipeline, engine):
    result = await make_pipeline().execute({"extensions": apq("deadbeef")})

    (response,) = result.responses
    assert response["errors"][0]["message"] == "PersistedQueryNotFound"
    assert response["errors"][0]["extensions"]["code"] == "PERSISTED_QUERY_NOT_FOUND"
    assert engine.queries == []


async def test_apq_round_trip(make_pipeline, engine, backend):
    pipeline = make_pipeline()
    sha = hash_query(NAMED_QUERY)

    miss = await pipeline.execute({"extensions": apq(sha)})
    assert miss.responses[0]["errors"][0]["message"] == "PersistedQueryNotFound"

    full = await pipeline.execute(
        {"query": NAMED_QUERY, "operationName": "Greeting", "extensions": apq(sha)}
    )
    assert full.responses[0] == {"data": {"hello": "Hello world"}}
    assert len(backend) == 1

    hit = await pipeline.execute({"extensions": apq(sha), "operationName": "Greeting"})
    assert hit.responses[0] == {"data": {"hello": "Hello world"}}
    assert engine.queries == [NAMED_QUERY, NAMED_QUERY]


async def test_persisted_query_over_get_is_read_only(make_pipeline):
    pipeline = make_pipeline()
    await pipeline.execute({"query": "mutation Ping { ping }", "operationName": "Ping"})

    result = await pipeline.execute(
        {"extensions": apq(hash_query("mutation Ping { ping }"))}, read_only=True
    )
    assert result.responses[0]["errors"][0]["message"] == "GET supports only query operation"


async def test_save_disabled_on_execute(make_pipeline, backend):
    pipeline = make_pipeline(save_on_execute=False)
    await pipeline.execute({"query": NAMED_QUERY, "operationName": "Greeting"})
    assert len(backend) == 0


async def test_batch_keeps_order_with_partial_failure(make_pipeline):
    result = await make_pipeline().execute([{"query": "{ fail }"}, {"query": "{ hello }"}])

    assert result.is_batch
    assert len(result.payload()) == 2
    failed, succeeded = result.responses
    assert failed["errors"][0]["path"] == ["fail"]
    assert succeeded == {"data": {"hello": "Hello world"}}


async def test_batch_mixes_element_errors_misses_and_hits(make_pipeline, engine):
    result = await make_pipeline().execute(
        [
            {"query": "{ hello }"},
            "garbage",
            {"extensions": apq("deadbeef")},
            {"operationName": "Nothing"},
            {"query": "query Hi($name: String) { hello(name: $name) }", "variables": '{"name": "Ada"}'},
        ]
    )

    hello, garbage, miss, missing, named = result.responses
    assert hello == {"data": {"hello": "Hello world"}}
    assert garbage["errors"][0]["extensions"]["code"] == "BAD_REQUEST"
    assert miss["errors"][0]["message"] == "PersistedQueryNotFound"
    assert missing["errors"][0]["message"] == MISSING_QUERY
    assert named == {"data": {"hello": "Hello Ada"}}
    assert len(engine.queries) == 2


async def test_malformed_input_skips_execution(make_pipeline, engine, hooks):
    states = []
    hooks.add_action(Hook.AFTER_RESPONSE, lambda request: states.append(request.state))

    result = await make_pipeline().execute("{ hello }")

    assert result.malformed
    assert result.payload()["errors"][0]["extensions"]["code"] == "BAD_REQUEST"
    assert engine.queries == []
    assert states == [RequestState.FINALIZED]


async def test_http_request_with_bad_json(make_pipeline):
    result = await make_pipeline().process_http_request(
        "POST", "application/json", b"{nope", {}
    )
    assert result.malformed
    assert "Could not parse JSON body" in result.payload()["errors"][0]["message"]


async def test_http_get_request(make_pipeline):
    result = await make_pipeline().process_http_request(
        "GET", None, b"", {"query": "mutation { ping }"}
    )
    assert result.payload()["errors"][0]["message"] == "GET supports only query operation"


@pytest.mark.parametrize("query", ["{ touch }", "{ touchAndFail }"])
async def test_ambient_state_is_restored(make_pipeline, page, query):
    result = await make_pipeline().execute({"query": query})
    assert result.responses[0]["data"] is not None
    assert page.current_item == "outer"


async def test_ambient_state_restored_when_request_times_out(make_pipeline, page):
    result = await make_pipeline(timeout=0.05).execute([{"query": "{ touch slow }"}, {"query": "{ hello }"}])
    assert result.responses[0]["errors"][0]["extensions"]["code"] == "OPERATION_TIMEOUT"
    assert result.responses[1] == {"data": {"hello": "Hello world"}}
    assert page.current_item == "outer"


async def test_ambient_state_restored_when_a_hook_raises(make_pipeline, page, hooks):
    def explode(request):
        page.current_item = "clobbered"
        raise RuntimeError("observer failed")

    hooks.add_action(Hook.BEFORE_EXECUTE, explode)

    result = await make_pipeline().execute({"query": "{ hello }"})

    assert result.responses == [{"data": {"hello": "Hello world"}}]
    assert page.current_item == "outer"


async def test_failing_after_response_observer_keeps_the_response(make_pipeline, hooks):
    def report(request):
        raise RuntimeError("statsd down")

    hooks.add_action(Hook.AFTER_RESPONSE, report)
    hooks.add_filter(Hook.REQUEST_RESULTS, lambda result, params, request: 1 / 0)

    result = await make_pipeline().execute({"query": "{ hello }"})

    assert result.payload() == {"data": {"hello": "Hello world"}}


async def test_context_var_ambient_state(make_pipeline):
    token = current_item.set("outer-post")
    try:
        pipeline = make_pipeline(ambient=ContextVarAmbientState())
        pipeline.hooks.add_action(Hook.BEFORE_EXECUTE, lambda request: current_item.set("inner"))
        await pipeline.execute({"query": "{ hello }"})
        assert current_item.get() == "outer-post"
    finally:
        current_item.reset(token)


async def test_ambient_capture_failure_is_fatal(make_pipeline):
    class Broken:
        def capture(self):
            raise LookupError("no current item")

        def restore(self, snapshot):
            pass

    with pytest.raises(AmbientStateError):
        await make_pipeline(ambient=Broken()).execute({"query": "{ hello }"})


def test_attribute_ambient_state_removes_new_attributes(page):
    ambient = AttributeAmbientState(page, "current_item", "extra")
    snapshot = ambient.capture()
    page.extra = "leaked"
    page.current_item = "changed"
    ambient.restore(snapshot)
    assert page.current_item == "outer"
    assert not hasattr(page, "extra")


async def test_before_normalize_filter_rewrites_input(make_pipeline, hooks):
    hooks.add_filter(Hook.BEFORE_NORMALIZE, lambda raw, request: {"query": "{ hello }"})
    result = await make_pipeline().execute({"query": "{ fail }"})
    assert result.responses[0] == {"data": {"hello": "Hello world"}}


async def test_tuple_batch_from_filter_keeps_every_response(make_pipeline, hooks):
    hooks.add_filter(
        Hook.BEFORE_NORMALIZE, lambda raw, request: ({"query": "{ hello }"}, {"query": "{ fail }"})
    )
    result = await make_pipeline().execute({"query": "{ hello }"})

    assert result.is_batch
    payload = result.payload()
    assert len(payload) == 2
    assert payload[0] == {"data": {"hello": "Hello world"}}


async def test_hanging_persisted_query_override_respects_request_timeout(make_pipeline, hooks):
    async def hang(query, query_id, params):
        await asyncio.sleep(3600)

    hooks.add_filter(Hook.PERSISTED_QUERY, hang)
    pipeline = make_pipeline()

    result = await asyncio.wait_for(
        pipeline.execute({"extensions": apq("abc")}, timeout=0.05), 0.5
    )

    assert result.responses[0]["errors"][0]["message"] == "PersistedQueryNotFound"


async def test_result_filters_run_in_order(make_pipeline, hooks):
    observed = []

    def first(result, params, request):
        result["extensions"] = {"seen": ["first"]}
        return result

    async def second(result, params, request):
        result["extensions"]["seen"].append("second")
        return result

    hooks.add_filter(Hook.REQUEST_RESULTS, first)
    hooks.add_filter(Hook.REQUEST_RESULTS, second)
    hooks.add_action(
        Hook.RETURN_RESPONSE,
        lambda raw, filtered, params: observed.append((raw, filtered, params.query)),
    )

    result = await make_pipeline().execute({"query": "{ hello }"})

    assert result.responses[0]["extensions"] == {"seen": ["first", "second"]}
    raw, filtered, query = observed[0]
    assert "extensions" not in raw
    assert filtered is result.responses[0]
    assert query == "{ hello }"


async def test_invalid_filtered_result_is_normalized(make_pipeline, hooks):
    hooks.add_filter(Hook.REQUEST_RESULTS, lambda result, params, request: None)
    result = await make_pipeline().execute({"query": "{ hello }"})
    assert result.responses[0] == {"errors": [INVALID_RESPONSE]}


async def test_after_execute_sees_raw_result(make_pipeline, hooks):
    seen = []
    hooks.add_action(
        Hook.AFTER_EXECUTE, lambda result, params, request: seen.append((result, request.state))
    )
    await make_pipeline().execute({"query": "{ hello }"})
    assert seen == [({"data": {"hello": "Hello world"}}, RequestState.EXECUTED)]


async def test_save_failure_does_not_fail_request(make_pipeline, hooks):
    def broken_save(query, query_id, params):
        raise RuntimeError("disk full")

    hooks.add_action(Hook.SAVE_PERSISTED_QUERY, broken_save)
    result = await make_pipeline().execute({"query": NAMED_QUERY, "operationName": "Greeting"})
    assert result.responses[0] == {"data": {"hello": "Hello world"}}


async def test_hash_mismatch_still_executes(make_pipeline, backend):
    result = await make_pipeline().execute(
        {"query": NAMED_QUERY, "operationName": "Greeting", "extensions": apq("0" * 64)}
    )
    assert result.responses[0] == {"data": {"hello": "Hello world"}}
    assert await backend.get(hash_query(NAMED_QUERY)) is not None


async def test_schema_provider_failure_is_per_operation(make_pipeline, schema):
    class BrokenProvider:
        def get_schema(self):
            raise RuntimeError("schema unavailable")

        def get_context(self, request):
            return {}

    result = await make_pipeline(schema_provider=BrokenProvider()).execute(
        [{"query": "{ hello }"}, {"extensions": apq("deadbeef")}]
    )
    assert result.responses[0]["errors"][0]["message"] == "Internal server error"
    assert result.responses[1]["errors"][0]["message"] == "PersistedQueryNotFound"
