from io import BytesIO
from fastapi import Request, APIRouter
from fastapi.responses import JSONResponse, StreamingResponse
from graphql import print_schema
from graphql_service.pipeline.request import PipelineResult, RequestPipeline


router = APIRouter(prefix="/graphql")


def get_pipeline(request: Request) -> RequestPipeline:
    return request.app.state.pipeline


def to_response(result: PipelineResult) -> JSONResponse:
    # Operation failures travel in the errors array, only unreadable input is a 400
    return JSONResponse(
        content=result.payload(), status_code=400 if result.malformed else 200
    )


@router.post("")
async def graphql_request(request: Request):
    body = await request.body()
    result = await get_pipeline(request).process_http_request(
        request.method,
        request.headers.get("content-type"),
        body,
        request.query_params,
        request_id=getattr(request.state, "request_id", None),
    )
    return to_response(result)


@router.get("")
async def graphql_get_request(request: Request):
    result = await get_pipeline(request).process_http_request(
        request.method,
        request.headers.get("content-type"),
        b"",
        request.query_params,
        request_id=getattr(request.state, "request_id", None),
    )
    return to_response(result)


@router.get("/schema")
async def graphql_schema(request: Request):
    schema = get_pipeline(request).dispatcher.schema_provider.get_schema()
    headers = {"Content-Disposition": 'attachment; filename="schema.gql"'}
    return StreamingResponse(BytesIO(print_schema(schema).encode()), headers=headers)
