from __future__ import annotations
import re
from collections.abc import Mapping, Sequence
from json import JSONDecodeError, loads
from logging import getLogger
from typing import Any
from urllib.parse import parse_qsl
from pydantic import ValidationError
from graphql_service.interfaces.schemas import GraphQLRequest, OperationParams
from graphql_service.pipeline.errors import InvalidVariablesError, MalformedInputError


logger = getLogger(__name__)

_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"[\r\n\t ]+")


def sanitize_text_field(value: Any) -> Any:
    """Strip markup and collapse whitespace in strings, recursing into containers"""
    if isinstance(value, str):
        return _WHITESPACE.sub(" ", _TAGS.sub("", value)).strip()
    if isinstance(value, Mapping):
        return {key: sanitize_text_field(item) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize_text_field(item) for item in value]
    return value


def parse_extensions(extensions: Any) -> Any:
    # Undecodable extensions are left as-is rather than failing the request
    if isinstance(extensions, str):
        try:
            return loads(extensions)
        except JSONDecodeError:
            return extensions
    return extensions


def decode_variables(variables: Any) -> dict[str, Any] | None:
    """Turn the ``variables`` parameter into a mapping.

    Lenient on purpose: anything that cannot be read as a JSON object becomes
    ``None`` so that resolvers see no variables instead of a failed request.
    """
    if variables is None or variables == "":
        return None
    if isinstance(variables, Mapping):
        return {str(key): sanitize_text_field(value) for key, value in variables.items()}
    if isinstance(variables, str):
        try:
            variables = loads(variables)
        except JSONDecodeError as e:
            logger.warning("%s", InvalidVariablesError(f"Undecodable variables: {e}"))
            return None
        if variables is None:
            return None
        if isinstance(variables, Mapping):
            return dict(variables)
    logger.warning(
        "%s",
        InvalidVariablesError(
            f"Variables must be an object, got {type(variables).__name__}"
        ),
    )
    return None


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "request"
    return f'GraphQL Request parameter "{field}" is invalid: {first.get("msg")}'


def normalize_operation(raw: Any, read_only: bool = False) -> OperationParams:
    """Normalize one batch element; structural problems are kept on the result."""
    if not isinstance(raw, Mapping):
        return OperationParams(
            error=f"GraphQL Request must be an object, got {type(raw).__name__}",
            read_only=read_only,
        )
    try:
        request = GraphQLRequest.model_validate(dict(raw))
    except ValidationError as e:
        return OperationParams(error=_validation_message(e), read_only=read_only)

    params = OperationParams(
        query=request.query if request.query else None,
        operation_name=request.operationName or None,
        variables=decode_variables(request.variables),
        extensions=parse_extensions(request.extensions),
        read_only=read_only,
    )
    if params.query is None:
        params.query_id = params.persisted_query_hash
    return params


def is_batch(raw: Any) -> bool:
    return isinstance(raw, Sequence) and not isinstance(raw, (str, bytes))


class ParamNormalizer:
    def __init__(self, batching: bool = True):
        self.batching = batching

    def normalize(self, raw: Any, read_only: bool = False) -> list[OperationParams]:
        if isinstance(raw, Mapping):
            return [normalize_operation(raw, read_only=read_only)]
        if is_batch(raw):
            if not self.batching:
                raise MalformedInputError("Batched queries are not supported by this server")
            if len(raw) == 0:
                raise MalformedInputError("Batch request must contain at least one operation")
            return [normalize_operation(item, read_only=read_only) for item in raw]
        raise MalformedInputError(
            f"GraphQL Server expects JSON object or array, but got {type(raw).__name__}"
        )

    def parse_http_request(
        self,
        method: str,
        content_type: str | None,
        body: bytes,
        query_params: Mapping[str, str],
    ) -> Any:
        """Read the raw request parameters from an HTTP request.

        Returns a mapping for a single operation or a list for a batch.
        """
        method = method.upper()
        if method == "GET":
            return dict(query_params)
        if method != "POST":
            raise MalformedInputError(
                f"HTTP Method {method} is not supported for GraphQL requests"
            )

        media_type = (content_type or "").split(";")[0].strip().lower()
        if not media_type:
            raise MalformedInputError("Missing Content-Type header")
        if media_type == "application/graphql":
            return {"query": body.decode("utf-8", errors="replace")}
        if media_type == "application/json":
            try:
                decoded = loads(body or b"null")
            except (JSONDecodeError, UnicodeDecodeError) as e:
                raise MalformedInputError(f"Could not parse JSON body: {e}") from e
            if not isinstance(decoded, (dict, list)):
                raise MalformedInputError(
                    f"GraphQL Server expects JSON object or array, but got {type(decoded).__name__}"
                )
            return decoded
        if media_type == "application/x-www-form-urlencoded":
            return dict(parse_qsl(body.decode("utf-8", errors="replace")))
        raise MalformedInputError(f"Unexpected content type: {media_type}")
