from __future__ import annotations
from graphql import ExecutionResult, GraphQLError


class PipelineError(Exception):
    """Base for errors raised by the request pipeline.

    ``client_safe`` errors keep their message in production responses, all
    others are masked unless debug mode is on.
    """

    code = "INTERNAL_SERVER_ERROR"
    client_safe = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    def to_graphql_error(self) -> GraphQLError:
        return GraphQLError(
            str(self), original_error=self, extensions={"code": self.code}
        )


class MalformedInputError(PipelineError):
    code = "BAD_REQUEST"
    client_safe = True


class RequestParamsError(PipelineError):
    """A single operation of the request has invalid parameters."""

    code = "BAD_REQUEST"
    client_safe = True


class PersistedQueryNotFound(PipelineError):
    code = "PERSISTED_QUERY_NOT_FOUND"
    client_safe = True


class InvalidVariablesError(PipelineError):
    code = "BAD_USER_INPUT"
    client_safe = True


class EngineExecutionError(PipelineError):
    code = "INTERNAL_SERVER_ERROR"


class OperationTimeoutError(PipelineError):
    code = "OPERATION_TIMEOUT"
    client_safe = True

    @classmethod
    def default_message(cls) -> str:
        return "Operation timed out"


class StoreUnavailableError(PipelineError):
    code = "STORE_UNAVAILABLE"


class AmbientStateError(PipelineError):
    code = "AMBIENT_STATE_ERROR"


def error_result(error: PipelineError) -> ExecutionResult:
    return ExecutionResult(data=None, errors=[error.to_graphql_error()])
