from __future__ import annotations
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.types import JsonValue


class GraphQLRequest(BaseModel):
    """Shape of one operation as sent over the wire."""

    model_config = ConfigDict(extra="ignore")

    operationName: StrictStr | None = None
    query: StrictStr | None = None
    variables: JsonValue | None = None
    extensions: JsonValue | None = None


class OperationParams(BaseModel):
    """A single normalized GraphQL operation.

    ``query_id`` is only set when ``query`` is absent and the APQ extension
    carries a hash. ``error`` is set when the element itself was structurally
    invalid; such an operation is never executed.
    """

    model_config = ConfigDict(populate_by_name=True)

    query: str | None = None
    operation_name: str | None = Field(default=None, alias="operationName")
    variables: dict[str, JsonValue] | None = None
    extensions: JsonValue | None = None
    query_id: str | None = Field(default=None, alias="queryId")
    error: str | None = None
    read_only: bool = False

    @property
    def persisted_query_hash(self) -> str | None:
        extensions = self.extensions
        if not isinstance(extensions, dict):
            return None
        persisted = extensions.get("persistedQuery")
        if not isinstance(persisted, dict):
            return None
        sha = persisted.get("sha256Hash")
        return sha if isinstance(sha, str) and sha else None


class PersistedQueryRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    query_text: str
    label: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
