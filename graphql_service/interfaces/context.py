from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from graphql_service.interfaces.schemas import OperationParams


class RequestState(str, Enum):
    CREATED = "created"
    NORMALIZED = "normalized"
    RESOLVED = "resolved"
    EXECUTED = "executed"
    FINALIZED = "finalized"


@dataclass
class RequestContext:
    """Transient state of one logical request, owned by the pipeline"""

    raw_input: Any
    ambient_snapshot: Any = None
    operations: list[OperationParams] = field(default_factory=list)
    responses: list[Any] = field(default_factory=list)
    state: RequestState = RequestState.CREATED
    is_batch: bool = False
    read_only: bool = False
    request_id: str | None = None
