from __future__ import annotations
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator
from graphql_service.interfaces.protocols import AmbientState
from graphql_service.pipeline.errors import AmbientStateError


_MISSING = object()

# The item a surrounding process is currently rendering, if any
current_item: ContextVar[Any] = ContextVar("current_item", default=None)


class ContextVarAmbientState:
    def __init__(self, var: ContextVar[Any] = current_item):
        self.var = var

    def capture(self) -> Any:
        return self.var.get()

    def restore(self, snapshot: Any) -> None:
        self.var.set(snapshot)


class AttributeAmbientState:
    """Snapshots named attributes of a long-lived object.

    Attributes that did not exist at capture time are removed on restore.
    """

    def __init__(self, target: Any, *names: str):
        if not names:
            raise ValueError("At least one attribute name is required")
        self.target = target
        self.names = names

    def capture(self) -> dict[str, Any]:
        return {name: getattr(self.target, name, _MISSING) for name in self.names}

    def restore(self, snapshot: dict[str, Any]) -> None:
        for name, value in snapshot.items():
            if value is _MISSING:
                if hasattr(self.target, name):
                    delattr(self.target, name)
            else:
                setattr(self.target, name, value)


class NullAmbientState:
    def capture(self) -> None:
        return None

    def restore(self, snapshot: Any) -> None:
        return None


def capture(ambient: AmbientState) -> Any:
    try:
        return ambient.capture()
    except Exception as e:
        raise AmbientStateError(f"Unable to capture ambient state: {e}") from e


@contextmanager
def preserved(ambient: AmbientState, snapshot: Any) -> Iterator[Any]:
    """Restore ``snapshot`` on exit, whatever happened inside the block."""
    try:
        yield snapshot
    finally:
        ambient.restore(snapshot)
