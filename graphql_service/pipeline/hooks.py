from __future__ import annotations
from collections import defaultdict
from enum import Enum
from inspect import isawaitable
from logging import getLogger
from typing import Any, Callable


logger = getLogger(__name__)


class Hook(str, Enum):
    """Named lifecycle points of a request."""

    # filter: raw request input -> raw request input
    BEFORE_NORMALIZE = "before_normalize"
    # action: (query_id, params)
    LOAD_PERSISTED_QUERY = "load_persisted_query"
    # filter: query text override -> (query_id, params)
    PERSISTED_QUERY = "persisted_query"
    # action: (query, query_id, params)
    SAVE_PERSISTED_QUERY = "save_persisted_query"
    # action: (request_context)
    BEFORE_EXECUTE = "before_execute"
    # action: (raw_result, params, request_context)
    AFTER_EXECUTE = "after_execute"
    # filter: result -> (params, request_context)
    REQUEST_RESULTS = "request_results"
    # action: (raw_result, filtered_result, params)
    RETURN_RESPONSE = "return_response"
    # action: (request_context), after ambient state is restored
    AFTER_RESPONSE = "after_response"


class HookRegistry:
    """Ordered filter and action callbacks keyed by lifecycle point.

    Filters receive the current value and return its replacement, running in
    registration order. Actions only observe; their return value is ignored.
    Both may be plain callables or coroutine functions. A callback that
    raises is logged and skipped; a failing filter leaves the value as the
    previous callback returned it.
    """

    def __init__(self) -> None:
        self._filters: dict[Hook, list[Callable[..., Any]]] = defaultdict(list)
        self._actions: dict[Hook, list[Callable[..., Any]]] = defaultdict(list)

    def add_filter(self, hook: Hook, callback: Callable[..., Any]) -> None:
        self._filters[Hook(hook)].append(callback)

    def add_action(self, hook: Hook, callback: Callable[..., Any]) -> None:
        self._actions[Hook(hook)].append(callback)

    def remove_all(self, hook: Hook | None = None) -> None:
        if hook is None:
            self._filters.clear()
            self._actions.clear()
            return
        self._filters.pop(Hook(hook), None)
        self._actions.pop(Hook(hook), None)

    def has(self, hook: Hook) -> bool:
        hook = Hook(hook)
        return bool(self._filters.get(hook) or self._actions.get(hook))

    async def apply_filters(self, hook: Hook, value: Any, *args: Any) -> Any:
        hook = Hook(hook)
        for callback in list(self._filters.get(hook, ())):
            try:
                filtered = callback(value, *args)
                if isawaitable(filtered):
                    filtered = await filtered
            except Exception:
                logger.exception("filter %r failed on %s", callback, hook.value)
                continue
            value = filtered
        return value

    async def do_action(self, hook: Hook, *args: Any) -> None:
        hook = Hook(hook)
        for callback in list(self._actions.get(hook, ())):
            try:
                result = callback(*args)
                if isawaitable(result):
                    await result
            except Exception:
                logger.exception("action %r failed on %s", callback, hook.value)
