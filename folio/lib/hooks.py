"""Async hook/filter registry for reacting to workflow events.

Actions run callbacks for their side effects; filters pass a value through
each callback and return the result.

Usage:
    from folio.lib.hooks import action, AFTER_CONTENT_TRANSITION

    @action(AFTER_CONTENT_TRANSITION)
    async def notify_reviewers(item, action, actor):
        ...

    query = await hooks.apply_filters(CONTENT_LIST_QUERY, query)
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

T = TypeVar("T")


@dataclass(order=True)
class HookHandler:
    """A registered hook handler with priority."""

    priority: int
    callback: Callable = field(compare=False)

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        """Call the handler, awaiting it if it is a coroutine function."""
        result = self.callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            return await result
        return result


class HookRegistry:
    """Registry of action and filter handlers keyed by hook name."""

    def __init__(self) -> None:
        self._actions: dict[str, list[HookHandler]] = defaultdict(list)
        self._filters: dict[str, list[HookHandler]] = defaultdict(list)

    def add_action(self, hook_name: str, callback: Callable[..., Any], priority: int = 10) -> None:
        """Register an action callback. Lower priorities run first."""
        self._actions[hook_name].append(HookHandler(priority=priority, callback=callback))
        self._actions[hook_name].sort()

    def add_filter(self, hook_name: str, callback: Callable[..., T], priority: int = 10) -> None:
        """Register a filter callback. Lower priorities run first."""
        self._filters[hook_name].append(HookHandler(priority=priority, callback=callback))
        self._filters[hook_name].sort()

    def remove_action(self, hook_name: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._actions, hook_name, callback)

    def remove_filter(self, hook_name: str, callback: Callable[..., Any]) -> bool:
        return self._remove(self._filters, hook_name, callback)

    @staticmethod
    def _remove(table: dict[str, list[HookHandler]], hook_name: str, callback: Callable[..., Any]) -> bool:
        handlers = table.get(hook_name, [])
        for i, handler in enumerate(handlers):
            if handler.callback is callback:
                handlers.pop(i)
                return True
        return False

    def has_action(self, hook_name: str) -> bool:
        return bool(self._actions.get(hook_name))

    def has_filter(self, hook_name: str) -> bool:
        return bool(self._filters.get(hook_name))

    async def do_action(self, hook_name: str, *args: Any, **kwargs: Any) -> None:
        """Execute all registered action callbacks in priority order."""
        from folio.lib.observability import span

        with span(f"hook.action:{hook_name}", hook_name=hook_name):
            for handler in list(self._actions.get(hook_name, [])):
                await handler.call(*args, **kwargs)

    async def apply_filters(self, hook_name: str, value: T, *args: Any, **kwargs: Any) -> T:
        """Pass ``value`` through every registered filter and return the result."""
        from folio.lib.observability import span

        with span(f"hook.filter:{hook_name}", hook_name=hook_name):
            for handler in list(self._filters.get(hook_name, [])):
                value = await handler.call(value, *args, **kwargs)
            return value

    def clear(self) -> None:
        """Clear all registered hooks. Useful for testing."""
        self._actions.clear()
        self._filters.clear()


# Global singleton registry
hooks = HookRegistry()


def action(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator registering a function as an action handler on the global registry."""

    def decorator(func: Callable) -> Callable:
        hooks.add_action(hook_name, func, priority)
        return func

    return decorator


def filter(hook_name: str, priority: int = 10) -> Callable[[Callable], Callable]:
    """Decorator registering a function as a filter handler on the global registry."""

    def decorator(func: Callable) -> Callable:
        hooks.add_filter(hook_name, func, priority)
        return func

    return decorator


# Actions
AFTER_CONTENT_CREATE = "after_content_create"  # (item, actor)
AFTER_CONTENT_TRANSITION = "after_content_transition"  # (item, action, actor)
AFTER_CONTENT_DELETE = "after_content_delete"  # (content_id, actor)
SCHEDULER_RUN_COMPLETE = "scheduler_run_complete"  # (run)
SCHEDULER_ALERT = "scheduler_alert"  # (metrics)

# Filters
CONTENT_LIST_QUERY = "content_list_query"  # (select)
