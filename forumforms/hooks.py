"""Filter hooks: named, ordered chains of value-transforming callbacks.

Filters are the extension points of the form engine. External code
registers callbacks under a hook name; at well-defined points the engine
passes a value through every callback registered for that name, in
priority order (lower first, ties in registration order), and uses the
result.

Hook names used by the forum forms:
- ``<form_name>_form_fields``: receives the FormSpec before a Form is built
- ``pre_insert_<kind>`` / ``pre_update_<kind>``: receive the entity
  arguments before they reach the content store
- ``form_contents``: receives post content before it is saved

Filters are an explicit object handed to the registry and runtime, not a
process-wide event bus.

Usage:
    >>> filters = Filters()
    >>> filters.add("form_contents", lambda content: content.strip())
    >>> filters.apply("form_contents", "  hello  ")
    'hello'
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

FilterCallback = Callable[..., Any]
"""A filter receives the value (plus optional context arguments) and returns
the transformed value."""

DEFAULT_PRIORITY = 10


class Filters:
    """Registry of filter chains keyed by hook name."""

    def __init__(self):
        self._chains: Dict[str, List[Tuple[int, int, FilterCallback]]] = {}
        self._sequence = 0

    def add(self, hook: str, callback: FilterCallback, priority: int = DEFAULT_PRIORITY) -> None:
        """Register ``callback`` on ``hook``.

        Args:
            hook: Hook name
            callback: Callable receiving the value and returning the new value
            priority: Lower runs first; equal priorities run in registration order
        """
        self._sequence += 1
        chain = self._chains.setdefault(hook, [])
        chain.append((priority, self._sequence, callback))
        chain.sort(key=lambda entry: (entry[0], entry[1]))

    def remove(self, hook: str, callback: FilterCallback) -> bool:
        """Unregister ``callback`` from ``hook``; return whether it was registered."""
        chain = self._chains.get(hook, [])
        for entry in chain:
            if entry[2] is callback:
                chain.remove(entry)
                return True
        return False

    def apply(self, hook: str, value: Any, *args: Any) -> Any:
        """Pass ``value`` through every callback on ``hook`` and return the result.

        Extra positional ``args`` are handed to each callback after the value
        and are not transformed.
        """
        for _priority, _seq, callback in list(self._chains.get(hook, [])):
            value = callback(value, *args)
        return value

    def has(self, hook: str) -> bool:
        return bool(self._chains.get(hook))

    def count(self, hook: Optional[str] = None) -> int:
        """Number of callbacks on ``hook``, or on every hook when omitted."""
        if hook is not None:
            return len(self._chains.get(hook, []))
        return sum(len(chain) for chain in self._chains.values())

    def clear(self, hook: Optional[str] = None) -> None:
        if hook is None:
            self._chains.clear()
        else:
            self._chains.pop(hook, None)


__all__ = [
    "Filters",
    "FilterCallback",
    "DEFAULT_PRIORITY",
]
