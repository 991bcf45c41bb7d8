"""Action events emitted while forum forms are processed.

Where filters transform values, actions only notify: the submission
runtime emits a ``FormEvent`` when it starts processing a form and after
it persists a question, answer or comment. Listeners are plain callables.

Listener failures are isolated: a raising listener is logged and the
remaining listeners still run, so a broken notification plugin cannot
fail a submission that was already saved.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from forumforms.types import EventType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormEvent:
    """A single action emitted by the submission runtime.

    Attributes:
        type: Event type from EventType enum
        form_name: Name of the form being processed
        ts: UTC timestamp when the event occurred
        payload: Event-specific data (e.g. {"post_id": 12})

    Examples:
        >>> event = FormEvent(type=EventType.QUESTION_SAVED, form_name="form_question",
        ...                   payload={"post_id": 12})
        >>> event.to_dict()["type"]
        'question_saved'
    """
    type: EventType
    form_name: str
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.type, str) and not isinstance(self.type, EventType):
            object.__setattr__(self, "type", EventType(self.type))

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "type": self.type.value,
            "formName": self.form_name,
            "ts": self.ts.isoformat(),
            "payload": dict(self.payload),
        }

    def to_jsonl(self) -> str:
        """Convert event to a single JSON line."""
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormEvent":
        ts = datetime.fromisoformat(data["ts"].replace("Z", "+00:00"))
        return cls(
            type=EventType(data["type"]),
            form_name=data["formName"],
            ts=ts,
            payload=dict(data.get("payload") or {}),
        )


EventListener = Callable[[FormEvent], None]


class EventEmitter:
    """Dispatches FormEvents to listeners.

    Features:
    - Type-specific subscriptions
    - Wildcard subscriptions (all events)
    - Synchronous dispatch in registration order, type listeners first
    - Error isolation: listener exceptions are logged, not propagated

    Examples:
        >>> seen = []
        >>> emitter = EventEmitter()
        >>> emitter.on(EventType.QUESTION_SAVED, seen.append)
        >>> emitter.emit(FormEvent(type=EventType.QUESTION_SAVED, form_name="form_question"))
        >>> len(seen)
        1
    """

    def __init__(self):
        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._any_listeners: List[EventListener] = []

    def on(self, event_type: EventType, listener: EventListener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: EventListener) -> None:
        self._any_listeners.append(listener)

    def off(self, event_type: EventType, listener: EventListener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: EventListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def emit(self, event: FormEvent) -> None:
        """Dispatch ``event`` to type listeners, then wildcard listeners."""
        for listener in list(self._listeners.get(event.type, [])) + list(self._any_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r failed for %s event on %s",
                    listener, event.type.value, event.form_name,
                )

    def emit_type(self, event_type: EventType, form_name: str, **payload: Any) -> FormEvent:
        """Build a FormEvent from arguments, emit it and return it."""
        event = FormEvent(type=event_type, form_name=form_name, payload=payload)
        self.emit(event)
        return event

    def clear(self) -> None:
        self._listeners.clear()
        self._any_listeners.clear()

    def listener_count(self, event_type: Optional[EventType] = None) -> int:
        """Count listeners for ``event_type``, or all listeners (wildcards included)."""
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return len(self._any_listeners) + sum(len(v) for v in self._listeners.values())


__all__ = [
    "FormEvent",
    "EventListener",
    "EventEmitter",
]
