"""
Event bus for Fuxi.

A synchronous broadcast channel. Publishing never fails because of a
listener: listener errors are logged and the remaining listeners still
receive the event. Events published from inside a listener are queued and
delivered after the current event, so every subscriber observes events in
publication order.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Generic, List, Optional, TypeVar

T = TypeVar('T')


class EventType(str, Enum):
    SESSION_CREATED = "SESSION_CREATED"
    USER_JOINED = "USER_JOINED"
    USER_LEFT = "USER_LEFT"
    REACTION_RECORDED = "REACTION_RECORDED"
    TRACK_CHANGED = "TRACK_CHANGED"
    SESSION_ENDED = "SESSION_ENDED"
    RECOMMENDATIONS_UPDATED = "RECOMMENDATIONS_UPDATED"


@dataclass(frozen=True)
class SessionEvent:
    """An event about one session. Serialises as ``{type, sessionId, timestamp, ...payload}``."""
    type: EventType
    session_id: str
    timestamp: int
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type.value,
            'sessionId': self.session_id,
            'timestamp': self.timestamp,
        }
        data.update(self.payload)
        return data


@dataclass(frozen=True)
class ReactionEvent:
    """A raw reaction as published on the reaction bus."""
    session_id: str
    reaction: Any


class Subscription:
    """Handle returned by ``EventBus.subscribe``. Cancelling twice is harmless."""

    def __init__(self, bus: 'EventBus', listener: Callable[[Any], None],
                 predicate: Optional[Callable[[Any], bool]] = None):
        self._bus = bus
        self.listener = listener
        self.predicate = predicate
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._bus._remove(self)

    def accepts(self, event: Any) -> bool:
        return self.active and (self.predicate is None or self.predicate(event))


class EventBus(Generic[T]):
    """Broadcasts published items to every active subscription."""

    def __init__(self, name: str = "events"):
        self.name = name
        self.logger = logging.getLogger(__name__)
        self._subscriptions: List[Subscription] = []
        self._pending: Deque[T] = deque()
        self._dispatching = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, listener: Callable[[T], None],
                  predicate: Optional[Callable[[T], bool]] = None) -> Subscription:
        """Register ``listener``; ``predicate`` filters which events it receives."""
        subscription = Subscription(self, listener, predicate)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, event: T) -> None:
        self._pending.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending:
                self._dispatch(self._pending.popleft())
        finally:
            self._dispatching = False

    def _dispatch(self, event: T) -> None:
        for subscription in list(self._subscriptions):
            try:
                if subscription.accepts(event):
                    subscription.listener(event)
            except Exception:
                self.logger.exception(f"Listener on bus '{self.name}' failed")

    def _remove(self, subscription: Subscription) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass

    def clear(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()
