"""
Time-based stream stages for Fuxi.

These stages run on the asyncio event loop that owns the coordinator:

- ``Debouncer``: trailing per-key debounce, only the latest item survives a
  quiet window.
- ``RecommendationTrigger``: fans in reactions, catalog, preference and
  context changes per session and fires at most once per debounce window.
- ``PeriodicTask``: fixed-interval callback, used for metrics broadcasts.
- ``ResourceRegistry``: tracks timers and subscriptions per session and per
  connection so they can be cancelled synchronously.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Generic, Hashable, List, Optional, Protocol, Set, TypeVar

from .bus import EventBus, ReactionEvent, Subscription

T = TypeVar('T')

logger = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> Any:
        ...


def _run_callback(callback: Callable[[Any], Any], item: Any) -> None:
    try:
        result = callback(item)
        if inspect.isawaitable(result):
            asyncio.ensure_future(result)
    except Exception:
        logger.exception("Stream callback failed")


class Debouncer(Generic[T]):
    """Trailing debounce keyed by source.

    Every ``submit`` restarts the key's timer. When the timer expires the
    callback receives the latest item (or the merge of all items submitted in
    the window when ``merge`` is given).
    """

    def __init__(self, delay_s: float, callback: Callable[[T], Any],
                 merge: Optional[Callable[[T, T], T]] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.delay_s = delay_s
        self.callback = callback
        self.merge = merge
        self._loop = loop
        self._pending: Dict[Hashable, T] = {}
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}

    @property
    def pending_keys(self) -> Set[Hashable]:
        return set(self._pending)

    def submit(self, key: Hashable, item: T) -> None:
        if key in self._pending and self.merge is not None:
            item = self.merge(self._pending[key], item)
        self._pending[key] = item
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.delay_s, self._fire, key)

    def _fire(self, key: Hashable) -> None:
        self._timers.pop(key, None)
        if key not in self._pending:
            return
        _run_callback(self.callback, self._pending.pop(key))

    def flush(self, key: Hashable) -> None:
        """Deliver a pending item immediately."""
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key in self._pending:
            _run_callback(self.callback, self._pending.pop(key))

    def cancel_key(self, key: Hashable) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._pending.pop(key, None)

    def cancel(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()


@dataclass(frozen=True)
class TriggerSnapshot:
    """Latest merged inputs for one session's recommendation recomputation."""
    session_id: str
    sources: FrozenSet[str] = frozenset()
    last_reaction: Any = None

    def merged_with(self, other: 'TriggerSnapshot') -> 'TriggerSnapshot':
        return TriggerSnapshot(
            session_id=self.session_id,
            sources=self.sources | other.sources,
            last_reaction=other.last_reaction if other.last_reaction is not None else self.last_reaction,
        )


class RecommendationTrigger:
    """Coalesces recommendation inputs per session.

    Sources are ``reaction``, ``preferences``, ``catalog`` and ``context``.
    ``on_fire`` is called with a ``TriggerSnapshot`` once the session has been
    quiet for ``delay_s``.
    """

    def __init__(self, reaction_bus: EventBus, on_fire: Callable[[TriggerSnapshot], Any],
                 delay_s: float = 0.5):
        self.reaction_bus = reaction_bus
        self.on_fire = on_fire
        self.delay_s = delay_s
        self._debouncer: Optional[Debouncer[TriggerSnapshot]] = None
        self._subscription: Optional[Subscription] = None

    @property
    def running(self) -> bool:
        return self._debouncer is not None

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self.running:
            return
        loop = loop or asyncio.get_running_loop()
        self._debouncer = Debouncer(
            self.delay_s, self.on_fire,
            merge=lambda old, new: old.merged_with(new),
            loop=loop,
        )
        self._subscription = self.reaction_bus.subscribe(self._on_reaction)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None

    def _on_reaction(self, event: ReactionEvent) -> None:
        self.notify(event.session_id, "reaction", last_reaction=event.reaction)

    def notify(self, session_id: str, source: str, last_reaction: Any = None) -> None:
        """Record an input change. Ignored while the trigger is stopped."""
        if self._debouncer is None:
            return
        self._debouncer.submit(
            session_id,
            TriggerSnapshot(session_id, frozenset({source}), last_reaction),
        )

    def discard(self, session_id: str) -> None:
        """Drop any pending recomputation for an ended session."""
        if self._debouncer is not None:
            self._debouncer.cancel_key(session_id)


class PeriodicTask:
    """Runs ``callback`` every ``interval_s`` seconds until cancelled."""

    def __init__(self, interval_s: float, callback: Callable[[], Any], name: str = "periodic"):
        self.interval_s = interval_s
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> 'PeriodicTask':
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return self

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Periodic task '{self.name}' failed")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


@dataclass
class _Registration:
    handle: Cancellable
    session_id: Optional[str]
    connection_id: Optional[str]


class ResourceRegistry:
    """Owns cancellable resources tied to sessions and connections."""

    def __init__(self):
        self._registrations: List[_Registration] = []

    def __len__(self) -> int:
        return len(self._registrations)

    def register(self, handle: Cancellable, session_id: Optional[str] = None,
                 connection_id: Optional[str] = None) -> Cancellable:
        self._registrations.append(_Registration(handle, session_id, connection_id))
        return handle

    def release_connection(self, connection_id: str) -> int:
        return self._release(lambda r: r.connection_id == connection_id)

    def release_session(self, session_id: str) -> int:
        return self._release(lambda r: r.session_id == session_id)

    def release_all(self) -> int:
        return self._release(lambda r: True)

    def _release(self, matches: Callable[[_Registration], bool]) -> int:
        released = [r for r in self._registrations if matches(r)]
        self._registrations = [r for r in self._registrations if not matches(r)]
        for registration in released:
            try:
                registration.handle.cancel()
            except Exception:
                logger.exception("Failed to cancel resource")
        return len(released)
