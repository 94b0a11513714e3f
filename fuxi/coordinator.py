"""
Session coordinator for Fuxi.

The single owner of all engine state. It runs on one asyncio event loop and
every mutating call is synchronous, so each event is applied atomically and
per-session ordering equals arrival order. Transport adapters talk only to
this object and to the ConnectionHandles it hands out.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .config.settings import AppConfig
from .data.schemas import Reaction, TrackFeatures
from .errors import FuxiError
from .events.bus import EventBus, EventType, SessionEvent, Subscription
from .events.streams import Debouncer, PeriodicTask, RecommendationTrigger, ResourceRegistry, TriggerSnapshot
from .persistence.feature_store import FeatureStore
from .persistence.reaction_log import ReactionLog, create_reaction_log
from .recommendation.engine import RecommendationEngine
from .recommendation.popularity import TrackAnalytics, TrackAnalyticsStore
from .recommendation.preferences import PreferenceModel
from .recommendation.schemas import Recommendation, SessionContext
from .recommendation.similarity import SimilarityCalculator
from .recommendation.strategies import time_of_day
from .session.metrics import average_reaction_score
from .session.models import CurrentTrack, MetricsSnapshot, Session, SessionSettings
from .session.pipeline import ReactionPipeline
from .session.store import SessionStore
from .utils.clock import Clock

SESSION_UPDATE = "SESSION_UPDATE"
REACTION_PROCESSED = "REACTION_PROCESSED"
REACTION_ERROR = "REACTION_ERROR"
ERROR = "ERROR"


@dataclass(frozen=True)
class ReactionOutcome:
    """A recorded reaction and the adaptive recommendations it produced."""
    session_id: str
    reaction: Reaction
    recommendations: List[Recommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': REACTION_PROCESSED,
            'sessionId': self.session_id,
            'timestamp': self.reaction.timestamp,
            'reaction': self.reaction.to_dict(),
            'recommendations': [r.to_dict() for r in self.recommendations],
        }


class ConnectionHandle:
    """One client connection attached to the coordinator.

    Outgoing messages go through a bounded outbox; when it is full the oldest
    message is dropped. Reactions are debounced per connection so only the
    latest reaction in a quiet window is recorded.
    """

    def __init__(self, coordinator: 'SessionCoordinator', connection_id: str,
                 outbox_size: int, reaction_delay_s: float):
        self.coordinator = coordinator
        self.connection_id = connection_id
        self.session_id: Optional[str] = None
        self.user_id: Optional[str] = None
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.dropped = 0
        self.closed = False
        self._writer: Optional[asyncio.Task] = None
        self._reactions: Debouncer[Dict[str, Any]] = Debouncer(reaction_delay_s, self._record)

    def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        if self.outbox.full():
            self.outbox.get_nowait()
            self.dropped += 1
        self.outbox.put_nowait(message)

    def join(self, session_id: str, user_id: str, profile_id: str) -> Session:
        """Join a session through this connection, leaving any previous one first."""
        if self.session_id is not None and self.session_id != session_id:
            self.leave()
        session = self.coordinator.join_session(session_id, user_id, profile_id, self.connection_id)
        if self.session_id != session_id:
            self.session_id = session_id
            self.coordinator._wire_connection(self)
        self.user_id = user_id
        return session

    def react(self, payload: Dict[str, Any]) -> None:
        """Queue a reaction; only the latest one within the debounce window is recorded."""
        if self.session_id is None:
            self.send({'type': REACTION_ERROR, 'error': "Join a session before reacting"})
            return
        self._reactions.submit(self.connection_id, payload)

    def _record(self, payload: Dict[str, Any]) -> None:
        if self.session_id is None:
            return
        try:
            outcome = self.coordinator.record_reaction(self.session_id, payload)
        except FuxiError as e:
            self.send({'type': REACTION_ERROR, 'error': str(e)})
            return
        if outcome is not None:
            self.send(outcome.to_dict())

    def change_track(self, track_info: Dict[str, Any]) -> Optional[CurrentTrack]:
        if self.session_id is None:
            self.send({'type': ERROR, 'error': "Join a session before changing tracks"})
            return None
        return self.coordinator.update_current_track(self.session_id, track_info)

    def leave(self) -> None:
        session_id = self.session_id
        self._detach()
        if session_id is not None:
            self.coordinator.leave_session(session_id, self.connection_id)

    def _detach(self) -> None:
        self.session_id = None
        self._reactions.cancel()
        self.coordinator.registry.release_connection(self.connection_id)

    def close(self) -> None:
        """Leave the session and cancel every timer and subscription of this connection."""
        if self.closed:
            return
        self.leave()
        self.closed = True
        self.coordinator._forget_connection(self.connection_id)


class SessionCoordinator:
    """Owns the session store, preference model, catalog and event streams."""

    def __init__(self, config: Optional[AppConfig] = None,
                 features: Optional[FeatureStore] = None,
                 clock: Optional[Clock] = None,
                 reaction_log: Optional[ReactionLog] = None):
        self.config = config or AppConfig()
        self.clock = clock or Clock()
        self.logger = logging.getLogger(__name__)

        self.session_events: EventBus[SessionEvent] = EventBus("sessions")
        self.reaction_events: EventBus = EventBus("reactions")

        session_defaults = SessionSettings(
            auto_next=self.config.session.auto_next,
            reaction_threshold=self.config.session.reaction_threshold,
            max_participants=self.config.session.max_participants,
        )
        self.store = SessionStore(self.session_events, self.clock, session_defaults)
        self.features = features if features is not None else FeatureStore()
        similarity = SimilarityCalculator()
        self.preferences = PreferenceModel(similarity)
        self.analytics = TrackAnalyticsStore()
        self.pipeline = ReactionPipeline(
            self.store, self.preferences, self.reaction_events,
            analytics=self.analytics,
            reaction_log=reaction_log or create_reaction_log(self.config.persistence.reaction_log_path),
            engagement=self.config.engagement,
        )
        self.engine = RecommendationEngine(
            self.features, self.preferences, self.config.recommendation, similarity
        )
        self.trigger = RecommendationTrigger(
            self.reaction_events, self._on_trigger,
            delay_s=self.config.streaming.recommendation_debounce_ms / 1000.0,
        )
        self.registry = ResourceRegistry()
        self._connections: Dict[str, ConnectionHandle] = {}
        self.session_events.subscribe(self._on_session_event)

    async def start(self) -> None:
        """Start the recommendation trigger on the running loop."""
        self.trigger.start(asyncio.get_running_loop())
        self.logger.info("Session coordinator started")

    def stop(self) -> None:
        for handle in list(self._connections.values()):
            handle.close()
        self.trigger.stop()
        self.registry.release_all()
        self.logger.info("Session coordinator stopped")

    # Sessions

    def create_session(self, settings: Optional[Dict[str, Any]] = None,
                       session_id: Optional[str] = None) -> Session:
        return self.store.create_session(settings, session_id)

    def join_session(self, session_id: str, user_id: str, profile_id: str,
                     connection_id: str) -> Session:
        session = self.store.join_session(session_id, user_id, profile_id, connection_id)
        self.trigger.notify(session_id, "context")
        return session

    def leave_session(self, session_id: str, connection_id: str) -> None:
        self.store.leave_session(session_id, connection_id)

    def end_session(self, session_id: str) -> Optional[MetricsSnapshot]:
        return self.store.end_session(session_id)

    def update_current_track(self, session_id: str, track_info: Dict[str, Any]) -> Optional[CurrentTrack]:
        track = self.store.update_current_track(session_id, track_info)
        if track is not None:
            self.analytics.record_play(track.track_id)
            self.trigger.notify(session_id, "context")
        return track

    def get_metrics(self, session_id: str) -> Optional[MetricsSnapshot]:
        return self.store.get_metrics(session_id)

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.store.get_session(session_id)

    def list_sessions(self) -> List[Session]:
        return self.store.list_sessions()

    # Reactions and recommendations

    def record_reaction(self, session_id: str, payload: Dict[str, Any]) -> Optional[ReactionOutcome]:
        """Record a reaction and compute the adaptive follow-up.

        Returns:
            The outcome, or None when the session is not active

        Raises:
            InvalidReaction: If the payload is malformed
        """
        reaction = self.pipeline.record_reaction(session_id, payload)
        if reaction is None:
            return None
        recommendations = self.get_adaptive_recommendations(session_id, reaction.profile_id, reaction)
        return ReactionOutcome(session_id, reaction, recommendations)

    def build_context(self, session: Session) -> SessionContext:
        return SessionContext(
            time_of_day=time_of_day(self.clock.local_hour()),
            session_duration_ms=max(0, self.clock.now_ms() - session.created_at),
            average_reaction=average_reaction_score(session.reactions),
            played_tracks=frozenset(session.played_tracks),
            preferred_genres=frozenset(session.settings.preferred_genres or ()),
            target_energy=session.settings.target_energy,
            reaction_count=len(session.reactions),
        )

    def get_recommendations(self, session_id: str, profile_id: Optional[str] = None) -> List[Recommendation]:
        """Merged recommendations for a session.

        Raises:
            SessionNotFound: If the session is not active
        """
        session = self.store.require_session(session_id)
        return self.engine.recommend(profile_id, self.build_context(session))

    def get_adaptive_recommendations(self, session_id: str, profile_id: Optional[str],
                                     reaction: Reaction) -> List[Recommendation]:
        session = self.store.require_session(session_id)
        return self.engine.adaptive_recommend(
            reaction, self.build_context(session),
            fallback=lambda: self.get_recommendations(session_id, profile_id),
        )

    def recommendation_confidence(self, session_id: str, profile_id: Optional[str]) -> float:
        session = self.store.require_session(session_id)
        return self.engine.confidence(profile_id, len(session.reactions))

    def similar_tracks(self, track_id: str, count: int = 5) -> List[Recommendation]:
        return self.engine.similar_tracks(track_id, count)

    def track_analytics(self, track_id: str) -> TrackAnalytics:
        return self.analytics.get(track_id)

    def popular_tracks(self, count: int = 10) -> List[TrackAnalytics]:
        return self.analytics.most_popular(count)

    def set_peer_similarities(self, profile_id: str, peers: Iterable[Tuple[str, float]]) -> None:
        self.preferences.set_peer_similarities(profile_id, peers)
        for session in self.store.list_sessions():
            if session.find_by_profile(profile_id) is not None:
                self.trigger.notify(session.id, "preferences")

    def update_catalog(self, tracks: Mapping[str, TrackFeatures], replace: bool = False) -> int:
        """Add or replace catalog tracks and schedule a recomputation for every session."""
        if replace:
            self.features.replace_all(tracks)
        else:
            for track_id, features in tracks.items():
                self.features.upsert(track_id, features)
        for session in self.store.list_sessions():
            self.trigger.notify(session.id, "catalog")
        self.logger.info(f"Catalog updated with {len(tracks)} tracks, {len(self.features)} total")
        return len(self.features)

    def _on_trigger(self, snapshot: TriggerSnapshot) -> None:
        if snapshot.session_id not in self.store:
            return
        profile_id = snapshot.last_reaction.profile_id if snapshot.last_reaction is not None else None
        recommendations = self.get_recommendations(snapshot.session_id, profile_id)
        self.session_events.publish(SessionEvent(
            EventType.RECOMMENDATIONS_UPDATED, snapshot.session_id, self.clock.now_ms(),
            {
                'recommendations': [r.to_dict() for r in recommendations],
                'sources': sorted(snapshot.sources),
                'profileId': profile_id,
            }
        ))

    # Connections

    def attach_connection(self, connection_id: Optional[str] = None,
                          sender: Optional[Callable[[Dict[str, Any]], Awaitable[Any]]] = None) -> ConnectionHandle:
        """Attach a client connection. Must be called from the running event loop.

        When ``sender`` is given a writer task drains the outbox through it.
        """
        connection_id = connection_id or str(uuid.uuid4())
        handle = ConnectionHandle(
            self, connection_id,
            outbox_size=self.config.streaming.outbox_size,
            reaction_delay_s=self.config.streaming.reaction_debounce_ms / 1000.0,
        )
        self._connections[connection_id] = handle
        if sender is not None:
            writer = asyncio.get_running_loop().create_task(
                self._drain(handle, sender), name=f"writer-{connection_id}"
            )
            handle._writer = writer
        self.logger.debug(f"Connection attached: {connection_id}")
        return handle

    async def _drain(self, handle: ConnectionHandle,
                     sender: Callable[[Dict[str, Any]], Awaitable[Any]]) -> None:
        while True:
            message = await handle.outbox.get()
            try:
                await sender(message)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception(f"Failed to deliver message to {handle.connection_id}")
                return

    def _wire_connection(self, handle: ConnectionHandle) -> None:
        session_id = handle.session_id
        connection_id = handle.connection_id

        subscription: Subscription = self.session_events.subscribe(
            lambda event: handle.send(event.to_dict()),
            predicate=lambda event: event.session_id == session_id and event.type != EventType.SESSION_ENDED,
        )
        self.registry.register(subscription, session_id, connection_id)

        def broadcast_metrics() -> None:
            metrics = self.store.get_metrics(session_id)
            if metrics is not None:
                handle.send({
                    'type': SESSION_UPDATE,
                    'sessionId': session_id,
                    'timestamp': self.clock.now_ms(),
                    'metrics': metrics.to_dict(),
                })

        periodic = PeriodicTask(
            self.config.streaming.metrics_interval_s, broadcast_metrics,
            name=f"metrics-{connection_id}",
        ).start()
        self.registry.register(periodic, session_id, connection_id)

    def _forget_connection(self, connection_id: str) -> None:
        handle = self._connections.pop(connection_id, None)
        if handle is not None and handle._writer is not None:
            handle._writer.cancel()
        self.logger.debug(f"Connection closed: {connection_id}")

    def _on_session_event(self, event: SessionEvent) -> None:
        if event.type != EventType.SESSION_ENDED:
            return
        for handle in list(self._connections.values()):
            if handle.session_id == event.session_id:
                handle.send(event.to_dict())
                handle._detach()
        self.trigger.discard(event.session_id)
        released = self.registry.release_session(event.session_id)
        self.logger.debug(f"Released {released} resources of ended session {event.session_id}")
