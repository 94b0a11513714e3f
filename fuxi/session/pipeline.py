"""
Reaction pipeline.

Turns a raw reaction payload into state changes: the session's reaction
history, the participant's engagement, the session counters, the profile's
preference scores and track analytics. Every step runs synchronously so
reactions for a session apply strictly in arrival order.
"""
import logging
from typing import Any, Dict, Optional

from ..config.settings import EngagementConfig
from ..data.schemas import Reaction, parse_reaction
from ..events.bus import EventBus, EventType, ReactionEvent, SessionEvent
from ..persistence.reaction_log import NullReactionLog, ReactionLog
from ..recommendation.popularity import TrackAnalyticsStore
from ..recommendation.preferences import PreferenceModel
from .metrics import average_engagement, calculate_engagement
from .store import SessionStore


class ReactionPipeline:
    """Applies reactions to the session store and the preference model."""

    def __init__(self, store: SessionStore, preferences: PreferenceModel,
                 reaction_bus: EventBus,
                 analytics: Optional[TrackAnalyticsStore] = None,
                 reaction_log: Optional[ReactionLog] = None,
                 engagement: Optional[EngagementConfig] = None):
        self.store = store
        self.preferences = preferences
        self.reaction_bus = reaction_bus
        self.analytics = analytics or TrackAnalyticsStore()
        self.reaction_log = reaction_log or NullReactionLog()
        self.engagement = engagement or EngagementConfig()
        self.logger = logging.getLogger(__name__)

    def record_reaction(self, session_id: str, payload: Dict[str, Any]) -> Optional[Reaction]:
        """Record a reaction in a session.

        Args:
            session_id: Target session
            payload: Raw reaction (track id, sentiment, optional intensity,
                profile id, optional timestamp)

        Returns:
            The recorded Reaction, or None when the session is not active

        Raises:
            InvalidReaction: If the payload is malformed. Nothing is mutated.
        """
        session = self.store.get_session(session_id)
        if session is None:
            self.logger.debug(f"Reaction for unknown session {session_id} ignored")
            return None

        now = self.store.clock.now_ms()
        reaction = parse_reaction(payload, default_timestamp=now)

        session.reactions.append(reaction)

        participant = session.find_by_profile(reaction.profile_id)
        if participant is not None:
            participant.reactions.append(reaction)
            participant.engagement = calculate_engagement(
                participant.reactions, now,
                decay_ms=self.engagement.decay_ms,
                default_intensity=self.engagement.default_intensity,
            )
        else:
            self.logger.warning(
                f"Reaction from profile {reaction.profile_id} not attached to session {session_id}"
            )

        if reaction.is_positive:
            session.metrics.positive_reactions += 1
        elif reaction.is_negative:
            session.metrics.negative_reactions += 1
        session.metrics.average_engagement = average_engagement(session.participants.values())

        self.preferences.update(reaction.profile_id, reaction.track_id, reaction.score)

        self.reaction_bus.publish(ReactionEvent(session_id, reaction))
        self.store.events.publish(SessionEvent(
            EventType.REACTION_RECORDED, session_id, now, {'reaction': reaction.to_dict()}
        ))

        self.analytics.record_reaction(reaction)
        try:
            self.reaction_log.append(session_id, reaction)
        except Exception:
            self.logger.exception(f"Failed to persist reaction for session {session_id}")

        return reaction
