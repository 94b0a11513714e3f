"""
Session store for Fuxi.

The authoritative in-memory table of active sessions, their participants and
the user -> session index. Every lifecycle change is published on the
session event bus.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..errors import SessionFull, SessionNotFound
from ..events.bus import EventBus, EventType, SessionEvent
from ..utils.clock import Clock
from .metrics import compute_metrics
from .models import CurrentTrack, MetricsSnapshot, Participant, Session, SessionSettings


class SessionStore:
    """Owns the session table and the user -> session index."""

    def __init__(self, events: EventBus, clock: Optional[Clock] = None,
                 default_settings: Optional[SessionSettings] = None):
        self.events = events
        self.clock = clock or Clock()
        self.default_settings = default_settings or SessionSettings()
        self.logger = logging.getLogger(__name__)
        self._sessions: Dict[str, Session] = {}
        self._user_sessions: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def _publish(self, event_type: EventType, session_id: str, **payload: Any) -> None:
        self.events.publish(SessionEvent(event_type, session_id, self.clock.now_ms(), payload))

    def create_session(self, settings: Optional[Dict[str, Any]] = None,
                       session_id: Optional[str] = None) -> Session:
        """Create a session, merging ``settings`` over the defaults.

        Raises:
            ValueError: If ``session_id`` is already active or settings are invalid
        """
        session_id = session_id or str(uuid.uuid4())
        if session_id in self._sessions:
            raise ValueError(f"Session {session_id} already exists")

        session = Session(
            id=session_id,
            created_at=self.clock.now_ms(),
            settings=self.default_settings.merged(settings),
        )
        self._sessions[session_id] = session
        self._publish(EventType.SESSION_CREATED, session_id, settings=session.settings.to_dict())
        self.logger.info(f"Session created: {session_id}")
        return session

    def join_session(self, session_id: str, user_id: str, profile_id: str,
                     connection_id: str) -> Session:
        """Add or replace the participant keyed by ``user_id``.

        The user -> session index is overwritten even when the user is still
        attached to another session.

        Raises:
            SessionNotFound: If the session is not active
            SessionFull: If a new user would exceed ``max_participants``
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        max_participants = session.settings.max_participants
        if (user_id not in session.participants and max_participants
                and len(session.participants) >= max_participants):
            raise SessionFull(session_id, max_participants)

        previous = self._user_sessions.get(user_id)
        if previous is not None and previous != session_id:
            self.logger.warning(
                f"User {user_id} joined {session_id} while still indexed to {previous}"
            )

        session.participants[user_id] = Participant(
            user_id=user_id,
            profile_id=profile_id,
            connection_id=connection_id,
            joined_at=self.clock.now_ms(),
        )
        self._user_sessions[user_id] = session_id

        self._publish(EventType.USER_JOINED, session_id, userId=user_id, profileId=profile_id)
        self.logger.info(f"User {user_id} joined session {session_id}")
        return session

    def leave_session(self, session_id: str, connection_id: str) -> None:
        """Remove the participant attached through ``connection_id``.

        Unknown sessions or connections are ignored. The session ends when its
        last participant leaves.
        """
        session = self._sessions.get(session_id)
        if session is None:
            return

        participant = session.find_by_connection(connection_id)
        if participant is None:
            return

        self._accrue_listening(session, participant, self.clock.now_ms())
        del session.participants[participant.user_id]
        if self._user_sessions.get(participant.user_id) == session_id:
            del self._user_sessions[participant.user_id]

        self._publish(EventType.USER_LEFT, session_id, userId=participant.user_id)
        self.logger.info(f"User {participant.user_id} left session {session_id}")

        if not session.participants:
            self.end_session(session_id)

    def end_session(self, session_id: str) -> Optional[MetricsSnapshot]:
        """Remove a session and publish its final metrics. No-op if absent."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None

        for participant in session.participants.values():
            if self._user_sessions.get(participant.user_id) == session_id:
                del self._user_sessions[participant.user_id]

        final_metrics = compute_metrics(session, self.clock.now_ms(), is_active=False)
        self._publish(EventType.SESSION_ENDED, session_id, finalMetrics=final_metrics.to_dict())
        self.logger.info(f"Session ended: {session_id}")
        return final_metrics

    def update_current_track(self, session_id: str, track_info: Dict[str, Any]) -> Optional[CurrentTrack]:
        """Start playing a new track. No-op if the session is unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return None

        now = self.clock.now_ms()
        for participant in session.participants.values():
            self._accrue_listening(session, participant, now)

        info = dict(track_info or {})
        track_id = info.pop('track_id', None) or info.pop('trackId', None)
        session.current_track = CurrentTrack(track_id=track_id, started_at=now, info=info)
        session.metrics.tracks_played += 1
        if track_id:
            session.played_tracks.append(track_id)

        self._publish(EventType.TRACK_CHANGED, session_id, track=session.current_track.to_dict())
        self.logger.info(f"Track updated in session {session_id}: {info.get('title', track_id)}")
        return session.current_track

    def _accrue_listening(self, session: Session, participant: Participant, now: int) -> None:
        track = session.current_track
        if track is None:
            return
        start = max(track.started_at, participant.joined_at)
        participant.listening_ms += max(0, now - start)

    def get_metrics(self, session_id: str) -> Optional[MetricsSnapshot]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return compute_metrics(session, self.clock.now_ms())

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def require_session(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list_sessions(self) -> List[Session]:
        return list(self._sessions.values())

    def get_user_session(self, user_id: str) -> Optional[Session]:
        session_id = self._user_sessions.get(user_id)
        return self._sessions.get(session_id) if session_id else None

    def is_profile_in_session(self, session_id: str, profile_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and session.find_by_profile(profile_id) is not None
