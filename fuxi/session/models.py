"""
Session state records.

A Session exclusively owns its Participants and its append-only reaction
history. These records are mutated only by the SessionStore and the
ReactionPipeline.
"""
import math
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from ..data.schemas import Reaction
from ..errors import InvalidSettings

_SETTING_ALIASES = {
    'autoNext': 'auto_next',
    'reactionThreshold': 'reaction_threshold',
    'maxParticipants': 'max_participants',
    'preferredGenres': 'preferred_genres',
    'targetEnergy': 'target_energy',
    'energyLevel': 'target_energy',
}


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise InvalidSettings(f"{name} must be a boolean, got {value!r}")


def _as_int(name: str, value: Any, low: int, high: Optional[int] = None) -> int:
    number = value
    if isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            raise InvalidSettings(f"{name} must be an integer, got {value!r}") from None
    if (isinstance(number, bool) or not isinstance(number, (int, float))
            or not math.isfinite(number) or number != int(number)):
        raise InvalidSettings(f"{name} must be an integer, got {value!r}")
    number = int(number)
    if number < low or (high is not None and number > high):
        bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
        raise InvalidSettings(f"{name} must be {bounds}, got {number}")
    return number


def _as_unit_float(name: str, value: Any) -> float:
    try:
        number = float(value) if not isinstance(value, bool) else math.nan
    except (TypeError, ValueError, OverflowError):
        number = math.nan
    if not (0.0 <= number <= 1.0):
        raise InvalidSettings(f"{name} must be a number between 0 and 1, got {value!r}")
    return number


def _as_genres(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(g, str) for g in value):
        raise InvalidSettings(f"preferred_genres must be a list of strings, got {value!r}")
    return list(value)


@dataclass
class SessionSettings:
    """Per-session behaviour. Caller settings are merged over these defaults."""
    auto_next: bool = True
    reaction_threshold: int = 3
    max_participants: int = 10
    preferred_genres: List[str] = field(default_factory=list)
    target_energy: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def merged(self, overrides: Optional[Dict[str, Any]]) -> 'SessionSettings':
        """Return a copy with ``overrides`` applied. camelCase keys are accepted.

        Raises:
            InvalidSettings: If a known setting has the wrong type or range
        """
        known = {f.name for f in fields(self)} - {'extra'}
        values = {name: getattr(self, name) for name in known}
        values['preferred_genres'] = list(self.preferred_genres)
        extra = dict(self.extra)
        for key, value in (overrides or {}).items():
            name = _SETTING_ALIASES.get(key, key)
            if name in known:
                values[name] = value
            else:
                extra[key] = value
        values['auto_next'] = _as_bool('auto_next', values['auto_next'])
        values['reaction_threshold'] = _as_int('reaction_threshold', values['reaction_threshold'], 1, 5)
        if values['max_participants'] is not None:
            values['max_participants'] = _as_int('max_participants', values['max_participants'], 1)
        values['preferred_genres'] = _as_genres(values['preferred_genres'])
        if values['target_energy'] is not None:
            values['target_energy'] = _as_unit_float('target_energy', values['target_energy'])
        return SessionSettings(extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'autoNext': self.auto_next,
            'reactionThreshold': self.reaction_threshold,
            'maxParticipants': self.max_participants,
            'preferredGenres': list(self.preferred_genres),
            'targetEnergy': self.target_energy,
        }
        data.update(self.extra)
        return data


@dataclass
class CurrentTrack:
    track_id: Optional[str]
    started_at: int
    info: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.info)
        data['trackId'] = self.track_id
        data['startedAt'] = self.started_at
        return data


@dataclass
class Participant:
    user_id: str
    profile_id: str
    connection_id: str
    joined_at: int
    reactions: List[Reaction] = field(default_factory=list)
    engagement: float = 0.0
    listening_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'profileId': self.profile_id,
            'connectionId': self.connection_id,
            'joinedAt': self.joined_at,
            'reactionCount': len(self.reactions),
            'currentEngagement': self.engagement,
            'totalListeningTime': self.listening_ms,
        }


@dataclass
class SessionMetrics:
    """Running counters maintained as events arrive."""
    tracks_played: int = 0
    positive_reactions: int = 0
    negative_reactions: int = 0
    average_engagement: float = 0.0


@dataclass(frozen=True)
class MetricsSnapshot:
    """Metrics computed on demand for a session."""
    session_id: str
    duration_ms: int
    participant_count: int
    tracks_played: int
    total_reactions: int
    positive_reactions: int
    negative_reactions: int
    positivity_ratio: float
    average_engagement: float
    current_track: Optional[Dict[str, Any]]
    is_active: bool
    last_activity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sessionId': self.session_id,
            'duration': self.duration_ms,
            'participantCount': self.participant_count,
            'tracksPlayed': self.tracks_played,
            'totalReactions': self.total_reactions,
            'positiveReactions': self.positive_reactions,
            'negativeReactions': self.negative_reactions,
            'positivityRatio': self.positivity_ratio,
            'averageEngagement': self.average_engagement,
            'currentTrack': self.current_track,
            'isActive': self.is_active,
            'lastActivity': self.last_activity,
        }


@dataclass
class Session:
    id: str
    created_at: int
    settings: SessionSettings
    participants: Dict[str, Participant] = field(default_factory=dict)
    current_track: Optional[CurrentTrack] = None
    reactions: List[Reaction] = field(default_factory=list)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    played_tracks: List[str] = field(default_factory=list)

    def find_by_connection(self, connection_id: str) -> Optional[Participant]:
        for participant in self.participants.values():
            if participant.connection_id == connection_id:
                return participant
        return None

    def find_by_profile(self, profile_id: str) -> Optional[Participant]:
        for participant in self.participants.values():
            if participant.profile_id == profile_id:
                return participant
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'createdAt': self.created_at,
            'participants': [p.to_dict() for p in self.participants.values()],
            'currentTrack': self.current_track.to_dict() if self.current_track else None,
            'reactionCount': len(self.reactions),
            'playedTracks': list(self.played_tracks),
            'metrics': {
                'tracksPlayed': self.metrics.tracks_played,
                'positiveReactions': self.metrics.positive_reactions,
                'negativeReactions': self.metrics.negative_reactions,
                'averageEngagement': self.metrics.average_engagement,
            },
            'settings': self.settings.to_dict(),
        }
