"""
Recommendation schemas for the Fuxi system.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class Reason(str, Enum):
    """Why a track was proposed."""
    COLLABORATIVE = "collaborative"
    CONTENT = "content"
    CONTEXTUAL = "contextual"
    SIMILAR = "similar"
    CONTRASTING = "contrasting"
    DIVERSE = "diverse"


@dataclass(frozen=True)
class Recommendation:
    """A scored track proposal with the strategies that contributed to it."""
    track_id: str
    score: float
    reasons: FrozenSet[Reason] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trackId': self.track_id,
            'score': self.score,
            'reasons': sorted(reason.value for reason in self.reasons),
        }


@dataclass(frozen=True)
class WeightedSource:
    """One strategy's output and its weight in the merge."""
    recommendations: List[Recommendation]
    weight: float


@dataclass(frozen=True)
class SessionContext:
    """Signals about a live session used by contextual and content strategies."""
    time_of_day: Optional[str] = None
    session_duration_ms: int = 0
    average_reaction: Optional[float] = None
    played_tracks: FrozenSet[str] = frozenset()
    preferred_genres: FrozenSet[str] = frozenset()
    target_energy: Optional[float] = None
    reaction_count: int = 0


@dataclass
class PreferenceVector:
    """Score-weighted average of the features of a profile's liked tracks."""
    genre_weights: Dict[str, float] = field(default_factory=dict)
    era: float = 0.0
    energy: float = 0.0
    valence: float = 0.0
    tempo: float = 0.0
    acousticness: float = 0.0
    danceability: float = 0.0
    total_weight: float = 0.0

    @property
    def is_empty(self) -> bool:
        return self.total_weight <= 0

    def genre_affinity(self, genre: str) -> float:
        """Share of the profile's weight on ``genre``, in [0, 1]."""
        if self.total_weight <= 0:
            return 0.0
        return self.genre_weights.get(genre, 0.0) / self.total_weight
