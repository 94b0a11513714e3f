"""
Data schemas for the Fuxi system.

This module contains the immutable reference and event records used
throughout the engine: track feature vectors and listener reactions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List
import math

import numpy as np

from ..errors import InvalidReaction


class Sentiment(str, Enum):
    """Emotional response label attached to a reaction."""
    STRONGLY_DISLIKE = "strongly-dislike"
    DISLIKE = "dislike"
    NEUTRAL = "neutral"
    LIKE = "like"
    STRONGLY_LIKE = "strongly-like"

    @property
    def score(self) -> int:
        return SENTIMENT_SCORES[self]

    @classmethod
    def parse(cls, value: Any) -> 'Sentiment':
        """Parse a label, accepting ``strongly like`` and ``strongly_like`` spellings."""
        if isinstance(value, Sentiment):
            return value
        if not isinstance(value, str):
            raise InvalidReaction(f"Sentiment must be a string, got {type(value).__name__}")
        normalized = value.strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidReaction(f"Unknown sentiment: {value!r}") from None


SENTIMENT_SCORES = {
    Sentiment.STRONGLY_LIKE: 5,
    Sentiment.LIKE: 4,
    Sentiment.NEUTRAL: 3,
    Sentiment.DISLIKE: 2,
    Sentiment.STRONGLY_DISLIKE: 1,
}

POSITIVE_SENTIMENTS = {Sentiment.LIKE, Sentiment.STRONGLY_LIKE}
NEGATIVE_SENTIMENTS = {Sentiment.DISLIKE, Sentiment.STRONGLY_DISLIKE}


def _optional_float(value: Any, default: float) -> float:
    if value is None or value != value:
        return default
    return float(value)


@dataclass(frozen=True)
class TrackFeatures:
    """Content features of a catalog track."""
    genre: str
    era: int            # Release year
    energy: float       # Intensity
    valence: float      # Happiness/sadness
    tempo: float        # BPM
    acousticness: float = 0.5
    danceability: float = 0.5
    artist: Optional[str] = None
    title: Optional[str] = None

    @property
    def decade(self) -> int:
        return (self.era // 10) * 10

    def to_array(self) -> np.ndarray:
        """Numeric vector used for track-to-track distance (tempo scaled by 1/100)."""
        return np.array([
            self.energy,
            self.valence,
            self.tempo / 100.0,
            self.acousticness,
            self.danceability
        ], dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'genre': self.genre,
            'era': self.era,
            'energy': self.energy,
            'valence': self.valence,
            'tempo': self.tempo,
            'acousticness': self.acousticness,
            'danceability': self.danceability,
            'artist': self.artist,
            'title': self.title,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrackFeatures':
        """
        Create TrackFeatures from dictionary data.

        Raises:
            KeyError: If required fields are missing
            ValueError: If values cannot be converted
        """
        return cls(
            genre=str(data['genre']),
            era=int(data['era']),
            energy=float(data['energy']),
            valence=float(data['valence']),
            tempo=float(data['tempo']),
            acousticness=_optional_float(data.get('acousticness'), 0.5),
            danceability=_optional_float(data.get('danceability'), 0.5),
            artist=data.get('artist') or None,
            title=data.get('title') or None,
        )


@dataclass(frozen=True)
class Reaction:
    """A timestamped emotional response to a track. Never mutated once recorded."""
    track_id: str
    sentiment: Sentiment
    profile_id: str
    timestamp: int
    intensity: Optional[int] = None

    @property
    def score(self) -> int:
        """Preference score: explicit intensity, else the sentiment's mapping."""
        return self.intensity if self.intensity is not None else self.sentiment.score

    @property
    def is_positive(self) -> bool:
        return self.sentiment in POSITIVE_SENTIMENTS or (
            self.intensity is not None and self.intensity >= 4
        )

    @property
    def is_negative(self) -> bool:
        """Negative unless already counted as positive."""
        if self.is_positive:
            return False
        return self.sentiment in NEGATIVE_SENTIMENTS or (
            self.intensity is not None and self.intensity <= 2
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trackId': self.track_id,
            'reaction': self.sentiment.value,
            'intensity': self.intensity,
            'profileId': self.profile_id,
            'timestamp': self.timestamp,
        }


def parse_reaction(payload: Dict[str, Any], default_timestamp: int) -> Reaction:
    """Build a Reaction from a raw payload.

    Accepts both ``trackId``/``profileId``/``reaction`` and snake_case keys.

    Raises:
        InvalidReaction: If any field is missing or out of range
    """
    if not isinstance(payload, dict):
        raise InvalidReaction("Reaction payload must be an object")

    track_id = payload.get('track_id', payload.get('trackId'))
    profile_id = payload.get('profile_id', payload.get('profileId'))
    raw_sentiment = payload.get('sentiment', payload.get('reaction'))

    if not track_id or not isinstance(track_id, str):
        raise InvalidReaction("Reaction requires a track id")
    if not profile_id or not isinstance(profile_id, str):
        raise InvalidReaction("Reaction requires a profile id")
    if raw_sentiment is None:
        raise InvalidReaction("Reaction requires a sentiment")
    sentiment = Sentiment.parse(raw_sentiment)

    intensity = payload.get('intensity')
    if intensity is not None:
        if (isinstance(intensity, bool) or not isinstance(intensity, (int, float))
                or not math.isfinite(intensity) or intensity != int(intensity)):
            raise InvalidReaction(f"Intensity must be an integer, got {intensity!r}")
        intensity = int(intensity)
        if not (1 <= intensity <= 5):
            raise InvalidReaction(f"Intensity must be between 1 and 5, got {intensity}")

    timestamp = payload.get('timestamp')
    if timestamp is None:
        timestamp = default_timestamp
    elif (isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))
            or not math.isfinite(timestamp)):
        raise InvalidReaction(f"Timestamp must be a finite number, got {timestamp!r}")

    return Reaction(
        track_id=track_id,
        sentiment=sentiment,
        profile_id=profile_id,
        timestamp=int(timestamp),
        intensity=intensity,
    )


@dataclass
class ValidationResult:
    """Result of data validation operations"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    def add_error(self, error: str) -> None:
        """Add an error to the validation result"""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        return len(self.warnings) > 0
