"""
Per-track play and reaction analytics.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..data.schemas import Reaction


@dataclass
class TrackAnalytics:
    track_id: str
    plays: int = 0
    likes: int = 0
    dislikes: int = 0

    @property
    def popularity_score(self) -> float:
        """(likes - dislikes) / plays; 0 for a track that never played."""
        if self.plays == 0:
            return 0.0
        return (self.likes - self.dislikes) / self.plays

    @property
    def average_rating(self) -> float:
        """Likes count as 5, dislikes as 1; 3.0 without votes."""
        votes = self.likes + self.dislikes
        if votes == 0:
            return 3.0
        return (self.likes * 5 + self.dislikes * 1) / votes

    def to_dict(self) -> Dict[str, float]:
        return {
            'trackId': self.track_id,
            'plays': self.plays,
            'likes': self.likes,
            'dislikes': self.dislikes,
            'popularityScore': self.popularity_score,
            'averageRating': self.average_rating,
        }


class TrackAnalyticsStore:
    """Counts plays from track changes and likes/dislikes from reactions."""

    def __init__(self):
        self._tracks: Dict[str, TrackAnalytics] = {}

    def __len__(self) -> int:
        return len(self._tracks)

    def _entry(self, track_id: str) -> TrackAnalytics:
        entry = self._tracks.get(track_id)
        if entry is None:
            entry = self._tracks[track_id] = TrackAnalytics(track_id)
        return entry

    def record_play(self, track_id: Optional[str]) -> None:
        if track_id:
            self._entry(track_id).plays += 1

    def record_reaction(self, reaction: Reaction) -> None:
        # Only the sentiment label counts as a vote; intensity does not.
        if reaction.sentiment.score >= 4:
            self._entry(reaction.track_id).likes += 1
        elif reaction.sentiment.score <= 2:
            self._entry(reaction.track_id).dislikes += 1

    def get(self, track_id: str) -> TrackAnalytics:
        """Analytics for a track; a zeroed record when nothing was seen."""
        return self._tracks.get(track_id) or TrackAnalytics(track_id)

    def most_popular(self, count: int = 10) -> List[TrackAnalytics]:
        ranked = sorted(self._tracks.values(), key=lambda t: (-t.popularity_score, t.track_id))
        return ranked[:count]

