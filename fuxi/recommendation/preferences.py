"""
Per-profile preference model.

Each profile maps track ids to a score in 1..5 derived from its reactions.
Scores are stored as given; recency decay only applies to engagement.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

import numpy as np

from .similarity import SimilarityCalculator

MIN_SCORE = 1
MAX_SCORE = 5


@dataclass(frozen=True)
class PeerSimilarity:
    profile_id: str
    similarity: float


class PreferenceModel:
    """Holds every profile's track scores and answers peer-similarity queries."""

    def __init__(self, similarity_calculator: Optional[SimilarityCalculator] = None):
        self.logger = logging.getLogger(__name__)
        self.similarity_calculator = similarity_calculator or SimilarityCalculator()
        self._scores: Dict[str, Dict[str, int]] = {}
        self._peer_overrides: Dict[str, List[PeerSimilarity]] = {}
        self.version = 0

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, profile_id: str) -> bool:
        return profile_id in self._scores

    def update(self, profile_id: str, track_id: str, score: int) -> None:
        """Store a profile's latest score for a track.

        Raises:
            ValueError: If the score is not an integer in 1..5
        """
        if isinstance(score, bool) or not isinstance(score, int) or not (MIN_SCORE <= score <= MAX_SCORE):
            raise ValueError(f"Preference score must be an integer in [{MIN_SCORE}, {MAX_SCORE}], got {score!r}")
        self._scores.setdefault(profile_id, {})[track_id] = score
        self.version += 1

    def get(self, profile_id: Optional[str]) -> Dict[str, int]:
        """Copy of a profile's scores; empty for unknown or missing profiles."""
        if profile_id is None:
            return {}
        return dict(self._scores.get(profile_id, {}))

    def size(self, profile_id: Optional[str]) -> int:
        if profile_id is None:
            return 0
        return len(self._scores.get(profile_id, {}))

    def profiles(self) -> List[str]:
        return list(self._scores)

    def set_peer_similarities(self, profile_id: str,
                              peers: Iterable[Tuple[str, float]]) -> None:
        """Install a precomputed peer list, replacing the computed one for this profile."""
        self._peer_overrides[profile_id] = [
            PeerSimilarity(peer_id, float(similarity)) for peer_id, similarity in peers
        ]
        self.version += 1

    def similar_profiles(self, profile_id: Optional[str], count: int = 5) -> List[PeerSimilarity]:
        """The ``count`` most similar peers of ``profile_id``.

        Precomputed peers win when installed. Otherwise peers are ranked by
        cosine similarity of score vectors over the union of rated tracks;
        peers with no overlap are left out.
        """
        if profile_id is None:
            return []
        if profile_id in self._peer_overrides:
            peers = sorted(self._peer_overrides[profile_id], key=lambda p: (-p.similarity, p.profile_id))
            return peers[:count]

        own = self._scores.get(profile_id)
        if not own:
            return []

        peers = []
        for other_id, other in self._scores.items():
            if other_id == profile_id or not other:
                continue
            similarity = self._cosine(own, other)
            if similarity > 0:
                peers.append(PeerSimilarity(other_id, similarity))

        peers.sort(key=lambda p: (-p.similarity, p.profile_id))
        return peers[:count]

    def _cosine(self, a: Mapping[str, int], b: Mapping[str, int]) -> float:
        tracks = sorted(set(a) | set(b))
        v1 = np.array([a.get(t, 0) for t in tracks], dtype=float)
        v2 = np.array([b.get(t, 0) for t in tracks], dtype=float)
        return self.similarity_calculator.cosine_similarity(v1, v2)
