"""
Similarity calculation module for Fuxi.

Two content-similarity variants are provided:

- ``content_similarity``: weighted per-feature agreement used to score the
  catalog (genre 0.3, era 0.2, energy 0.2, valence 0.2, tempo 0.1). It is not
  re-normalised and can dip below zero on extreme mismatches; callers clamp.
- ``track_similarity``: Euclidean distance in feature space converted with
  ``1 / (1 + d)`` and boosted for shared genre, artist and era, capped at 1.0.
  Used for pairwise "similar track" lookups.
"""
import numpy as np
from typing import List, Tuple
import logging

from ..data.schemas import TrackFeatures
from .schemas import PreferenceVector

FEATURE_WEIGHTS = {
    'genre': 0.3,
    'era': 0.2,
    'energy': 0.2,
    'valence': 0.2,
    'tempo': 0.1,
}
ERA_SPAN = 50.0
TEMPO_SPAN = 100.0

GENRE_BOOST = 0.2
ARTIST_BOOST = 0.3
ERA_BOOST = 0.1
ERA_WINDOW = 10


class SimilarityCalculator:
    """Calculates similarity scores between track feature vectors."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def _agreement(self, genre_match: float, era1: float, era2: float,
                   energy1: float, energy2: float, valence1: float, valence2: float,
                   tempo1: float, tempo2: float) -> float:
        return (
            genre_match * FEATURE_WEIGHTS['genre']
            + (1 - abs(era1 - era2) / ERA_SPAN) * FEATURE_WEIGHTS['era']
            + (1 - abs(energy1 - energy2)) * FEATURE_WEIGHTS['energy']
            + (1 - abs(valence1 - valence2)) * FEATURE_WEIGHTS['valence']
            + (1 - abs(tempo1 - tempo2) / TEMPO_SPAN) * FEATURE_WEIGHTS['tempo']
        )

    def content_similarity(self, a: TrackFeatures, b: TrackFeatures) -> float:
        """Catalog similarity between two tracks, roughly in [0, 1], unclamped."""
        return self._agreement(
            1.0 if a.genre == b.genre else 0.0,
            a.era, b.era, a.energy, b.energy, a.valence, b.valence, a.tempo, b.tempo
        )

    def preference_similarity(self, preference: PreferenceVector, features: TrackFeatures) -> float:
        """Catalog similarity between a profile's preference vector and a track.

        The genre term is the profile's share of weight on the track's genre.
        """
        return self._agreement(
            preference.genre_affinity(features.genre),
            preference.era, features.era,
            preference.energy, features.energy,
            preference.valence, features.valence,
            preference.tempo, features.tempo
        )

    def track_similarity(self, a: TrackFeatures, b: TrackFeatures) -> float:
        """Pairwise track similarity in [0, 1]."""
        distance = self.euclidean_distance(a.to_array(), b.to_array())
        return self._boosted(1.0 / (1.0 + distance), a, b)

    def batch_track_similarity(self, target: TrackFeatures, candidates: List[TrackFeatures],
                               matrix: np.ndarray) -> np.ndarray:
        """``track_similarity`` of ``target`` against every row of ``matrix``.

        Args:
            target: Reference track
            candidates: Tracks matching the rows of ``matrix``
            matrix: Feature matrix of shape (n_candidates, 5)

        Returns:
            Array of similarity scores of shape (n_candidates,)
        """
        if len(candidates) != matrix.shape[0]:
            raise ValueError(
                f"Candidate count {len(candidates)} does not match matrix rows {matrix.shape[0]}"
            )
        if matrix.shape[0] == 0:
            return np.array([])
        distances = np.linalg.norm(matrix - target.to_array(), axis=1)
        base = 1.0 / (1.0 + distances)
        return np.array([
            self._boosted(float(score), target, candidate)
            for score, candidate in zip(base, candidates)
        ])

    def _boosted(self, similarity: float, a: TrackFeatures, b: TrackFeatures) -> float:
        boost = 1.0
        if a.genre == b.genre:
            boost += GENRE_BOOST
        if a.artist is not None and a.artist == b.artist:
            boost += ARTIST_BOOST
        if abs(a.era - b.era) <= ERA_WINDOW:
            boost += ERA_BOOST
        return min(similarity * boost, 1.0)

    def cosine_similarity(self, v1: np.ndarray, v2: np.ndarray) -> float:
        """Calculate cosine similarity between two vectors.

        Args:
            v1: First vector (numpy array)
            v2: Second vector (numpy array)

        Returns:
            Cosine similarity score in range [-1, 1]; 0.0 when either vector is zero

        Raises:
            ValueError: If vectors have different shapes or are not 1D
        """
        if v1.shape != v2.shape:
            raise ValueError(f"Vector dimensions must match: {v1.shape} vs {v2.shape}")
        if len(v1.shape) != 1:
            raise ValueError("Vectors must be 1-dimensional")
        norm1 = np.linalg.norm(v1)
        norm2 = np.linalg.norm(v2)
        if norm1 == 0 or norm2 == 0:
            return 0.0
        similarity = np.dot(v1, v2) / (norm1 * norm2)
        return float(np.clip(similarity, -1.0, 1.0))

    def euclidean_distance(self, v1: np.ndarray, v2: np.ndarray) -> float:
        if v1.shape != v2.shape:
            raise ValueError(f"Vector dimensions must match: {v1.shape} vs {v2.shape}")
        return float(np.linalg.norm(v1 - v2))

    def rank(self, scores: List[Tuple[str, float]], descending: bool = True) -> List[Tuple[str, float]]:
        """Sort ``(track_id, score)`` pairs by score, ties broken by track id."""
        sign = -1 if descending else 1
        return sorted(scores, key=lambda item: (sign * item[1], item[0]))
