"""
Recommendation strategies.

Each strategy returns at most ``count`` Recommendations sorted by score
(descending, ties broken by track id). Strategies never raise on empty
inputs; they return an empty list.
"""
import logging
import random
from typing import Dict, List, Mapping, Optional

from ..errors import RecommendationUnavailable
from ..persistence.feature_store import FeatureStore
from .preferences import PreferenceModel
from .schemas import PreferenceVector, Reason, Recommendation, SessionContext
from .similarity import SimilarityCalculator

LONG_SESSION_MS = 30 * 60 * 1000
POSITIVE_PREFERENCE = 3


def time_of_day(hour: int) -> str:
    """Bucket an hour (0-23) into morning, afternoon, evening or night."""
    if 5 <= hour < 12:
        return 'morning'
    if 12 <= hour < 17:
        return 'afternoon'
    if 17 <= hour < 22:
        return 'evening'
    return 'night'


def top(recommendations: List[Recommendation], count: int) -> List[Recommendation]:
    ranked = sorted(recommendations, key=lambda r: (-r.score, r.track_id))
    return ranked[:count]


class CollaborativeStrategy:
    """Tracks rated highly by the profile's most similar peers."""

    def __init__(self, preferences: PreferenceModel, peer_count: int = 5, min_rating: int = 4):
        self.preferences = preferences
        self.peer_count = peer_count
        self.min_rating = min_rating

    def recommend(self, profile_id: Optional[str], count: int) -> List[Recommendation]:
        best: Dict[str, float] = {}
        for peer in self.preferences.similar_profiles(profile_id, self.peer_count):
            for track_id, rating in self.preferences.get(peer.profile_id).items():
                if rating < self.min_rating:
                    continue
                score = rating * peer.similarity
                if score > best.get(track_id, float('-inf')):
                    best[track_id] = score
        recommendations = [
            Recommendation(track_id, score, frozenset({Reason.COLLABORATIVE}))
            for track_id, score in best.items()
        ]
        return top(recommendations, count)


class ContentBasedStrategy:
    """Catalog tracks closest to the profile's preference vector."""

    def __init__(self, features: FeatureStore, similarity: SimilarityCalculator,
                 max_boost: float = 2.0):
        self.features = features
        self.similarity = similarity
        self.max_boost = max_boost
        self.logger = logging.getLogger(__name__)

    def build_preference_vector(self, preferences: Mapping[str, int]) -> PreferenceVector:
        """Average the features of tracks scored >= 3, weighted by score."""
        vector = PreferenceVector()
        for track_id, score in preferences.items():
            features = self.features.get(track_id)
            if features is None or score < POSITIVE_PREFERENCE:
                continue
            vector.genre_weights[features.genre] = vector.genre_weights.get(features.genre, 0.0) + score
            vector.era += features.era * score
            vector.energy += features.energy * score
            vector.valence += features.valence * score
            vector.tempo += features.tempo * score
            vector.acousticness += features.acousticness * score
            vector.danceability += features.danceability * score
            vector.total_weight += score

        if vector.total_weight > 0:
            vector.era /= vector.total_weight
            vector.energy /= vector.total_weight
            vector.valence /= vector.total_weight
            vector.tempo /= vector.total_weight
            vector.acousticness /= vector.total_weight
            vector.danceability /= vector.total_weight
        return vector

    def context_boost(self, genre: str, energy: float, context: SessionContext) -> float:
        boost = 1.0
        if genre in context.preferred_genres:
            boost += 0.3
        if context.target_energy is not None and abs(context.target_energy - energy) < 0.2:
            boost += 0.2
        return min(boost, self.max_boost)

    def recommend(self, preferences: Mapping[str, int], context: SessionContext,
                  count: int) -> List[Recommendation]:
        vector = self.build_preference_vector(preferences)
        if vector.is_empty:
            self.logger.debug("No positive preference history, content strategy skipped")
            return []

        recommendations = []
        for track_id, features in self.features.items():
            similarity = min(max(self.similarity.preference_similarity(vector, features), 0.0), 1.0)
            boost = self.context_boost(features.genre, features.energy, context)
            recommendations.append(
                Recommendation(track_id, similarity * boost, frozenset({Reason.CONTENT}))
            )
        return top(recommendations, count)


class ContextualStrategy:
    """Scores unplayed catalog tracks against the live session's signals."""

    def __init__(self, features: FeatureStore):
        self.features = features

    def score(self, energy: float, valence: float, context: SessionContext) -> float:
        score = 0.5
        if context.time_of_day == 'morning' and energy > 0.5:
            score += 0.2
        if context.time_of_day == 'evening' and energy < 0.5:
            score += 0.2
        if context.session_duration_ms > LONG_SESSION_MS:
            score += valence * 0.3
        if context.average_reaction is not None:
            if context.average_reaction > 3.5 and valence > 0.6:
                score += 0.3
            if context.average_reaction < 2.5 and valence < 0.4:
                score -= 0.2
        return score

    def recommend(self, context: SessionContext, count: int) -> List[Recommendation]:
        recommendations = [
            Recommendation(
                track_id,
                self.score(features.energy, features.valence, context),
                frozenset({Reason.CONTEXTUAL})
            )
            for track_id, features in self.features.items()
            if track_id not in context.played_tracks
        ]
        return top(recommendations, count)


class AdaptiveStrategy:
    """Immediate follow-ups to a single reaction: similar, contrasting or diverse tracks."""

    def __init__(self, features: FeatureStore, similarity: SimilarityCalculator,
                 rng: Optional[random.Random] = None):
        self.features = features
        self.similarity = similarity
        self.rng = rng or random.Random()

    def _target(self, track_id: str):
        target = self.features.get(track_id)
        if target is None:
            raise RecommendationUnavailable(f"No features for track {track_id}")
        return target

    def _clamped_similarity(self, target, features) -> float:
        return min(max(self.similarity.content_similarity(target, features), 0.0), 1.0)

    def similar(self, track_id: str, count: int) -> List[Recommendation]:
        """Most similar catalog tracks, excluding ``track_id`` itself.

        Raises:
            RecommendationUnavailable: If the track is not in the catalog
        """
        target = self._target(track_id)
        recommendations = [
            Recommendation(other_id, self._clamped_similarity(target, features),
                           frozenset({Reason.SIMILAR}))
            for other_id, features in self.features.items()
            if other_id != track_id
        ]
        return top(recommendations, count)

    def contrasting(self, track_id: str, count: int) -> List[Recommendation]:
        """Least similar catalog tracks, scored ``1 - similarity`` with similarity clamped to [0, 1].

        Raises:
            RecommendationUnavailable: If the track is not in the catalog
        """
        target = self._target(track_id)
        recommendations = [
            Recommendation(other_id, 1 - self._clamped_similarity(target, features),
                           frozenset({Reason.CONTRASTING}))
            for other_id, features in self.features.items()
            if other_id != track_id
        ]
        return top(recommendations, count)

    def diverse(self, context: SessionContext, count: int) -> List[Recommendation]:
        """One random unplayed track per (genre, decade) group until ``count`` are chosen."""
        groups: Dict[tuple, List[str]] = {}
        for track_id, features in self.features.items():
            if track_id in context.played_tracks:
                continue
            groups.setdefault((features.genre, features.decade), []).append(track_id)

        diverse = []
        for track_ids in groups.values():
            if len(diverse) >= count:
                break
            chosen = self.rng.choice(track_ids)
            diverse.append(Recommendation(
                chosen, 0.5 + self.rng.random() * 0.3, frozenset({Reason.DIVERSE})
            ))
        return diverse
