"""
Recommendation engine for Fuxi.

Merges the collaborative, content-based and contextual strategies into one
ranked list, and answers the adaptive follow-up right after a reaction.
"""
import logging
import random
from typing import Callable, Dict, List, Optional, Sequence, Set

from ..config.settings import RecommendationConfig
from ..data.schemas import Reaction
from ..errors import RecommendationUnavailable
from ..persistence.feature_store import FeatureStore
from .preferences import PreferenceModel
from .schemas import Reason, Recommendation, SessionContext, WeightedSource
from .similarity import SimilarityCalculator
from .strategies import (
    AdaptiveStrategy,
    CollaborativeStrategy,
    ContentBasedStrategy,
    ContextualStrategy,
    top,
)

MIN_PREFERENCES_FOR_CONFIDENCE = 5
MIN_REACTIONS_FOR_CONFIDENCE = 3


def combine(sources: Sequence[WeightedSource], limit: int = 10) -> List[Recommendation]:
    """Weighted merge of strategy outputs.

    A track's score is the sum of ``score * weight`` over every source that
    proposed it; its reasons are the union of those sources' reasons.
    """
    scores: Dict[str, float] = {}
    reasons: Dict[str, Set[Reason]] = {}
    for source in sources:
        for rec in source.recommendations:
            scores[rec.track_id] = scores.get(rec.track_id, 0.0) + rec.score * source.weight
            reasons.setdefault(rec.track_id, set()).update(rec.reasons)

    merged = [
        Recommendation(track_id, score, frozenset(reasons[track_id]))
        for track_id, score in scores.items()
    ]
    return top(merged, limit)


class RecommendationEngine:
    """Orchestrates strategies over the feature store and preference model."""

    def __init__(self, features: FeatureStore, preferences: PreferenceModel,
                 config: Optional[RecommendationConfig] = None,
                 similarity_calculator: Optional[SimilarityCalculator] = None):
        """Initialize the recommendation engine.

        Args:
            features: Catalog of track features
            preferences: Per-profile preference scores
            config: Strategy weights and limits (defaults when omitted)
            similarity_calculator: Calculator for similarity scores (optional)
        """
        self.features = features
        self.preferences = preferences
        self.config = config or RecommendationConfig()
        self.similarity_calculator = similarity_calculator or SimilarityCalculator()
        self.logger = logging.getLogger(__name__)

        rng = random.Random(self.config.seed)
        self.collaborative = CollaborativeStrategy(
            preferences, self.config.peer_count, self.config.min_peer_rating
        )
        self.content = ContentBasedStrategy(
            features, self.similarity_calculator, self.config.max_context_boost
        )
        self.contextual = ContextualStrategy(features)
        self.adaptive = AdaptiveStrategy(features, self.similarity_calculator, rng)

    def recommend(self, profile_id: Optional[str], context: SessionContext) -> List[Recommendation]:
        """Merged top recommendations for a profile in a session context."""
        limit = self.config.strategy_limit
        sources = [
            WeightedSource(self.collaborative.recommend(profile_id, limit),
                           self.config.collaborative_weight),
            WeightedSource(self.content.recommend(self.preferences.get(profile_id), context, limit),
                           self.config.content_weight),
            WeightedSource(self.contextual.recommend(context, limit),
                           self.config.contextual_weight),
        ]
        merged = combine(sources, self.config.result_limit)
        self.logger.debug(
            f"Merged {sum(len(s.recommendations) for s in sources)} strategy results "
            f"into {len(merged)} recommendations for profile {profile_id}"
        )
        return merged

    def adaptive_recommend(self, reaction: Reaction, context: SessionContext,
                           fallback: Callable[[], List[Recommendation]]) -> List[Recommendation]:
        """Follow-up recommendations after a single reaction.

        Positive reactions get similar tracks, negative ones contrasting
        tracks, neutral ones a diversity set. When the reacted track has no
        features ``fallback`` supplies the result instead.
        """
        limit = self.config.adaptive_limit
        try:
            if reaction.is_positive:
                return self.adaptive.similar(reaction.track_id, limit)
            if reaction.is_negative:
                return self.adaptive.contrasting(reaction.track_id, limit)
            return self.adaptive.diverse(context, limit)
        except RecommendationUnavailable as e:
            self.logger.info(f"Adaptive recommendation unavailable ({e}), using merged results")
            return fallback()

    def similar_tracks(self, track_id: str, count: int = 5) -> List[Recommendation]:
        """Nearest catalog tracks by pairwise track similarity.

        Raises:
            RecommendationUnavailable: If the track is not in the catalog
        """
        target = self.features.get(track_id)
        if target is None:
            raise RecommendationUnavailable(f"No features for track {track_id}")

        track_ids, matrix = self.features.feature_matrix()
        keep = [i for i, other_id in enumerate(track_ids) if other_id != track_id]
        if not keep:
            return []
        candidates = [self.features.get(track_ids[i]) for i in keep]
        scores = self.similarity_calculator.batch_track_similarity(target, candidates, matrix[keep])
        ranked = self.similarity_calculator.rank(
            [(track_ids[i], float(score)) for i, score in zip(keep, scores)]
        )
        return [
            Recommendation(other_id, score, frozenset({Reason.SIMILAR}))
            for other_id, score in ranked[:count]
        ]

    def confidence(self, profile_id: Optional[str], reaction_count: int) -> float:
        """How much to trust recommendations given the available history."""
        preference_count = self.preferences.size(profile_id)
        if preference_count < MIN_PREFERENCES_FOR_CONFIDENCE:
            return 0.3
        if reaction_count < MIN_REACTIONS_FOR_CONFIDENCE:
            return 0.5
        return min(0.9, 0.3 + preference_count * 0.02 + reaction_count * 0.05)
