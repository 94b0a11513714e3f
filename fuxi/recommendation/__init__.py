"""
Recommendation module for Fuxi.

Provides the preference model, similarity calculations, the individual
strategies and the engine that merges them.
"""

from .engine import RecommendationEngine, combine
from .popularity import TrackAnalytics, TrackAnalyticsStore
from .preferences import PeerSimilarity, PreferenceModel
from .schemas import PreferenceVector, Reason, Recommendation, SessionContext, WeightedSource
from .similarity import SimilarityCalculator

__all__ = [
    'RecommendationEngine',
    'combine',
    'TrackAnalytics',
    'TrackAnalyticsStore',
    'PeerSimilarity',
    'PreferenceModel',
    'PreferenceVector',
    'Reason',
    'Recommendation',
    'SessionContext',
    'WeightedSource',
    'SimilarityCalculator',
]
