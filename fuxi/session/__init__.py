"""
Session state for Fuxi.

Provides the session records, the session store, engagement metrics and
the reaction pipeline.
"""

from .models import (
    CurrentTrack,
    MetricsSnapshot,
    Participant,
    Session,
    SessionMetrics,
    SessionSettings,
)
from .metrics import average_engagement, average_reaction_score, calculate_engagement, compute_metrics
from .pipeline import ReactionPipeline
from .store import SessionStore

__all__ = [
    'CurrentTrack',
    'MetricsSnapshot',
    'Participant',
    'Session',
    'SessionMetrics',
    'SessionSettings',
    'average_engagement',
    'average_reaction_score',
    'calculate_engagement',
    'compute_metrics',
    'ReactionPipeline',
    'SessionStore',
]
