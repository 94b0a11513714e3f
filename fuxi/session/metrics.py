"""
Engagement and session metrics calculations.
"""
import math
from typing import Iterable, Sequence

from ..data.schemas import Reaction
from .models import MetricsSnapshot, Participant, Session

DEFAULT_DECAY_MS = 300_000
DEFAULT_INTENSITY = 3


def calculate_engagement(reactions: Sequence[Reaction], now_ms: int,
                         decay_ms: int = DEFAULT_DECAY_MS,
                         default_intensity: int = DEFAULT_INTENSITY) -> float:
    """Decayed average intensity of a participant's reactions.

    Each reaction contributes ``intensity * exp(-age / decay_ms)``; reactions
    without an intensity count as ``default_intensity``. Ages are floored at
    zero so the result stays within [0, 5].

    Example:
        Reactions of intensity 5 at t=0 and 1 at t=200000, evaluated at
        t=200000: (5 * exp(-2/3) + 1) / 2 ~= 1.78
    """
    if not reactions:
        return 0.0
    total = 0.0
    for reaction in reactions:
        age = max(0, now_ms - reaction.timestamp)
        intensity = reaction.intensity if reaction.intensity is not None else default_intensity
        total += intensity * math.exp(-age / decay_ms)
    return total / len(reactions)


def average_engagement(participants: Iterable[Participant]) -> float:
    scores = [p.engagement or 0.0 for p in participants]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def compute_metrics(session: Session, now_ms: int, is_active: bool = True) -> MetricsSnapshot:
    """Snapshot a session's metrics. Counts are derived from the reaction history."""
    reactions = session.reactions
    positive = sum(1 for r in reactions if r.is_positive)
    negative = sum(1 for r in reactions if r.is_negative)
    total = len(reactions)
    last_activity = max((r.timestamp for r in reactions), default=session.created_at)

    return MetricsSnapshot(
        session_id=session.id,
        duration_ms=max(0, now_ms - session.created_at),
        participant_count=len(session.participants),
        tracks_played=session.metrics.tracks_played,
        total_reactions=total,
        positive_reactions=positive,
        negative_reactions=negative,
        positivity_ratio=positive / total if total else 0.0,
        average_engagement=average_engagement(session.participants.values()),
        current_track=session.current_track.to_dict() if session.current_track else None,
        is_active=is_active,
        last_activity=last_activity,
    )


def average_reaction_score(reactions: Sequence[Reaction]) -> float:
    """Mean preference score of a reaction history; neutral (3.0) when empty."""
    if not reactions:
        return 3.0
    return sum(r.score for r in reactions) / len(reactions)
