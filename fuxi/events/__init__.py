"""
Event distribution for Fuxi.

Provides the broadcast bus and the debouncing/periodic stream stages that
sit between the engine and connected listeners.
"""

from .bus import EventBus, EventType, SessionEvent, ReactionEvent, Subscription
from .streams import (
    Debouncer,
    PeriodicTask,
    RecommendationTrigger,
    ResourceRegistry,
    TriggerSnapshot,
)

__all__ = [
    'EventBus',
    'EventType',
    'SessionEvent',
    'ReactionEvent',
    'Subscription',
    'Debouncer',
    'PeriodicTask',
    'RecommendationTrigger',
    'ResourceRegistry',
    'TriggerSnapshot',
]
