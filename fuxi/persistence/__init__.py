"""
Persistence layer module for Fuxi.

Handles the track feature catalog and durable reaction logging.
"""

from .feature_store import FeatureStore
from .reaction_log import ReactionLog, NullReactionLog, JsonlReactionLog, create_reaction_log

__all__ = ['FeatureStore', 'ReactionLog', 'NullReactionLog', 'JsonlReactionLog', 'create_reaction_log']
