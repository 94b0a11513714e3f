"""
Reference data for Fuxi.

This module provides the track feature and reaction schemas, catalog
validation, and the bundled default catalog.
"""

from .schemas import (
    Sentiment,
    TrackFeatures,
    Reaction,
    ValidationResult,
    parse_reaction,
)
from .validator import CatalogValidator

__all__ = [
    'Sentiment',
    'TrackFeatures',
    'Reaction',
    'ValidationResult',
    'parse_reaction',
    'CatalogValidator',
]
