"""
Fuxi - reactive engine for live music-therapy sessions.

Tracks who is listening, ingests real-time emotional reactions to tracks and
continuously recomputes what to play next.
"""

__version__ = "1.0.0"
