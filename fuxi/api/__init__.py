"""
API module for the Fuxi REST and WebSocket interface.
"""
from .routes import router
from .websocket import ws_router
from .dependencies import AppState, get_app_state, get_coordinator
from .schemas import (
    CreateSessionRequest,
    JoinSessionRequest,
    ReactionRequest,
    RecommendationsResponse,
    HealthResponse
)

__all__ = [
    "router",
    "ws_router",
    "AppState",
    "get_app_state",
    "get_coordinator",
    "CreateSessionRequest",
    "JoinSessionRequest",
    "ReactionRequest",
    "RecommendationsResponse",
    "HealthResponse"
]
