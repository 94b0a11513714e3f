"""
Fuxi REST and WebSocket API Server

Run the server with:
    python api.py

Or with uvicorn directly:
    uvicorn api:app --reload --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fuxi import __version__
from fuxi.api.routes import router
from fuxi.api.websocket import ws_router
from fuxi.api.dependencies import AppState, get_app_state


def create_app(state: Optional[AppState] = None) -> FastAPI:
    """Build the FastAPI app around an application state.

    The default state is loaded lazily on startup from ``FUXI_CONFIG`` or the
    bundled configuration.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_state = state or get_app_state()
        app_state.initialize()
        app.state.fuxi = app_state
        coordinator = app_state.coordinator
        await coordinator.start()
        try:
            yield
        finally:
            coordinator.stop()

    app = FastAPI(
        title="Fuxi",
        description="""
**Live music-therapy session engine**

Fuxi coordinates multi-participant listening sessions: it tracks who is
listening, ingests real-time emotional reactions to tracks and continuously
recomputes what to play next.

## Quick Start

1. Create a session: `POST /api/v1/sessions`
2. Connect listeners: `WS /ws/session/{session_id}` and send `JOIN_SESSION`
3. Send reactions: `USER_REACTION` over the socket or `POST /api/v1/sessions/{id}/reactions`
4. Read recommendations: `GET /api/v1/sessions/{id}/recommendations?profile_id=...`

## Reactions

| Reaction | Score |
|----------|-------|
| strongly-like | 5 |
| like | 4 |
| neutral | 3 |
| dislike | 2 |
| strongly-dislike | 1 |

An explicit `intensity` (1-5) overrides the reaction's score.
        """,
        version=__version__,
        license_info={
            "name": "MIT",
        },
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")
    app.include_router(ws_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
