"""
FastAPI routes for the Fuxi REST API.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from .schemas import (
    CreateSessionRequest,
    JoinSessionRequest,
    LeaveSessionRequest,
    ReactionRequest,
    ReactionResponse,
    RecommendationResponse,
    RecommendationsResponse,
    TrackChangeRequest,
    TrackAnalyticsResponse,
    HealthResponse,
    ErrorResponse,
)
from .dependencies import get_config, get_coordinator, http_error
from ..config.settings import AppConfig
from ..coordinator import SessionCoordinator
from ..errors import FuxiError, InvalidSettings
from ..recommendation.popularity import TrackAnalytics
from ..recommendation.schemas import Recommendation


router = APIRouter()


def _recommendation(rec: Recommendation) -> RecommendationResponse:
    return RecommendationResponse(
        track_id=rec.track_id,
        score=rec.score,
        reasons=sorted(reason.value for reason in rec.reasons)
    )


def _analytics(analytics: TrackAnalytics) -> TrackAnalyticsResponse:
    return TrackAnalyticsResponse(
        track_id=analytics.track_id,
        plays=analytics.plays,
        likes=analytics.likes,
        dislikes=analytics.dislikes,
        popularity_score=analytics.popularity_score,
        average_rating=analytics.average_rating
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check(
    coordinator: SessionCoordinator = Depends(get_coordinator),
    config: AppConfig = Depends(get_config)
):
    """
    Check the health status of the API.

    Reports the catalog size and the number of active sessions.
    """
    return HealthResponse(
        status="healthy",
        version=config.versioning.api_version,
        catalog_size=len(coordinator.features),
        active_sessions=len(coordinator.store)
    )


@router.post(
    "/sessions",
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Session id already in use"},
        422: {"model": ErrorResponse, "description": "Invalid session settings"},
    },
    tags=["Sessions"],
    summary="Create a session"
)
async def create_session(
    request: CreateSessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    """
    Create a live listening session.

    Settings are merged over the defaults (`maxParticipants=10`,
    `autoNext=true`, `reactionThreshold=3`).
    """
    try:
        session = coordinator.create_session(request.settings, request.session_id)
    except InvalidSettings as e:
        raise http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return session.to_dict()


@router.get("/sessions", tags=["Sessions"], summary="List active sessions")
async def list_sessions(coordinator: SessionCoordinator = Depends(get_coordinator)):
    sessions = coordinator.list_sessions()
    return {"sessions": [s.to_dict() for s in sessions], "total": len(sessions)}


@router.get(
    "/sessions/{session_id}",
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
    summary="Get a session"
)
async def get_session(session_id: str, coordinator: SessionCoordinator = Depends(get_coordinator)):
    session = coordinator.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return session.to_dict()


@router.delete(
    "/sessions/{session_id}",
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
    summary="End a session"
)
async def end_session(session_id: str, coordinator: SessionCoordinator = Depends(get_coordinator)):
    """End a session and return its final metrics."""
    final_metrics = coordinator.end_session(session_id)
    if final_metrics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return final_metrics.to_dict()


@router.post(
    "/sessions/{session_id}/join",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        409: {"model": ErrorResponse, "description": "Session is full"}
    },
    tags=["Sessions"],
    summary="Join a session"
)
async def join_session(
    session_id: str,
    request: JoinSessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    try:
        session = coordinator.join_session(
            session_id, request.user_id, request.profile_id,
            request.connection_id or request.user_id
        )
    except FuxiError as e:
        raise http_error(e)
    return session.to_dict()


@router.post(
    "/sessions/{session_id}/leave",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Sessions"],
    summary="Leave a session"
)
async def leave_session(
    session_id: str,
    request: LeaveSessionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    """Detach a connection. Unknown sessions or connections are ignored."""
    coordinator.leave_session(session_id, request.connection_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/sessions/{session_id}/reactions",
    response_model=ReactionResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        422: {"model": ErrorResponse, "description": "Malformed reaction"}
    },
    tags=["Reactions"],
    summary="Record a reaction"
)
async def record_reaction(
    session_id: str,
    request: ReactionRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    """
    Record a listener's reaction to a track.

    Returns the adaptive suggestions: similar tracks after a positive
    reaction, contrasting tracks after a negative one and a diverse set
    after a neutral one.
    """
    try:
        outcome = coordinator.record_reaction(session_id, request.model_dump(exclude_none=True))
    except FuxiError as e:
        raise http_error(e)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return ReactionResponse(
        session_id=session_id,
        reaction=outcome.reaction.to_dict(),
        suggestions=[_recommendation(r) for r in outcome.recommendations]
    )


@router.put(
    "/sessions/{session_id}/track",
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
    summary="Change the current track"
)
async def change_track(
    session_id: str,
    request: TrackChangeRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    track = coordinator.update_current_track(session_id, request.model_dump(exclude_none=True))
    if track is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return track.to_dict()


@router.get(
    "/sessions/{session_id}/metrics",
    responses={404: {"model": ErrorResponse}},
    tags=["Sessions"],
    summary="Session metrics"
)
async def get_metrics(session_id: str, coordinator: SessionCoordinator = Depends(get_coordinator)):
    metrics = coordinator.get_metrics(session_id)
    if metrics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Session {session_id} not found")
    return metrics.to_dict()


@router.get(
    "/sessions/{session_id}/recommendations",
    response_model=RecommendationsResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Recommendations"],
    summary="Recommendations for a session"
)
async def get_recommendations(
    session_id: str,
    profile_id: Optional[str] = Query(default=None, description="Profile to personalise for"),
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    """
    Merge collaborative (0.4), content-based (0.4) and contextual (0.2)
    strategies into at most ten recommendations.
    """
    try:
        recommendations = coordinator.get_recommendations(session_id, profile_id)
        confidence = coordinator.recommendation_confidence(session_id, profile_id)
    except FuxiError as e:
        raise http_error(e)
    return RecommendationsResponse(
        session_id=session_id,
        profile_id=profile_id,
        recommendations=[_recommendation(r) for r in recommendations],
        confidence=confidence
    )


@router.get(
    "/tracks/popular",
    response_model=List[TrackAnalyticsResponse],
    tags=["Tracks"],
    summary="Tracks ranked by popularity"
)
async def popular_tracks(
    count: int = Query(default=10, ge=1, le=100),
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    """Tracks with recorded plays or votes, ranked by ``(likes - dislikes) / plays``."""
    return [_analytics(a) for a in coordinator.popular_tracks(count)]


@router.get(
    "/tracks/{track_id}/similar",
    response_model=List[RecommendationResponse],
    responses={404: {"model": ErrorResponse, "description": "Track not in catalog"}},
    tags=["Tracks"],
    summary="Tracks similar to a track"
)
async def similar_tracks(
    track_id: str,
    count: int = Query(default=5, ge=1, le=50),
    coordinator: SessionCoordinator = Depends(get_coordinator)
):
    try:
        return [_recommendation(r) for r in coordinator.similar_tracks(track_id, count)]
    except FuxiError as e:
        raise http_error(e)


@router.get(
    "/tracks/{track_id}/analytics",
    response_model=TrackAnalyticsResponse,
    tags=["Tracks"],
    summary="Play and reaction analytics for a track"
)
async def track_analytics(track_id: str, coordinator: SessionCoordinator = Depends(get_coordinator)):
    return _analytics(coordinator.track_analytics(track_id))
