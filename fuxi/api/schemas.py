"""
Pydantic schemas for the Fuxi REST API.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator

from ..data.schemas import Sentiment
from ..errors import InvalidReaction


class CreateSessionRequest(BaseModel):
    """Request body for creating a session."""
    session_id: Optional[str] = Field(
        default=None,
        description="Explicit session id; a uuid4 is allocated when omitted"
    )
    settings: Dict[str, Any] = Field(
        default_factory=dict,
        description="Settings merged over the defaults (autoNext, reactionThreshold, maxParticipants, "
                    "preferredGenres, targetEnergy)"
    )


class JoinSessionRequest(BaseModel):
    """Request body for joining a session."""
    user_id: str = Field(min_length=1, description="User joining the session")
    profile_id: str = Field(min_length=1, description="Therapy profile the user listens as")
    connection_id: Optional[str] = Field(
        default=None,
        description="Connection the participant is attached through; defaults to the user id"
    )


class LeaveSessionRequest(BaseModel):
    connection_id: str = Field(min_length=1, description="Connection to detach")


class ReactionRequest(BaseModel):
    """A reaction to a track."""
    track_id: str = Field(min_length=1, description="Track reacted to")
    reaction: str = Field(description="strongly-dislike, dislike, neutral, like or strongly-like")
    profile_id: str = Field(min_length=1, description="Profile reacting")
    intensity: Optional[int] = Field(default=None, ge=1, le=5, description="Explicit intensity (1-5)")
    timestamp: Optional[int] = Field(default=None, ge=0, description="Epoch milliseconds")

    @field_validator('reaction')
    @classmethod
    def validate_reaction(cls, v: str) -> str:
        try:
            return Sentiment.parse(v).value
        except InvalidReaction as e:
            raise ValueError(str(e)) from e


class TrackChangeRequest(BaseModel):
    """The track now playing in a session."""
    track_id: str = Field(min_length=1)
    title: Optional[str] = None
    artist: Optional[str] = None
    duration_ms: Optional[int] = Field(default=None, ge=0)


class RecommendationResponse(BaseModel):
    track_id: str
    score: float
    reasons: List[str]


class RecommendationsResponse(BaseModel):
    """Merged recommendations for a session."""
    session_id: str
    profile_id: Optional[str] = None
    recommendations: List[RecommendationResponse]
    confidence: float = Field(ge=0.0, le=1.0)


class ReactionResponse(BaseModel):
    """A recorded reaction and its adaptive follow-up."""
    session_id: str
    reaction: Dict[str, Any]
    suggestions: List[RecommendationResponse]


class TrackAnalyticsResponse(BaseModel):
    track_id: str
    plays: int
    likes: int
    dislikes: int
    popularity_score: float
    average_rating: float


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="API status")
    version: str = Field(description="API version")
    catalog_size: int = Field(description="Tracks in the feature catalog")
    active_sessions: int = Field(description="Sessions currently active")


class ErrorResponse(BaseModel):
    """Error response format."""
    detail: str = Field(description="Error message")
