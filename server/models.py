import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .database import Base

# ============================================================================
# ENUMS
# ============================================================================

class GazeDirection(str, Enum):
    CENTER = "center"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"

# ============================================================================
# SQLALCHEMY DATABASE MODELS
# ============================================================================

def _new_id() -> str:
    return str(uuid.uuid4())


class TrackingSession(Base):
    """One tracked interval with its aggregate attention statistics."""
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=_new_id)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    average_attention = Column(Float, nullable=True)  # 0-100
    peak_attention = Column(Float, nullable=True)  # 0-100
    lowest_attention = Column(Float, nullable=True)  # 0-100
    total_blinks = Column(Integer, nullable=True)
    average_eye_openness = Column(Float, nullable=True)

    # Relationships
    metrics = relationship(
        "AttentionMetric",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AttentionMetric(Base):
    """Per-sample attention metric recorded during a session."""
    __tablename__ = "attention_metrics"

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    attention_score = Column(Float, nullable=False)  # 0-100
    eye_openness = Column(Float, nullable=False)
    blink_detected = Column(Integer, nullable=False, default=0)  # 0 or 1
    gaze_direction = Column(String(16), nullable=False)
    head_yaw = Column(Float, nullable=False)  # degrees
    head_pitch = Column(Float, nullable=False)  # degrees

    # Relationships
    session = relationship("TrackingSession", back_populates="metrics")

# ============================================================================
# PYDANTIC BASE
# ============================================================================

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# ============================================================================
# PYDANTIC REQUEST MODELS
# ============================================================================

class SessionCreateRequest(ApiModel):
    """Request model for creating a session."""
    start_time: datetime = Field(..., description="Session start time")
    end_time: Optional[datetime] = Field(None, description="Session end time")
    duration: Optional[int] = Field(None, ge=0, description="Duration in seconds")
    average_attention: Optional[float] = Field(None, ge=0, le=100)
    peak_attention: Optional[float] = Field(None, ge=0, le=100)
    lowest_attention: Optional[float] = Field(None, ge=0, le=100)
    total_blinks: Optional[int] = Field(None, ge=0)
    average_eye_openness: Optional[float] = Field(None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class SessionUpdateRequest(ApiModel):
    """Partial session update; only fields present in the body are applied."""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, ge=0)
    average_attention: Optional[float] = Field(None, ge=0, le=100)
    peak_attention: Optional[float] = Field(None, ge=0, le=100)
    lowest_attention: Optional[float] = Field(None, ge=0, le=100)
    total_blinks: Optional[int] = Field(None, ge=0)
    average_eye_openness: Optional[float] = Field(None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v, info):
        if v is None and info.field_name == "start_time":
            raise ValueError("start_time cannot be null")
        return ensure_utc(v)


class MetricCreateRequest(ApiModel):
    """One attention sample."""
    session_id: str = Field(..., min_length=1, description="Owning session id")
    timestamp: datetime = Field(..., description="Sample time")
    attention_score: float = Field(..., ge=0, le=100)
    eye_openness: float = Field(..., ge=0)
    blink_detected: int = Field(0, ge=0, le=1, description="0 or 1")
    gaze_direction: GazeDirection = Field(..., description="Estimated gaze direction")
    head_yaw: float = Field(..., description="Head yaw in degrees")
    head_pitch: float = Field(..., description="Head pitch in degrees")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)

# ============================================================================
# PYDANTIC RESPONSE MODELS
# ============================================================================

class SessionResponse(ApiModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    average_attention: Optional[float] = None
    peak_attention: Optional[float] = None
    lowest_attention: Optional[float] = None
    total_blinks: Optional[int] = None
    average_eye_openness: Optional[float] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class MetricResponse(ApiModel):
    id: str
    session_id: str
    timestamp: datetime
    attention_score: float
    eye_openness: float
    blink_detected: int
    gaze_direction: GazeDirection
    head_yaw: float
    head_pitch: float

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class SessionExportResponse(SessionResponse):
    """Session with all of its metrics, used by the JSON export."""
    metrics: List[MetricResponse] = Field(default_factory=list)


class StatsResponse(ApiModel):
    total_sessions: int = Field(..., description="Number of recorded sessions")
    average_attention: float = Field(..., description="Mean session attention (0-100)")
    total_study_time: float = Field(..., description="Minutes tracked during the last 7 days")
    weekly_trend: float = Field(..., description="Percent change versus the previous week")


class SuccessResponse(ApiModel):
    success: bool = True


class HealthResponse(ApiModel):
    """Response model for health checks."""
    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(..., description="Health check timestamp")
    storage: Dict[str, Any] = Field(..., description="Storage health information")
    api_version: str = Field(..., description="API version")
    uptime: float = Field(..., description="API uptime in seconds")


class ErrorResponse(ApiModel):
    """Standard error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[Any] = Field(None, description="Detailed error information")
    error_code: Optional[str] = Field(None, description="Error code")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Error timestamp")
