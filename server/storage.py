"""
Storage backends for sessions and attention metrics.

MemStorage keeps everything in process memory; SQLStorage persists the same
records through SQLAlchemy. Both honour the same contract: sessions list
newest first, metrics list oldest first, deleting a session deletes its
metrics, and a metric batch is stored completely or not at all.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config import config
from .analytics import compute_session_stats
from .database import DatabaseSession, SessionLocal, check_database_health, engine, get_database_stats
from .models import (
    AttentionMetric, MetricCreateRequest, MetricResponse, SessionCreateRequest,
    SessionResponse, SessionUpdateRequest, StatsResponse, TrackingSession
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base error raised by storage backends."""


class UnknownSessionError(StorageError):
    """A metric referenced a session that does not exist."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} does not exist")
        self.session_id = session_id


class BaseStorage(ABC):
    """Persistence contract used by the API routes."""

    backend_name = "base"

    # Session operations
    @abstractmethod
    def create_session(self, data: SessionCreateRequest) -> SessionResponse:
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[SessionResponse]:
        ...

    @abstractmethod
    def get_all_sessions(self) -> List[SessionResponse]:
        ...

    @abstractmethod
    def update_session(self, session_id: str, data: SessionUpdateRequest) -> Optional[SessionResponse]:
        ...

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        ...

    # Attention metric operations
    @abstractmethod
    def create_attention_metrics(self, metrics: Sequence[MetricCreateRequest]) -> List[MetricResponse]:
        ...

    @abstractmethod
    def get_metrics_by_session_id(self, session_id: str) -> List[MetricResponse]:
        ...

    # Analytics operations
    def get_session_stats(self, now: Optional[datetime] = None) -> StatsResponse:
        return compute_session_stats(self.get_all_sessions(), now=now)

    @abstractmethod
    def health(self) -> dict:
        ...


class MemStorage(BaseStorage):
    """In-memory storage. Data lives as long as the process."""

    backend_name = "memory"

    def __init__(self):
        self._sessions: Dict[str, SessionResponse] = {}
        self._metrics: Dict[str, MetricResponse] = {}
        self._lock = threading.RLock()

    def create_session(self, data: SessionCreateRequest) -> SessionResponse:
        session = SessionResponse(id=str(uuid.uuid4()), **data.model_dump())
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> Optional[SessionResponse]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_all_sessions(self) -> List[SessionResponse]:
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def update_session(self, session_id: str, data: SessionUpdateRequest) -> Optional[SessionResponse]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            updated = session.model_copy(update=data.model_dump(exclude_unset=True))
            self._sessions[session_id] = updated
            return updated

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                return False
            orphaned = [m.id for m in self._metrics.values() if m.session_id == session_id]
            for metric_id in orphaned:
                del self._metrics[metric_id]
        logger.debug(f"Deleted session {session_id} with {len(orphaned)} metrics")
        return True

    def create_attention_metrics(self, metrics: Sequence[MetricCreateRequest]) -> List[MetricResponse]:
        with self._lock:
            for metric in metrics:
                if metric.session_id not in self._sessions:
                    raise UnknownSessionError(metric.session_id)

            created = [MetricResponse(id=str(uuid.uuid4()), **metric.model_dump()) for metric in metrics]
            for metric in created:
                self._metrics[metric.id] = metric
        return created

    def get_metrics_by_session_id(self, session_id: str) -> List[MetricResponse]:
        with self._lock:
            metrics = [m for m in self._metrics.values() if m.session_id == session_id]
        return sorted(metrics, key=lambda m: m.timestamp)

    def health(self) -> dict:
        with self._lock:
            return {
                "status": "healthy",
                "backend": self.backend_name,
                "table_counts": {
                    "sessions": len(self._sessions),
                    "attention_metrics": len(self._metrics),
                },
            }


class SQLStorage(BaseStorage):
    """SQLAlchemy-backed storage."""

    backend_name = "database"

    def __init__(self, db_engine: Optional[Engine] = None):
        self.engine = db_engine or engine
        if db_engine is None:
            self.session_factory = SessionLocal
        else:
            self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _db(self) -> DatabaseSession:
        return DatabaseSession(self.session_factory)

    def create_session(self, data: SessionCreateRequest) -> SessionResponse:
        with self._db() as db:
            session = TrackingSession(**data.model_dump())
            db.add(session)
            db.flush()
            return SessionResponse.model_validate(session)

    def get_session(self, session_id: str) -> Optional[SessionResponse]:
        with self._db() as db:
            session = db.get(TrackingSession, session_id)
            return SessionResponse.model_validate(session) if session else None

    def get_all_sessions(self) -> List[SessionResponse]:
        with self._db() as db:
            sessions = db.query(TrackingSession).order_by(TrackingSession.start_time.desc()).all()
            return [SessionResponse.model_validate(s) for s in sessions]

    def update_session(self, session_id: str, data: SessionUpdateRequest) -> Optional[SessionResponse]:
        with self._db() as db:
            session = db.get(TrackingSession, session_id)
            if session is None:
                return None
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(session, field, value)
            db.flush()
            return SessionResponse.model_validate(session)

    def delete_session(self, session_id: str) -> bool:
        with self._db() as db:
            session = db.get(TrackingSession, session_id)
            if session is None:
                return False
            # SQLite only honours ON DELETE CASCADE with the foreign_keys pragma enabled
            db.query(AttentionMetric).filter(AttentionMetric.session_id == session_id).delete(
                synchronize_session=False
            )
            db.delete(session)
        logger.debug(f"Deleted session {session_id}")
        return True

    def create_attention_metrics(self, metrics: Sequence[MetricCreateRequest]) -> List[MetricResponse]:
        with self._db() as db:
            session_ids = {m.session_id for m in metrics}
            if session_ids:
                existing = {
                    row[0] for row in
                    db.query(TrackingSession.id).filter(TrackingSession.id.in_(session_ids)).all()
                }
                missing = session_ids - existing
                if missing:
                    raise UnknownSessionError(sorted(missing)[0])

            records = []
            for metric in metrics:
                values = metric.model_dump()
                values["gaze_direction"] = metric.gaze_direction.value
                records.append(AttentionMetric(**values))
            db.add_all(records)
            db.flush()
            return [MetricResponse.model_validate(r) for r in records]

    def get_metrics_by_session_id(self, session_id: str) -> List[MetricResponse]:
        with self._db() as db:
            metrics = (
                db.query(AttentionMetric)
                .filter(AttentionMetric.session_id == session_id)
                .order_by(AttentionMetric.timestamp.asc())
                .all()
            )
            return [MetricResponse.model_validate(m) for m in metrics]

    def health(self) -> dict:
        status = check_database_health(self.engine)
        status["backend"] = self.backend_name
        if status["status"] == "healthy":
            status.update(get_database_stats(self.engine))
        return status


def create_storage(backend: str) -> BaseStorage:
    """Build the storage backend named in the configuration."""
    if backend == "memory":
        return MemStorage()
    if backend == "database":
        return SQLStorage()
    raise ValueError(f"Unknown storage backend: {backend!r}")


storage = create_storage(config.STORAGE_BACKEND)


def get_storage() -> BaseStorage:
    """FastAPI dependency returning the configured storage backend."""
    return storage


__all__ = [
    "StorageError",
    "UnknownSessionError",
    "BaseStorage",
    "MemStorage",
    "SQLStorage",
    "create_storage",
    "storage",
    "get_storage",
]
