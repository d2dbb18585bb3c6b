"""
Tracker Services Module

Service components of the tracking client:
- REST client for the FocusBand backend
- Batched metric upload
- Session lifecycle management
"""

from .api_client import ApiError, FocusApiClient
from .metric_batcher import MetricBatcher, MetricFlushError
from .session_manager import SessionManager, SessionState

__all__ = [
    'ApiError',
    'FocusApiClient',
    'MetricBatcher',
    'MetricFlushError',
    'SessionManager',
    'SessionState',
]
