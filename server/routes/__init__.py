"""
API Routes Module

This module contains all FastAPI route handlers for the FocusBand API.
Routes are organized by resource and imported into the main FastAPI application.
"""

from .sessions import router as sessions_router
from .metrics import router as metrics_router
from .stats import router as stats_router
from .export import router as export_router

# Export all routers for easy import
__all__ = [
    "sessions_router",
    "metrics_router",
    "stats_router",
    "export_router",
    "ROUTER_METADATA",
]

# Router metadata for documentation
ROUTER_METADATA = {
    "sessions": {
        "prefix": "/api/sessions",
        "tags": ["Sessions"],
        "description": "Tracking session management endpoints"
    },
    "metrics": {
        "prefix": "/api/metrics",
        "tags": ["Metrics"],
        "description": "Per-sample attention metric endpoints"
    },
    "stats": {
        "prefix": "/api/stats",
        "tags": ["Statistics"],
        "description": "Aggregate attention statistics"
    },
    "export": {
        "prefix": "/api/export",
        "tags": ["Export"],
        "description": "CSV and JSON data export"
    }
}
