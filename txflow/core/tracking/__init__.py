"""
Transaction Tracking

Best-effort side channel that mirrors sequence transitions to a durable
tracking record.
"""

from .adapter import (
    HttpTracker,
    HttpTrackingHandle,
    NoopTracker,
    NoopTrackingHandle,
    TrackerAdapter,
    TrackingHandle,
    get_tracker,
)
from .models import TrackingContext, TrackingStatus, TxHashStatus

__all__ = [
    # Adapter
    "TrackerAdapter",
    "TrackingHandle",
    "NoopTracker",
    "NoopTrackingHandle",
    "HttpTracker",
    "HttpTrackingHandle",
    "get_tracker",
    # Models
    "TrackingContext",
    "TrackingStatus",
    "TxHashStatus",
]
