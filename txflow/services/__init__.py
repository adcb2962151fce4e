"""Service layer helpers"""

from .tracking_store import (
    TrackingNotFoundError,
    TrackingRecord,
    TrackingStore,
    TxHashEntry,
    get_tracking_store,
)

__all__ = [
    "TrackingNotFoundError",
    "TrackingRecord",
    "TrackingStore",
    "TxHashEntry",
    "get_tracking_store",
]
