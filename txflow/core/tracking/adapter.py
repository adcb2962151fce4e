"""
Tracker Adapter

Mirrors sequence transitions to the durable tracking service. The sequencer
treats every call here as best-effort.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from ...config import settings
from ...providers.tracker import TrackerClient
from .models import TrackingContext, TrackingStatus, TxHashStatus


logger = logging.getLogger(__name__)


class TrackingHandle(Protocol):
    """Hooks for one tracked sequence."""

    tracking_id: Optional[str]

    async def add_tx_hash(self, tx_hash: str, chain_id: int, tx_type: str, status: TxHashStatus) -> None:
        ...

    async def mark_submitted(self) -> None:
        ...

    async def mark_pending(self) -> None:
        ...

    async def mark_confirmed(self) -> None:
        ...

    async def mark_failed(self, error_code: str, error_message: Optional[str] = None) -> None:
        ...

    async def get_transaction(self) -> Optional[Dict[str, Any]]:
        ...


class TrackerAdapter(Protocol):
    async def start_tracking(self, context: TrackingContext) -> TrackingHandle:
        ...


class NoopTrackingHandle:
    """Handle that records nothing."""

    tracking_id: Optional[str] = None

    async def add_tx_hash(self, tx_hash: str, chain_id: int, tx_type: str, status: TxHashStatus) -> None:
        return None

    async def mark_submitted(self) -> None:
        return None

    async def mark_pending(self) -> None:
        return None

    async def mark_confirmed(self) -> None:
        return None

    async def mark_failed(self, error_code: str, error_message: Optional[str] = None) -> None:
        return None

    async def get_transaction(self) -> Optional[Dict[str, Any]]:
        return None


class NoopTracker:
    """Default tracker when no tracking service is configured."""

    async def start_tracking(self, context: TrackingContext) -> TrackingHandle:
        return NoopTrackingHandle()


class HttpTrackingHandle:
    """Handle bound to one record in the tracking service."""

    def __init__(self, client: TrackerClient, tracking_id: str):
        self.client = client
        self.tracking_id = tracking_id

    async def add_tx_hash(self, tx_hash: str, chain_id: int, tx_type: str, status: TxHashStatus) -> None:
        await self.client.add_hash(self.tracking_id, tx_hash, chain_id, tx_type, TxHashStatus(status).value)

    async def mark_submitted(self) -> None:
        await self.client.set_status(self.tracking_id, TrackingStatus.SUBMITTED.value)

    async def mark_pending(self) -> None:
        await self.client.set_status(self.tracking_id, TrackingStatus.PENDING.value)

    async def mark_confirmed(self) -> None:
        await self.client.set_status(self.tracking_id, TrackingStatus.CONFIRMED.value)

    async def mark_failed(self, error_code: str, error_message: Optional[str] = None) -> None:
        await self.client.set_status(
            self.tracking_id,
            TrackingStatus.FAILED.value,
            error_code=error_code,
            error_message=error_message,
        )

    async def get_transaction(self) -> Optional[Dict[str, Any]]:
        return await self.client.get(self.tracking_id)


class HttpTracker:
    """Tracker backed by the HTTP tracking service."""

    def __init__(self, client: Optional[TrackerClient] = None):
        self.client = client or TrackerClient()

    async def start_tracking(self, context: TrackingContext) -> TrackingHandle:
        record = await self.client.start(context.to_dict())
        tracking_id = record.get("id")
        if not tracking_id:
            raise ValueError("Tracking service returned no record id")
        logger.info(f"Tracking {context.domain}/{context.action} as {tracking_id}")
        return HttpTrackingHandle(self.client, str(tracking_id))


def get_tracker() -> TrackerAdapter:
    """HTTP tracker when a tracking service is configured, otherwise a no-op."""
    if settings.has_tracker:
        return HttpTracker()
    return NoopTracker()
