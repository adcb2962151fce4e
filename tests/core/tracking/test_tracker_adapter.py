"""
Tests for the tracker adapter.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from txflow.config import settings
from txflow.core.tracking import (
    HttpTracker,
    NoopTracker,
    NoopTrackingHandle,
    TrackingContext,
    TxHashStatus,
    get_tracker,
)
from txflow.main import app
from txflow.providers.tracker import TrackerClient
from txflow.services.tracking_store import TrackingStore, get_tracking_store


TX_HASH = "0x" + "ab" * 32
CONTEXT = TrackingContext(domain="lending", action="supply", chain_id=43114, amount="1.5")


@pytest.fixture
def store():
    store = TrackingStore()
    app.dependency_overrides[get_tracking_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


@pytest.fixture
def http_tracker(store):
    client = TrackerClient(base_url="http://testserver", transport=httpx.ASGITransport(app=app))
    return HttpTracker(client=client)


class TestTrackingContext:
    def test_to_dict(self):
        """Context serializes with the service's camelCase keys"""
        data = CONTEXT.to_dict()

        assert data["chainId"] == 43114
        assert data["walletAddress"] is None
        assert data["amount"] == "1.5"


class TestNoopTracker:
    """Test the tracker used when no service is configured"""

    @pytest.mark.asyncio
    async def test_hooks_do_nothing(self):
        handle = await NoopTracker().start_tracking(CONTEXT)

        await handle.add_tx_hash(TX_HASH, 43114, "supply", TxHashStatus.PENDING)
        await handle.mark_submitted()
        await handle.mark_pending()
        await handle.mark_failed("unknown", "boom")
        await handle.mark_confirmed()

        assert handle.tracking_id is None
        assert await handle.get_transaction() is None


class TestHttpTracker:
    """Test the HTTP-backed tracker against the in-process service"""

    @pytest.mark.asyncio
    async def test_lifecycle_is_mirrored(self, http_tracker, store):
        """Each hook updates the durable record"""
        handle = await http_tracker.start_tracking(CONTEXT)

        await handle.add_tx_hash(TX_HASH, 43114, "supply", TxHashStatus.PENDING)
        await handle.mark_submitted()
        submitted = await handle.get_transaction()
        await handle.add_tx_hash(TX_HASH, 43114, "supply", TxHashStatus.SUCCESS)
        await handle.mark_confirmed()
        confirmed = await handle.get_transaction()

        assert handle.tracking_id.startswith("trk_")
        assert submitted["status"] == "submitted"
        assert confirmed["status"] == "confirmed"
        assert confirmed["confirmedAt"] is not None
        assert [entry["status"] for entry in confirmed["txHashes"]] == ["success"]

    @pytest.mark.asyncio
    async def test_mark_failed_records_error(self, http_tracker):
        handle = await http_tracker.start_tracking(CONTEXT)

        await handle.mark_failed("user_rejected", "Transaction rejected in wallet")
        record = await handle.get_transaction()

        assert record["status"] == "failed"
        assert record["errorCode"] == "user_rejected"

    @pytest.mark.asyncio
    async def test_missing_id_is_an_error(self):
        """A start response without an id cannot be tracked"""
        client = MagicMock()
        client.start = AsyncMock(return_value={})

        with pytest.raises(ValueError):
            await HttpTracker(client=client).start_tracking(CONTEXT)


class TestGetTracker:
    """Test tracker selection from settings"""

    def test_noop_without_url(self, monkeypatch):
        monkeypatch.setattr(settings, "tracker_url", "")

        assert isinstance(get_tracker(), NoopTracker)

    def test_http_with_url(self, monkeypatch):
        monkeypatch.setattr(settings, "tracker_url", "http://tracker.local")

        tracker = get_tracker()

        assert isinstance(tracker, HttpTracker)
        assert tracker.client.base_url == "http://tracker.local"

    @pytest.mark.asyncio
    async def test_noop_handle_type(self):
        assert isinstance(await NoopTracker().start_tracking(CONTEXT), NoopTrackingHandle)
