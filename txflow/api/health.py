from fastapi import APIRouter, Depends
from typing import Dict, Any

from ..config import settings
from ..services.tracking_store import TrackingStore, get_tracking_store

router = APIRouter()


@router.get("/healthz")
async def health_check(store: TrackingStore = Depends(get_tracking_store)) -> Dict[str, Any]:
    """Health check endpoint with tracking store size and configured backends"""

    backends = {
        "lending": settings.prepare_url_for("lending"),
        "staking": settings.prepare_url_for("staking"),
    }

    return {
        "status": "healthy",
        "tracked_records": len(store),
        "tracking_backend": store.backend,
        "prepare_backends": backends,
        "rpc_chains": sorted(settings.rpc_urls.keys()),
    }
