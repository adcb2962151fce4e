from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ..core.tracking.models import TrackingStatus, TxHashStatus
from ..services.tracking_store import TrackingNotFoundError, TrackingStore, get_tracking_store


router = APIRouter(prefix="/tracking")


class StartTrackingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str = Field(min_length=1, description="Product domain, e.g. lending or staking")
    action: str = Field(min_length=1, description="Business action, e.g. supply or unstake")
    chain_id: int = Field(alias="chainId", gt=0)
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress")
    amount: Optional[str] = None
    token: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class AddHashRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hash: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    chain_id: int = Field(alias="chainId", gt=0)
    type: str = Field(default="primary", description="Step key, e.g. approval or supply")
    status: TxHashStatus = TxHashStatus.PENDING


class UpdateStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: TrackingStatus
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


def _not_found(tracking_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Tracking record {tracking_id} not found")


@router.post("/start", status_code=201)
async def start_tracking(
    req: StartTrackingRequest,
    store: TrackingStore = Depends(get_tracking_store),
) -> Dict[str, Any]:
    record = await store.start(
        req.domain,
        req.action,
        req.chain_id,
        wallet_address=req.wallet_address,
        amount=req.amount,
        token=req.token,
        user_id=req.user_id,
    )
    return record.to_dict()


@router.post("/{tracking_id}/hash")
async def add_tx_hash(
    tracking_id: str,
    req: AddHashRequest,
    store: TrackingStore = Depends(get_tracking_store),
) -> Dict[str, Any]:
    try:
        record = await store.add_hash(tracking_id, req.hash, req.chain_id, req.type, req.status)
    except TrackingNotFoundError:
        raise _not_found(tracking_id)
    return record.to_dict()


@router.post("/{tracking_id}/status")
async def update_status(
    tracking_id: str,
    req: UpdateStatusRequest,
    store: TrackingStore = Depends(get_tracking_store),
) -> Dict[str, Any]:
    try:
        record = await store.set_status(tracking_id, req.status, req.error_code, req.error_message)
    except TrackingNotFoundError:
        raise _not_found(tracking_id)
    return record.to_dict()


@router.get("/{tracking_id}")
async def get_tracking(
    tracking_id: str,
    store: TrackingStore = Depends(get_tracking_store),
) -> Dict[str, Any]:
    try:
        record = await store.get(tracking_id)
    except TrackingNotFoundError:
        raise _not_found(tracking_id)
    return record.to_dict()
