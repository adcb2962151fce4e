"""
Store backing the reference tracking service.

Records are kept in process memory and, when ``REDIS_URL`` is set, in Redis
under ``tracking:<id>``. Both copies expire ``TRACKING_TTL_SECONDS`` after a
record's last update.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import redis.asyncio as redis

from ..config import settings
from ..core.tracking.models import TrackingStatus, TxHashStatus

logger = logging.getLogger(__name__)

KEY_PREFIX = "tracking:"


class TrackingNotFoundError(KeyError):
    """No record with the given id."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class TxHashEntry:
    hash: str
    chain_id: int
    type: str
    status: TxHashStatus = TxHashStatus.PENDING
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "chainId": self.chain_id,
            "type": self.type,
            "status": self.status.value,
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TxHashEntry:
        return cls(
            hash=data["hash"],
            chain_id=data["chainId"],
            type=data["type"],
            status=TxHashStatus(data["status"]),
            updated_at=_parse_time(data["updatedAt"]),
        )


@dataclass
class TrackingRecord:
    domain: str
    action: str
    chain_id: int
    id: str = field(default_factory=lambda: f"trk_{uuid4().hex}")
    wallet_address: Optional[str] = None
    amount: Optional[str] = None
    token: Optional[str] = None
    user_id: Optional[str] = None
    status: TrackingStatus = TrackingStatus.CREATED
    tx_hashes: List[TxHashEntry] = field(default_factory=list)
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    confirmed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "domain": self.domain,
            "action": self.action,
            "chainId": self.chain_id,
            "walletAddress": self.wallet_address,
            "amount": self.amount,
            "token": self.token,
            "userId": self.user_id,
            "status": self.status.value,
            "txHashes": [entry.to_dict() for entry in self.tx_hashes],
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "confirmedAt": self.confirmed_at.isoformat() if self.confirmed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TrackingRecord:
        return cls(
            id=data["id"],
            domain=data["domain"],
            action=data["action"],
            chain_id=data["chainId"],
            wallet_address=data.get("walletAddress"),
            amount=data.get("amount"),
            token=data.get("token"),
            user_id=data.get("userId"),
            status=TrackingStatus(data["status"]),
            tx_hashes=[TxHashEntry.from_dict(entry) for entry in data.get("txHashes", [])],
            error_code=data.get("errorCode"),
            error_message=data.get("errorMessage"),
            created_at=_parse_time(data["createdAt"]),
            updated_at=_parse_time(data["updatedAt"]),
            confirmed_at=_parse_time(data.get("confirmedAt")),
        )


class TrackingStore:
    """
    Tracking records keyed by id, guarded by an asyncio lock.

    Reads prefer Redis so every service replica sees the latest write; the
    in-memory copy answers when Redis is not configured.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        client: Optional[Any] = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._ttl = ttl_seconds or settings.tracking_ttl_seconds
        self._client = client
        self._clock = clock
        self._records: Dict[str, TrackingRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def backend(self) -> str:
        return "redis" if self._client is not None else "memory"

    def __len__(self) -> int:
        return sum(1 for record in self._records.values() if not self._expired(record))

    @staticmethod
    def _key(tracking_id: str) -> str:
        return f"{KEY_PREFIX}{tracking_id}"

    def _expired(self, record: TrackingRecord) -> bool:
        return self._clock() - record.updated_at >= timedelta(seconds=self._ttl)

    def _prune(self) -> None:
        expired = [tracking_id for tracking_id, record in self._records.items() if self._expired(record)]
        for tracking_id in expired:
            del self._records[tracking_id]
        if expired:
            logger.info(f"Expired {len(expired)} tracking record(s)")

    async def _save(self, record: TrackingRecord) -> None:
        self._records[record.id] = record
        if self._client is not None:
            await self._client.set(self._key(record.id), json.dumps(record.to_dict()), ex=self._ttl)

    async def start(
        self,
        domain: str,
        action: str,
        chain_id: int,
        *,
        wallet_address: Optional[str] = None,
        amount: Optional[str] = None,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> TrackingRecord:
        now = self._clock()
        record = TrackingRecord(
            domain=domain,
            action=action,
            chain_id=chain_id,
            wallet_address=wallet_address,
            amount=amount,
            token=token,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._prune()
            await self._save(record)
        logger.info(f"Tracking started: {record.id} ({domain}/{action} on chain {chain_id})")
        return record

    async def get(self, tracking_id: str) -> TrackingRecord:
        if self._client is not None:
            payload = await self._client.get(self._key(tracking_id))
            if payload:
                record = TrackingRecord.from_dict(json.loads(payload))
                self._records[tracking_id] = record
                return record

        record = self._records.get(tracking_id)
        if record is None or self._expired(record):
            self._records.pop(tracking_id, None)
            raise TrackingNotFoundError(tracking_id)
        return record

    async def add_hash(
        self,
        tracking_id: str,
        tx_hash: str,
        chain_id: int,
        tx_type: str,
        status: TxHashStatus = TxHashStatus.PENDING,
    ) -> TrackingRecord:
        """Upsert a transaction hash; an existing hash keeps its position."""
        async with self._lock:
            record = await self.get(tracking_id)
            now = self._clock()
            normalized = tx_hash.lower()
            for entry in record.tx_hashes:
                if entry.hash.lower() == normalized:
                    entry.status = status
                    entry.chain_id = chain_id
                    entry.type = tx_type
                    entry.updated_at = now
                    break
            else:
                record.tx_hashes.append(
                    TxHashEntry(hash=tx_hash, chain_id=chain_id, type=tx_type, status=status, updated_at=now)
                )
            record.updated_at = now
            await self._save(record)
        return record

    async def set_status(
        self,
        tracking_id: str,
        status: TrackingStatus,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> TrackingRecord:
        async with self._lock:
            record = await self.get(tracking_id)
            now = self._clock()
            record.status = status
            record.updated_at = now
            if status == TrackingStatus.FAILED:
                record.error_code = error_code
                record.error_message = error_message
            elif status == TrackingStatus.CONFIRMED:
                record.confirmed_at = record.confirmed_at or now
                record.error_code = None
                record.error_message = None
            await self._save(record)
        logger.info(f"Tracking {tracking_id}: {status.value}")
        return record

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def _redis_client() -> Optional[Any]:
    if not settings.redis_url:
        return None
    try:
        return redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    except ValueError as e:
        logger.warning(f"Invalid REDIS_URL, keeping tracking records in memory: {e}")
        return None


# Singleton instance
_store: Optional[TrackingStore] = None


def get_tracking_store() -> TrackingStore:
    """Get the singleton tracking store."""
    global _store
    if _store is None:
        _store = TrackingStore(client=_redis_client())
        logger.info(f"Tracking store backend: {_store.backend}")
    return _store
