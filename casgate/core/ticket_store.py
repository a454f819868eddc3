"""
Proxy-granting ticket stores.

The PGT callback and the service validation that carries the matching
pgtIou arrive as two separate HTTP requests, so the store is the only state
shared between requests. Implementations own their thread safety.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from sqlmodel import Session, delete, select

from ..models import ProxyGrantingTicket, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PGT_TTL = 300


class PGTStore(ABC):

    @abstractmethod
    def write(self, pgt_iou: str, pgt_id: str) -> None:
        ...

    @abstractmethod
    def read(self, pgt_iou: str) -> Optional[str]:
        ...


class InMemoryPGTStore(PGTStore):
    """
    Process-local store. Entries older than `ttl` seconds are treated as
    missing and dropped on the next write.
    """

    def __init__(self, ttl: float = DEFAULT_PGT_TTL):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def write(self, pgt_iou: str, pgt_id: str) -> None:
        now = time.monotonic()
        with self._lock:
            self._evict(now)
            self._entries[pgt_iou] = (pgt_id, now)

    def read(self, pgt_iou: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(pgt_iou)
        if entry is None:
            return None
        pgt_id, written_at = entry
        if time.monotonic() - written_at > self.ttl:
            return None
        return pgt_id

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _evict(self, now: float):
        expired = [k for k, (_, written_at) in self._entries.items() if now - written_at > self.ttl]
        for key in expired:
            del self._entries[key]


class SQLPGTStore(PGTStore):
    """
    Store backed by the ProxyGrantingTicket table, for deployments running
    more than one worker process.
    """

    def __init__(self, engine, ttl: float = DEFAULT_PGT_TTL):
        self.engine = engine
        self.ttl = ttl

    def write(self, pgt_iou: str, pgt_id: str) -> None:
        with Session(self.engine) as session:
            row = session.get(ProxyGrantingTicket, pgt_iou)
            if row is None:
                row = ProxyGrantingTicket(pgt_iou=pgt_iou, pgt_id=pgt_id)
            else:
                row.pgt_id = pgt_id
                row.created_at = utcnow()
            session.add(row)
            session.commit()

    def read(self, pgt_iou: str) -> Optional[str]:
        with Session(self.engine) as session:
            # Compared in SQL, SQLite hands back naive datetimes
            row = session.exec(
                select(ProxyGrantingTicket)
                .where(ProxyGrantingTicket.pgt_iou == pgt_iou)
                .where(ProxyGrantingTicket.created_at >= self._cutoff())
            ).first()
            return row.pgt_id if row else None

    def purge_expired(self) -> int:
        with Session(self.engine) as session:
            result = session.exec(delete(ProxyGrantingTicket).where(ProxyGrantingTicket.created_at < self._cutoff()))
            session.commit()
            logger.info("cas: Purged %d expired proxy-granting tickets.", result.rowcount)
            return result.rowcount

    def _cutoff(self) -> datetime:
        return utcnow() - timedelta(seconds=self.ttl)
