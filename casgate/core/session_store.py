"""
Single sign-out support.

Starlette keeps sessions in signed cookies, so a session cannot be deleted
server side when the CAS server sends a logoutRequest. Instead the store
remembers which service tickets were destroyed and the middleware clears any
session still holding one of them on its next request.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict

from sqlmodel import Session, delete

from ..models import RevokedTicket, utcnow

logger = logging.getLogger(__name__)

DEFAULT_REVOCATION_TTL = 8 * 60 * 60


class CASSessionStore(ABC):
    """
    Capability required for single sign-out: destroy a session by the CAS
    service ticket that created it.
    """

    @abstractmethod
    def destroy_session_by_cas_ticket(self, ticket: str) -> None:
        ...

    def is_session_destroyed(self, ticket: str) -> bool:
        return False


class InMemorySessionStore(CASSessionStore):

    def __init__(self):
        self._revoked: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def destroy_session_by_cas_ticket(self, ticket: str) -> None:
        with self._lock:
            self._revoked[ticket] = utcnow()

    def is_session_destroyed(self, ticket: str) -> bool:
        with self._lock:
            return ticket in self._revoked


class SQLSessionStore(CASSessionStore):

    def __init__(self, engine, ttl: float = DEFAULT_REVOCATION_TTL):
        self.engine = engine
        self.ttl = ttl

    def destroy_session_by_cas_ticket(self, ticket: str) -> None:
        with Session(self.engine) as session:
            if session.get(RevokedTicket, ticket) is None:
                session.add(RevokedTicket(ticket=ticket))
                session.commit()

    def is_session_destroyed(self, ticket: str) -> bool:
        with Session(self.engine) as session:
            return session.get(RevokedTicket, ticket) is not None

    def purge_expired(self) -> int:
        cutoff = utcnow() - timedelta(seconds=self.ttl)
        with Session(self.engine) as session:
            result = session.exec(delete(RevokedTicket).where(RevokedTicket.revoked_at < cutoff))
            session.commit()
            logger.info("cas: Purged %d expired single-sign-out revocations.", result.rowcount)
            return result.rowcount
