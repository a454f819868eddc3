from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class CASUser(BaseModel):
    user: str
    attributes: Dict[str, Any] = {}
    proxy_ticket: Optional[str] = None

class ProxyGrantingTicket(SQLModel, table=True):
    pgt_iou: str = Field(primary_key=True)
    pgt_id: str
    created_at: datetime = Field(default_factory=utcnow, index=True)

class RevokedTicket(SQLModel, table=True):
    # Service tickets whose sessions were ended by single sign-out
    ticket: str = Field(primary_key=True)
    revoked_at: datetime = Field(default_factory=utcnow, index=True)
