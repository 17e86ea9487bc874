"""Notification payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class SaleAlert(BaseModel):
    """A new sale worth telling the owner about."""

    title: str = "New Sale"
    item: str
    amount: int
    group_id: int
    occurred_at: datetime
    buyer_name: Optional[str] = None
    buyer_id: Optional[int] = None
    id_hash: Optional[str] = None


class MessageField(BaseModel):
    name: str
    value: str
    inline: bool = True


class Message(BaseModel):
    """A free-form summary message (reports, anomalies)."""

    title: str
    description: Optional[str] = None
    fields: list[MessageField] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
