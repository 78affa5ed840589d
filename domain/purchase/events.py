"""
Purchase domain events.

Dataclass events record purchase lifecycle facts for downstream handling
(logging, projections). The domain stays free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PurchaseEvent:
    purchase_id: Optional[int]
    course_id: int
    user_id: int
    provider: str
    provider_reference: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass
class PurchaseCompleted(PurchaseEvent):
    amount: str = ""


@dataclass
class PurchaseFailed(PurchaseEvent):
    reason: Optional[str] = None


@dataclass
class PurchaseRefunded(PurchaseEvent):
    amount: str = ""
    reason: Optional[str] = None
