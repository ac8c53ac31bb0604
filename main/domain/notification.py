"""
Domain model for customer notifications.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4


class NotificationType(str, Enum):
    COIN_GIFT = "coin_gift"
    OFFER = "offer"
    ORDER_UPDATE = "order_update"
    SYSTEM = "system"
    PROMOTION = "promotion"


class Notification:
    """User-visible message addressed to one customer."""

    def __init__(
        self,
        customer_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
        data: dict | None = None,
        is_read: bool = False,
        id: str | None = None,
        created_at: str | None = None,
        expires_at: str | None = None,
    ):
        self.id = id or f"notif_{uuid4().hex}"
        self.customer_id = customer_id
        self.type = NotificationType(type)
        self.title = title
        self.message = message
        self.data = data
        self.is_read = is_read
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()
        self.expires_at = expires_at

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.expires_at:
            return False
        now = now or datetime.now(timezone.utc)
        expires = datetime.fromisoformat(self.expires_at.replace("Z", "+00:00"))
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "customerId": self.customer_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "isRead": self.is_read,
            "createdAt": self.created_at,
        }
        if self.data is not None:
            data["data"] = self.data
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Notification:
        return cls(
            id=data["id"],
            customer_id=data["customerId"],
            type=data["type"],
            title=data.get("title", ""),
            message=data.get("message", ""),
            data=data.get("data"),
            is_read=bool(data.get("isRead", False)),
            created_at=data.get("createdAt"),
            expires_at=data.get("expiresAt"),
        )
