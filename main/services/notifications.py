"""
Notification dispatcher: per-customer inbox kept in one JSON document.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from django.conf import settings

from main.domain.coins import parse_timestamp
from main.domain.errors import NotFound
from main.domain.notification import Notification, NotificationType
from main.infra.json_store import StaleDocumentError
from main.infra.locks import serialized_writes
from main.infra.pii_masker import mask_pii_in_dict
from main.infra.repositories import LedgerRepository, NotificationRepository, OrderRepository
from main.infra.retry import retry_with_backoff


logger = logging.getLogger(__name__)


def default_expiry() -> str:
    return (datetime.now(timezone.utc) + timedelta(days=settings.NOTIFICATION_TTL_DAYS)).isoformat()


def normalize_expiry(expires_at) -> str | None:
    """Return ``expires_at`` as an ISO 8601 UTC timestamp, ``None`` when absent."""
    if expires_at is None or expires_at == "":
        return None
    if not isinstance(expires_at, str):
        raise ValueError(f"expiresAt must be an ISO 8601 timestamp, got {expires_at!r}")
    try:
        return parse_timestamp(expires_at).astimezone(timezone.utc).isoformat()
    except ValueError as e:
        raise ValueError(f"expiresAt must be an ISO 8601 timestamp, got {expires_at!r}") from e


def _write_retries() -> int:
    return settings.LEDGER_WRITE_RETRIES


class NotificationService:
    """Service for notification operations."""

    def __init__(
        self,
        notification_repo: NotificationRepository | None = None,
        ledger_repo: LedgerRepository | None = None,
        order_repo: OrderRepository | None = None,
    ):
        self.notification_repo = notification_repo or NotificationRepository()
        self._ledger_repo = ledger_repo
        self._order_repo = order_repo

    def create(
        self,
        customer_id: str,
        type: NotificationType | str,
        title: str,
        message: str,
        data: dict | None = None,
        expires_at: str | None = None,
    ) -> Notification:
        """Add a notification to the top of the customer's inbox."""
        if not customer_id:
            raise ValueError("Customer ID is required")
        expires_at = normalize_expiry(expires_at)
        notification = Notification(
            customer_id=customer_id,
            type=type,
            title=title,
            message=message,
            data=data,
            expires_at=expires_at,
        )
        self._store([notification])
        logger.info(
            "notification_created",
            extra=mask_pii_in_dict({
                "customer_id": customer_id,
                "notification_id": notification.id,
                "notification_type": notification.type.value,
            }),
        )
        return notification

    def send_to_customers(
        self,
        customer_ids: list[str],
        type: NotificationType | str,
        title: str,
        message: str,
        data: dict | None = None,
        expires_at: str | None = None,
    ) -> int:
        """Send the same notification to each customer in one write. Returns the number sent."""
        expires_at = normalize_expiry(expires_at)
        recipients = list(dict.fromkeys(cid for cid in customer_ids if cid))
        notifications = [
            Notification(
                customer_id=customer_id,
                type=type,
                title=title,
                message=message,
                data=data,
                expires_at=expires_at,
            )
            for customer_id in recipients
        ]
        if notifications:
            self._store(notifications)
        logger.info("notifications_sent", extra={"recipients": len(notifications), "notification_type": str(type)})
        return len(notifications)

    def broadcast(
        self,
        type: NotificationType | str,
        title: str,
        message: str,
        data: dict | None = None,
        expires_at: str | None = None,
    ) -> int:
        """Send to every customer known to the notification, coin or order stores."""
        return self.send_to_customers(sorted(self.known_customer_ids()), type, title, message, data, expires_at)

    def known_customer_ids(self) -> set[str]:
        ledger_repo = self._ledger_repo or LedgerRepository()
        order_repo = self._order_repo or OrderRepository()
        return (
            self.notification_repo.customer_ids()
            | ledger_repo.customer_ids()
            | order_repo.customer_ids()
        )

    def list_for_customer(self, customer_id: str, include_read: bool = True) -> list[Notification]:
        """Unexpired notifications, newest first."""
        now = datetime.now(timezone.utc)
        document = self.notification_repo.load()
        notifications = [
            n for n in document.by_customer.get(customer_id, [])
            if not n.is_expired(now)
        ]
        if not include_read:
            notifications = [n for n in notifications if not n.is_read]
        return notifications

    def unread_count(self, customer_id: str) -> int:
        return len(self.list_for_customer(customer_id, include_read=False))

    @serialized_writes("notification_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def mark_as_read(self, customer_id: str, notification_id: str) -> Notification:
        document = self.notification_repo.load()
        if customer_id not in document.by_customer:
            raise NotFound(f"No notifications for customer {customer_id}")
        for notification in document.by_customer[customer_id]:
            if notification.id == notification_id:
                notification.is_read = True
                self.notification_repo.save(document)
                return notification
        raise NotFound(f"Notification {notification_id} not found")

    @serialized_writes("notification_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def mark_all_as_read(self, customer_id: str) -> int:
        document = self.notification_repo.load()
        unread = [n for n in document.by_customer.get(customer_id, []) if not n.is_read]
        for notification in unread:
            notification.is_read = True
        if unread:
            self.notification_repo.save(document)
        return len(unread)

    @serialized_writes("notification_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def delete(self, customer_id: str, notification_id: str) -> None:
        document = self.notification_repo.load()
        if customer_id not in document.by_customer:
            raise NotFound(f"No notifications for customer {customer_id}")
        items = document.by_customer[customer_id]
        remaining = [n for n in items if n.id != notification_id]
        if len(remaining) == len(items):
            raise NotFound(f"Notification {notification_id} not found")
        document.by_customer[customer_id] = remaining
        self.notification_repo.save(document)

    @serialized_writes("notification_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def delete_all(self, customer_id: str) -> int:
        document = self.notification_repo.load()
        removed = len(document.by_customer.get(customer_id, []))
        document.by_customer[customer_id] = []
        self.notification_repo.save(document)
        return removed

    def notify_coin_gift(self, customer_id: str, amount: int, description: str = "") -> Notification:
        suffix = f": {description}" if description else "!"
        return self.create(
            customer_id,
            NotificationType.COIN_GIFT,
            "Free Coins Received!",
            f"You've received {amount} free coins{suffix}",
            data={"coinAmount": amount, "link": "/coins"},
            expires_at=default_expiry(),
        )

    def notify_order_update(self, customer_id: str, order_id: str, order_number: str, status: str) -> Notification:
        return self.create(
            customer_id,
            NotificationType.ORDER_UPDATE,
            f"Order {order_number} {status}",
            f"Your order {order_number} is now {status}.",
            data={"orderId": order_id, "link": "/orders"},
            expires_at=default_expiry(),
        )

    @serialized_writes("notification_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _store(self, notifications: list[Notification]) -> None:
        document = self.notification_repo.load()
        cap = settings.NOTIFICATIONS_PER_CUSTOMER
        for notification in notifications:
            inbox = document.for_customer(notification.customer_id)
            inbox.insert(0, notification)
            del inbox[cap:]
        self.notification_repo.save(document)
