"""
Infrastructure repositories for domain entities.

Each repository owns one JSON document under ``settings.STOREFRONT_DATA_DIR``
and converts between the stored camelCase records and domain objects.
"""
from __future__ import annotations

import logging
from pathlib import Path

from django.conf import settings

from main.domain.coins import LedgerDocument
from main.domain.notification import Notification
from main.domain.order import Order
from main.domain.product import Product
from main.infra.json_store import JsonDocumentStore, PersistenceError, StoredDocument
from main.infra.locks import document_lock


logger = logging.getLogger(__name__)


def default_store(filename: str, default_factory) -> JsonDocumentStore:
    return JsonDocumentStore(Path(settings.STOREFRONT_DATA_DIR) / filename, default_factory)


class _DocumentRepository:
    store = None

    def write_lock(self):
        """Single-writer lock of the repository document."""
        return document_lock(self.store.lock_key)


class LedgerRepository(_DocumentRepository):
    """Repository for the coin ledger document."""

    FILENAME = "coins.json"

    def __init__(self, store=None):
        self.store = store or default_store(self.FILENAME, lambda: {"customers": {}, "idempotency": {}})

    def load(self) -> LedgerDocument:
        """Load the whole ledger; an absent document is an empty ledger."""
        stored = self.store.load()
        return LedgerDocument.from_dict(stored.data, version=stored.version)

    def save(self, document: LedgerDocument) -> None:
        """Overwrite the whole ledger with invariant validation."""
        for account in document.accounts.values():
            problems = account.invariant_violations()
            if problems:
                raise PersistenceError(f"Coin account {account.customer_id} is inconsistent: {'; '.join(problems)}")

        document.version = self.store.save(document.to_dict(), document.version)

    def customer_ids(self) -> set[str]:
        return set(self.load().accounts)


class NotificationDocument:
    """Notifications per customer, newest first."""

    def __init__(self, by_customer: dict[str, list[Notification]], version: int = 0):
        self.by_customer = by_customer
        self.version = version

    def for_customer(self, customer_id: str) -> list[Notification]:
        return self.by_customer.setdefault(customer_id, [])


class NotificationRepository(_DocumentRepository):
    """Repository for the notifications document."""

    FILENAME = "notifications.json"

    def __init__(self, store=None):
        self.store = store or default_store(self.FILENAME, lambda: {"notifications": {}})

    def load(self) -> NotificationDocument:
        stored = self.store.load()
        by_customer = {
            customer_id: [Notification.from_dict(n) for n in items]
            for customer_id, items in (stored.data.get("notifications") or {}).items()
        }
        return NotificationDocument(by_customer, stored.version)

    def save(self, document: NotificationDocument) -> None:
        data = {
            "notifications": {
                customer_id: [n.to_dict() for n in items]
                for customer_id, items in document.by_customer.items()
            }
        }
        document.version = self.store.save(data, document.version)

    def customer_ids(self) -> set[str]:
        return set(self.load().by_customer)


class ListDocument:
    """Ordered list of records plus the version it was read at."""

    def __init__(self, items: list, version: int = 0):
        self.items = items
        self.version = version

    def index_of(self, item_id: str) -> int:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                return index
        return -1

    def get(self, item_id: str):
        index = self.index_of(item_id)
        return self.items[index] if index >= 0 else None


class _ListRepository(_DocumentRepository):
    FILENAME = ""
    KEY = ""
    entity = None

    def __init__(self, store=None):
        self.store = store or default_store(self.FILENAME, lambda: {self.KEY: []})

    def load(self) -> ListDocument:
        stored: StoredDocument = self.store.load()
        return ListDocument([self.entity.from_dict(raw) for raw in stored.data.get(self.KEY) or []], stored.version)

    def save(self, document: ListDocument) -> None:
        document.version = self.store.save({self.KEY: [item.to_dict() for item in document.items]}, document.version)

    def get_by_id(self, item_id: str):
        return self.load().get(item_id)

    def list(self) -> list:
        return self.load().items


class OrderRepository(_ListRepository):
    """Repository for Order aggregate."""

    FILENAME = "orders.json"
    KEY = "orders"
    entity = Order

    def customer_ids(self) -> set[str]:
        return {order.customer_id for order in self.list() if order.customer_id}


class ProductRepository(_ListRepository):
    """Repository for catalog products."""

    FILENAME = "products.json"
    KEY = "products"
    entity = Product
