"""
Application services for orders and checkout.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from django.conf import settings

from main.domain.coins import coins_to_currency, parse_timestamp, validate_amount
from main.domain.errors import NotFound
from main.domain.order import Order, OrderItem, OrderStatus, PaymentStatus
from main.infra.json_store import StaleDocumentError
from main.infra.locks import serialized_writes
from main.infra.pii_masker import mask_pii_in_dict
from main.infra.repositories import OrderRepository
from main.infra.retry import retry_with_backoff
from main.services.coins import BalanceService
from main.services.notifications import NotificationService
from main.services.products import ProductService


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("customerId", "customerEmail", "items", "shippingAddress")
PROTECTED_FIELDS = {"id", "orderNumber", "orderDate"}
UPDATABLE_FIELDS = {
    "status", "paymentStatus", "paymentMethod", "trackingNumber", "notes", "shippingAddress",
}


def _write_retries() -> int:
    return settings.LEDGER_WRITE_RETRIES


def _decimal(value, field: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {field}: {value!r}") from e


class OrderService:
    """Service for order operations."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        product_service: ProductService | None = None,
        balance_service: BalanceService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.product_service = product_service or ProductService()
        self.notification_service = notification_service or NotificationService(order_repo=self.order_repo)
        self.balance_service = balance_service or BalanceService(notifier=self.notification_service)

    def checkout(self, data: dict) -> Order:
        """
        Place an order.

        Steps: validate, check stock, debit redeemed coins, decrement stock,
        save the order, notify. A failure after the coin debit refunds the
        coins before the error propagates.
        """
        order = self._build_order(data)
        stock_items = [
            {"id": item.product_id, "qty": item.quantity, "size": item.size}
            for item in order.items
        ]
        self.product_service.check_availability(stock_items)

        if order.coins_used:
            self.balance_service.debit(
                order.customer_id,
                order.coins_used,
                f"Coins redeemed on order {order.order_number}",
                order_id=order.id,
            )

        try:
            self.product_service.update_stock_after_purchase(stock_items)
            self._insert(order)
        except Exception:
            if order.coins_used:
                self._compensate_coins(order)
            raise

        logger.info(
            "order_created",
            extra=mask_pii_in_dict({
                "order_id": order.id,
                "customer_id": order.customer_id,
                "customer_email": order.customer_email,
                "total": str(order.total),
                "coins_used": order.coins_used,
            }),
        )
        self._notify(order)
        return order

    def get_order(self, order_id: str) -> Order:
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFound(f"No order found with ID: {order_id}")
        return order

    def list_orders(self, filters: dict | None = None) -> list[Order]:
        """All orders matching ``filters``, newest first."""
        orders = self.order_repo.list()
        filters = filters or {}

        if filters.get("status"):
            orders = [o for o in orders if o.status.value == filters["status"]]
        if filters.get("paymentStatus"):
            orders = [o for o in orders if o.payment_status.value == filters["paymentStatus"]]
        if filters.get("customerId"):
            orders = [o for o in orders if o.customer_id == filters["customerId"]]
        if filters.get("startDate"):
            start = _date_filter(filters["startDate"])
            orders = [o for o in orders if parse_timestamp(o.order_date) >= start]
        if filters.get("endDate"):
            end = _date_filter(filters["endDate"])
            orders = [o for o in orders if parse_timestamp(o.order_date) <= end]
        if filters.get("minAmount") is not None:
            minimum = _decimal(filters["minAmount"], "minAmount")
            orders = [o for o in orders if o.total >= minimum]
        if filters.get("maxAmount") is not None:
            maximum = _decimal(filters["maxAmount"], "maxAmount")
            orders = [o for o in orders if o.total <= maximum]

        return _newest_first(orders)

    def list_for_customer_email(self, email: str) -> list[Order]:
        email = email.lower()
        return _newest_first([o for o in self.order_repo.list() if o.customer_email.lower() == email])

    def update_order(self, order_id: str, updates: dict) -> Order:
        """Apply allowed field updates. Cancelling refunds redeemed coins."""
        updates = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}
        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        order, previous_status = self._apply_update(order_id, updates)

        if order.status != previous_status:
            logger.info(
                "order_status_changed",
                extra={"order_id": order.id, "from_status": previous_status.value, "to_status": order.status.value},
            )
            if order.status == OrderStatus.CANCELLED and order.coins_used:
                self.balance_service.refund(
                    order.customer_id,
                    order.coins_used,
                    f"Refund for cancelled order {order.order_number}",
                    order_id=order.id,
                )
            self._notify(order)
        return order

    @serialized_writes("order_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def delete_order(self, order_id: str) -> None:
        document = self.order_repo.load()
        index = document.index_of(order_id)
        if index < 0:
            raise NotFound(f"No order found with ID: {order_id}")
        order = document.items.pop(index)
        self.order_repo.save(document)
        logger.info("order_deleted", extra={"order_id": order_id, "order_number": order.order_number})

    def statistics(self) -> dict:
        orders = self.order_repo.list()
        revenue = sum((o.total for o in orders), Decimal("0.00"))
        average = (revenue / len(orders)).quantize(Decimal("0.01")) if orders else Decimal("0.00")
        return {
            "totalOrders": len(orders),
            "totalRevenue": str(revenue),
            "averageOrderValue": str(average),
            "statusBreakdown": {
                status.value: sum(1 for o in orders if o.status == status) for status in OrderStatus
            },
            "paymentStatusBreakdown": {
                status.value: sum(1 for o in orders if o.payment_status == status) for status in PaymentStatus
            },
        }

    def _build_order(self, data: dict) -> Order:
        missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")
        if not isinstance(data["items"], list):
            raise ValueError("Order must contain at least one item")

        items = []
        for raw in data["items"]:
            if not isinstance(raw, dict) or not raw.get("id"):
                raise ValueError("Every order item needs an id")
            try:
                quantity = int(raw.get("quantity", 0))
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid quantity for item {raw['id']}") from e
            items.append(OrderItem(
                product_id=str(raw["id"]),
                name=raw.get("name", ""),
                quantity=quantity,
                price=_decimal(raw.get("price"), "price").quantize(Decimal("0.01")),
                size=raw.get("size"),
                color=raw.get("color"),
                image=raw.get("image"),
            ))

        coins_used = data.get("coinsUsed") or 0
        if coins_used:
            validate_amount(coins_used)
        shipping = _decimal(data.get("shipping", settings.DEFAULT_SHIPPING), "shipping")

        return Order(
            customer_id=data["customerId"],
            customer_email=data["customerEmail"],
            items=items,
            shipping_address=data["shippingAddress"],
            shipping=shipping,
            coins_used=coins_used,
            coin_discount=coins_to_currency(coins_used),
            payment_method=data.get("paymentMethod"),
            payment_status=data.get("paymentStatus", PaymentStatus.PENDING.value),
            notes=data.get("notes"),
        )

    @serialized_writes("order_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _insert(self, order: Order) -> None:
        document = self.order_repo.load()
        document.items.append(order)
        self.order_repo.save(document)

    @serialized_writes("order_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _apply_update(self, order_id: str, updates: dict) -> tuple[Order, OrderStatus]:
        document = self.order_repo.load()
        order = document.get(order_id)
        if order is None:
            raise NotFound(f"No order found with ID: {order_id}")

        previous_status = order.status
        if "status" in updates:
            order.change_status(updates["status"])
        if "paymentStatus" in updates:
            order.payment_status = PaymentStatus(updates["paymentStatus"])
        if "paymentMethod" in updates:
            order.payment_method = updates["paymentMethod"]
        if "trackingNumber" in updates:
            order.tracking_number = updates["trackingNumber"]
        if "notes" in updates:
            order.notes = updates["notes"]
        if "shippingAddress" in updates:
            order.shipping_address = updates["shippingAddress"]
        order.updated_at = datetime.now(timezone.utc).isoformat()

        self.order_repo.save(document)
        return order, previous_status

    def _compensate_coins(self, order: Order) -> None:
        logger.warning("checkout_compensation", extra={"order_id": order.id, "coins_used": order.coins_used})
        self.balance_service.refund(
            order.customer_id,
            order.coins_used,
            f"Refund for failed order {order.order_number}",
            order_id=order.id,
        )

    def _notify(self, order: Order) -> None:
        try:
            self.notification_service.notify_order_update(
                order.customer_id, order.id, order.order_number, order.status.value
            )
        except Exception as e:
            logger.warning(
                "order_notification_failed",
                extra={"order_id": order.id, "error": str(e)},
                exc_info=True,
            )


def _date_filter(value: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as e:
        raise ValueError(f"Invalid date: {value!r}") from e


def _newest_first(orders: list[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: parse_timestamp(o.order_date), reverse=True)
