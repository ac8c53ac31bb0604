"""
Domain model for Order aggregate.
"""
from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from main.domain.errors import InvalidState


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


def generate_order_number() -> str:
    timestamp = str(int(time.time() * 1000))
    return f"ORD-{timestamp[-6:]}-{random.randint(0, 999):03d}"


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


class OrderItem:
    """Order line item value object."""

    def __init__(
        self,
        product_id: str,
        name: str,
        quantity: int,
        price: Decimal,
        size: str | None = None,
        color: str | None = None,
        image: str | None = None,
    ):
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        if price < 0:
            raise ValueError("Price must be non-negative")

        self.product_id = product_id
        self.name = name
        self.quantity = quantity
        self.price = price
        self.size = size
        self.color = color
        self.image = image

    @property
    def subtotal(self) -> Decimal:
        """Calculate item subtotal."""
        return self.price * self.quantity

    def to_dict(self) -> dict:
        data = {
            "id": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
        }
        for key in ("size", "color", "image"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> OrderItem:
        return cls(
            product_id=str(data["id"]),
            name=data.get("name", ""),
            quantity=int(data["quantity"]),
            price=_money(data["price"]),
            size=data.get("size"),
            color=data.get("color"),
            image=data.get("image"),
        )


class Order:
    """Order aggregate root."""

    def __init__(
        self,
        customer_id: str,
        customer_email: str,
        items: list[OrderItem],
        shipping_address: dict,
        shipping: Decimal = Decimal("0.00"),
        coins_used: int = 0,
        coin_discount: Decimal = Decimal("0.00"),
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        payment_method: str | None = None,
        id: str | None = None,
        order_number: str | None = None,
        order_date: str | None = None,
        updated_at: str | None = None,
        tracking_number: str | None = None,
        notes: str | None = None,
    ):
        if not items:
            raise ValueError("Order must contain at least one item")
        if coin_discount > sum((item.subtotal for item in items), Decimal("0.00")) + shipping:
            raise ValueError("Coin discount cannot exceed the order amount")

        now = datetime.now(timezone.utc).isoformat()
        self.id = id or f"order_{uuid4().hex}"
        self.order_number = order_number or generate_order_number()
        self.customer_id = customer_id
        self.customer_email = customer_email
        self._items = list(items)
        self.shipping_address = shipping_address
        self.shipping = shipping
        self.coins_used = coins_used
        self.coin_discount = coin_discount
        self._status = OrderStatus(status)
        self.payment_status = PaymentStatus(payment_status)
        self.payment_method = payment_method
        self.order_date = order_date or now
        self.updated_at = updated_at or now
        self.tracking_number = tracking_number
        self.notes = notes

    @property
    def items(self) -> list[OrderItem]:
        """Get order items (copy)."""
        return list(self._items)

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def subtotal(self) -> Decimal:
        return _money(sum((item.subtotal for item in self._items), Decimal("0.00")))

    @property
    def total(self) -> Decimal:
        return _money(self.subtotal + self.shipping - self.coin_discount)

    def change_status(self, status: OrderStatus | str) -> OrderStatus:
        """Move the order to ``status`` and return the previous one."""
        status = OrderStatus(status)
        previous = self._status
        if status == previous:
            return previous
        if previous == OrderStatus.CANCELLED:
            raise InvalidState(f"Order {self.order_number} is cancelled")
        if previous == OrderStatus.DELIVERED:
            raise InvalidState(f"Order {self.order_number} is already delivered")

        self._status = status
        if status == OrderStatus.CANCELLED and self.payment_status == PaymentStatus.PAID:
            self.payment_status = PaymentStatus.REFUNDED
        return previous

    def cancel(self) -> None:
        self.change_status(OrderStatus.CANCELLED)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "orderNumber": self.order_number,
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "items": [item.to_dict() for item in self._items],
            "subtotal": str(self.subtotal),
            "shipping": str(_money(self.shipping)),
            "coinsUsed": self.coins_used,
            "coinDiscount": str(_money(self.coin_discount)),
            "total": str(self.total),
            "status": self._status.value,
            "paymentStatus": self.payment_status.value,
            "shippingAddress": self.shipping_address,
            "orderDate": self.order_date,
            "updatedAt": self.updated_at,
        }
        for key, value in (
            ("paymentMethod", self.payment_method),
            ("trackingNumber", self.tracking_number),
            ("notes", self.notes),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Order:
        return cls(
            id=data["id"],
            order_number=data.get("orderNumber"),
            customer_id=data["customerId"],
            customer_email=data.get("customerEmail", ""),
            items=[OrderItem.from_dict(item) for item in data.get("items", [])],
            shipping_address=data.get("shippingAddress") or {},
            shipping=_money(data.get("shipping", "0")),
            coins_used=int(data.get("coinsUsed", 0)),
            coin_discount=_money(data.get("coinDiscount", "0")),
            status=OrderStatus(data.get("status", OrderStatus.PENDING.value)),
            payment_status=PaymentStatus(data.get("paymentStatus", PaymentStatus.PENDING.value)),
            payment_method=data.get("paymentMethod"),
            order_date=data.get("orderDate"),
            updated_at=data.get("updatedAt"),
            tracking_number=data.get("trackingNumber"),
            notes=data.get("notes"),
        )
