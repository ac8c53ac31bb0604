"""
Domain model for catalog products and their stock.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum


class StockStatus(str, Enum):
    IN_STOCK = "in-stock"
    LOW_STOCK = "low-stock"
    OUT_OF_STOCK = "out-of-stock"


class OutOfStock(ValueError):
    """One or more requested items cannot be fulfilled."""

    def __init__(self, product_ids: list[str]):
        self.product_ids = product_ids
        super().__init__(f"Out of stock: {', '.join(product_ids)}")


class Product:
    """Catalog product with optional per-size stock."""

    def __init__(
        self,
        id: str,
        name: str,
        price: Decimal,
        image: str = "",
        description: str | None = None,
        category: str | None = None,
        images: list[str] | None = None,
        sizes: list[str] | None = None,
        colors: list[str] | None = None,
        size_stock: dict[str, int] | None = None,
        in_stock: bool = True,
        rating: float | None = None,
        reviews: int | None = None,
        stock_quantity: int | None = None,
        low_stock_threshold: int | None = None,
        unlimited_stock: bool = False,
    ):
        if price < 0:
            raise ValueError("Price must be non-negative")

        self.id = id
        self.name = name
        self.price = price
        self.image = image
        self.description = description
        self.category = category
        self.images = images
        self.sizes = sizes
        self.colors = colors
        self.size_stock = dict(size_stock) if size_stock is not None else None
        self.in_stock = in_stock
        self.rating = rating
        self.reviews = reviews
        self.stock_quantity = stock_quantity
        self.low_stock_threshold = low_stock_threshold
        self.unlimited_stock = unlimited_stock

    @property
    def total_stock(self) -> int:
        if not self.unlimited_stock and self.size_stock:
            return sum(self.size_stock.values())
        return self.stock_quantity or 0

    @property
    def stock_status(self) -> StockStatus:
        if self.unlimited_stock:
            return StockStatus.IN_STOCK
        if not self.in_stock or (self.stock_quantity is not None and self.stock_quantity <= 0):
            return StockStatus.OUT_OF_STOCK
        if (
            self.stock_quantity is not None
            and self.low_stock_threshold is not None
            and self.stock_quantity <= self.low_stock_threshold
        ):
            return StockStatus.LOW_STOCK
        return StockStatus.IN_STOCK

    @property
    def is_available(self) -> bool:
        return self.stock_status != StockStatus.OUT_OF_STOCK

    def size_available(self, size: str) -> bool:
        if self.unlimited_stock:
            return self.in_stock is not False
        if self.size_stock:
            return self.size_stock.get(size, 0) > 0
        return self.is_available

    def can_fulfil(self, quantity: int, size: str | None = None) -> bool:
        """Whether ``quantity`` units (of ``size``) can be sold right now."""
        if self.unlimited_stock:
            return self.in_stock is not False
        if not self.is_available:
            return False
        if self.size_stock and size:
            return self.size_stock.get(size, 0) >= quantity
        if self.stock_quantity is None:
            return True
        return self.stock_quantity >= quantity

    def apply_purchase(self, quantity: int, size: str | None = None) -> dict:
        """Decrement stock after a sale and return the changed fields."""
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        if self.unlimited_stock:
            return {}

        if self.size_stock is not None and size:
            self.size_stock[size] = max(0, self.size_stock.get(size, 0) - quantity)
            self.stock_quantity = sum(self.size_stock.values())
            self.in_stock = self.stock_quantity > 0
            return {
                "sizeStock": dict(self.size_stock),
                "stockQuantity": self.stock_quantity,
                "inStock": self.in_stock,
            }

        self.stock_quantity = max(0, (self.stock_quantity or 0) - quantity)
        self.in_stock = self.stock_quantity > 0
        return {"stockQuantity": self.stock_quantity, "inStock": self.in_stock}

    def normalize_stock(self) -> None:
        """Make total, per-size and in-stock figures agree with each other."""
        if self.size_stock:
            self.stock_quantity = sum(self.size_stock.values())
        elif self.sizes:
            current = self.stock_quantity or 0
            per_size, remainder = divmod(current, len(self.sizes))
            self.size_stock = {
                size: per_size + (1 if index < remainder else 0)
                for index, size in enumerate(self.sizes)
            }
        if not self.unlimited_stock:
            self.in_stock = (self.stock_quantity or 0) > 0

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "price": str(self.price),
            "image": self.image,
            "inStock": self.in_stock,
            "unlimitedStock": self.unlimited_stock,
            "stockStatus": self.stock_status.value,
        }
        optional = {
            "description": self.description,
            "category": self.category,
            "images": self.images,
            "sizes": self.sizes,
            "colors": self.colors,
            "sizeStock": self.size_stock,
            "rating": self.rating,
            "reviews": self.reviews,
            "stockQuantity": self.stock_quantity,
            "lowStockThreshold": self.low_stock_threshold,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Product:
        size_stock = data.get("sizeStock")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            price=Decimal(str(data["price"])),
            image=data.get("image", ""),
            description=data.get("description"),
            category=data.get("category"),
            images=data.get("images"),
            sizes=data.get("sizes"),
            colors=data.get("colors"),
            size_stock={k: int(v) for k, v in size_stock.items()} if size_stock is not None else None,
            in_stock=data.get("inStock", True) is not False,
            rating=data.get("rating"),
            reviews=data.get("reviews"),
            stock_quantity=int(data["stockQuantity"]) if data.get("stockQuantity") is not None else None,
            low_stock_threshold=(
                int(data["lowStockThreshold"]) if data.get("lowStockThreshold") is not None else None
            ),
            unlimited_stock=bool(data.get("unlimitedStock", False)),
        )
