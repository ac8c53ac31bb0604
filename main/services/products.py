"""
Catalog and stock operations.
"""
from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation

from django.conf import settings

from main.domain.errors import NotFound
from main.domain.product import OutOfStock, Product
from main.infra.json_store import StaleDocumentError
from main.infra.locks import serialized_writes
from main.infra.repositories import ProductRepository
from main.infra.retry import retry_with_backoff


logger = logging.getLogger(__name__)

PROTECTED_FIELDS = {"id", "stockStatus"}


def _write_retries() -> int:
    return settings.LEDGER_WRITE_RETRIES


def _price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid price: {value!r}") from e
    if price <= 0:
        raise ValueError("Price must be positive")
    return price


class ProductService:
    """Service for product and stock operations."""

    def __init__(self, product_repo: ProductRepository | None = None):
        self.product_repo = product_repo or ProductRepository()

    def list_products(self, category: str | None = None, in_stock_only: bool = False) -> list[Product]:
        products = self.product_repo.list()
        if category:
            products = [p for p in products if (p.category or "").lower() == category.lower()]
        if in_stock_only:
            products = [p for p in products if p.is_available]
        return products

    def get_product(self, product_id: str) -> Product:
        product = self.product_repo.get_by_id(product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        return product

    @serialized_writes("product_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def create_product(self, data: dict) -> Product:
        """Add a product. ``name``, ``price`` and ``image`` are required."""
        missing = [field for field in ("name", "price", "image") if not data.get(field)]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        document = self.product_repo.load()
        product_id = data.get("id") or f"sw-{str(time.time_ns() // 1000)[-6:]}"
        if document.get(product_id) is not None:
            raise ValueError(f"Product {product_id} already exists")

        product = Product.from_dict({**data, "id": product_id, "price": _price(data["price"])})
        document.items.append(product)
        self.product_repo.save(document)
        logger.info("product_created", extra={"product_id": product.id})
        return product

    @serialized_writes("product_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def update_product(self, product_id: str, updates: dict) -> Product:
        document = self.product_repo.load()
        index = document.index_of(product_id)
        if index < 0:
            raise NotFound(f"Product {product_id} not found")

        merged = document.items[index].to_dict()
        merged.update({k: v for k, v in updates.items() if k not in PROTECTED_FIELDS})
        merged["price"] = _price(merged["price"])
        document.items[index] = Product.from_dict(merged)
        self.product_repo.save(document)
        logger.info("product_updated", extra={"product_id": product_id, "fields": sorted(updates)})
        return document.items[index]

    @serialized_writes("product_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def delete_product(self, product_id: str) -> None:
        document = self.product_repo.load()
        index = document.index_of(product_id)
        if index < 0:
            raise NotFound(f"Product {product_id} not found")
        del document.items[index]
        self.product_repo.save(document)
        logger.info("product_deleted", extra={"product_id": product_id})

    def check_availability(self, items: list[dict]) -> None:
        """Raise ``OutOfStock`` naming every item that cannot be fulfilled."""
        document = self.product_repo.load()
        unavailable = []
        for item in items:
            product = document.get(str(item["id"]))
            if product is None:
                raise NotFound(f"Product {item['id']} not found")
            if not product.can_fulfil(int(item["qty"]), item.get("size")):
                unavailable.append(product.id)
        if unavailable:
            raise OutOfStock(unavailable)

    @serialized_writes("product_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def update_stock_after_purchase(self, items: list[dict]) -> list[dict]:
        """Decrement stock for purchased ``items`` ({id, qty, size?}); unknown ids are skipped."""
        document = self.product_repo.load()
        results = []
        for item in items:
            product = document.get(str(item.get("id")))
            if product is None:
                logger.warning("stock_update_unknown_product", extra={"product_id": item.get("id")})
                results.append({"id": item.get("id"), "updated": False, "reason": "not_found"})
                continue
            if product.unlimited_stock:
                results.append({"id": product.id, "updated": False, "reason": "unlimited_stock"})
                continue

            old_stock = product.stock_quantity
            changes = product.apply_purchase(int(item["qty"]), item.get("size"))
            results.append({
                "id": product.id,
                "size": item.get("size"),
                "updated": True,
                "oldStock": old_stock,
                "newStock": changes["stockQuantity"],
                "inStock": changes["inStock"],
            })

        self.product_repo.save(document)
        logger.info(
            "stock_updated",
            extra={"updated": sum(1 for r in results if r["updated"]), "requested": len(items)},
        )
        return results

    @serialized_writes("product_repo")
    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def normalize_stock(self) -> list[Product]:
        """Recompute totals from size stock and in-stock flags for every product."""
        document = self.product_repo.load()
        for product in document.items:
            product.normalize_stock()
        self.product_repo.save(document)
        return document.items
