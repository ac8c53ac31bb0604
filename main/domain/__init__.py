from main.domain.coins import CoinAccount, CoinTransaction, LedgerDocument, TransactionType
from main.domain.notification import Notification, NotificationType
from main.domain.order import Order, OrderItem, OrderStatus, PaymentStatus
from main.domain.product import Product, StockStatus

__all__ = [
    "CoinAccount",
    "CoinTransaction",
    "LedgerDocument",
    "TransactionType",
    "Notification",
    "NotificationType",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "StockStatus",
]
