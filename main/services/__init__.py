from main.services.coins import BalanceService, LedgerEntry
from main.services.notifications import NotificationService
from main.services.orders import OrderService
from main.services.products import ProductService

__all__ = ["BalanceService", "LedgerEntry", "NotificationService", "OrderService", "ProductService"]
