"""
GraphQL schema definition using Ariadne.
"""
from ariadne import (
    QueryType,
    MutationType,
    ObjectType,
    make_executable_schema,
    ScalarType,
    load_schema_from_path,
)
from decimal import Decimal
from datetime import datetime
from pathlib import Path

from main.api.middleware import ErrorHandler
from main.domain.errors import NotFound
from main.services import BalanceService, NotificationService, OrderService

# Load schema from .graphql files
SCHEMAS_DIR = Path(__file__).parent / "schemas"
type_defs = "\n".join([
    load_schema_from_path(SCHEMAS_DIR / "common"),
    load_schema_from_path(SCHEMAS_DIR / "query"),
    load_schema_from_path(SCHEMAS_DIR / "mutation"),
])

query = QueryType()
mutation = MutationType()
notification = ObjectType("Notification")
order_item = ObjectType("OrderItem")


def _coin_result(operation) -> dict:
    """
    Run a ledger operation and shape it as a ``CoinResult``.

    Domain failures such as insufficient balance go in the payload; invalid
    input stays a GraphQL error.
    """
    try:
        entry = operation()
    except Exception as e:
        code = ErrorHandler.classify(e)
        if code is None or code == "VALIDATION_ERROR":
            raise
        return {"success": False, "error": str(e), "code": code, "replayed": False}
    result = entry.to_dict()
    return {"success": True, "replayed": entry.replayed, **result}


@query.field("coinBalance")
def resolve_coin_balance(_, info, customerId: str):
    """Resolve coin balance query."""
    return BalanceService().get_balance(customerId).to_dict(include_transactions=False)


@query.field("coinTransactions")
def resolve_coin_transactions(_, info, customerId: str, limit=None, type=None):
    """Resolve transaction history, newest first."""
    transactions = BalanceService().list_transactions(customerId, limit, type)
    return [t.to_dict() for t in transactions]


@query.field("coinAccounts")
def resolve_coin_accounts(_, info):
    return [a.to_dict(include_transactions=False) for a in BalanceService().list_accounts()]


@query.field("notifications")
def resolve_notifications(_, info, customerId: str, includeRead: bool = True):
    found = NotificationService().list_for_customer(customerId, include_read=includeRead)
    return [n.to_dict() for n in found]


@query.field("order")
def resolve_order(_, info, id):
    """Resolve order query; unknown ids resolve to null."""
    try:
        return OrderService().get_order(id).to_dict()
    except NotFound:
        return None


@mutation.field("addCoins")
def resolve_add_coins(_, info, input: dict):
    """Resolve add coins mutation."""
    metadata = {
        "order_id": input.get("orderId"),
        "payment_method": input.get("paymentMethod"),
        "payment_amount": input.get("paymentAmount"),
    }
    return _coin_result(lambda: BalanceService().credit(
        input["customerId"],
        input["amount"],
        input.get("type") or "purchase",
        input.get("description") or "Coin purchase",
        metadata={k: v for k, v in metadata.items() if v is not None},
        customer_email=input.get("customerEmail") or "",
    ))


@mutation.field("deductCoins")
def resolve_deduct_coins(_, info, customerId: str, amount: int, description=None, orderId=None):
    """Resolve deduct coins mutation."""
    return _coin_result(lambda: BalanceService().debit(
        customerId, amount, description or "Coin deduction", orderId
    ))


@mutation.field("giftCoins")
def resolve_gift_coins(_, info, customerId: str, amount: int, description=None, giftedBy=None, customerEmail=None):
    """Resolve gift mutation; the ``Idempotency-Key`` header makes it apply at most once."""
    request = info.context["request"]
    return _coin_result(lambda: BalanceService().gift(
        customerId,
        amount,
        description=description or "",
        gifted_by=giftedBy or "admin",
        customer_email=customerEmail or "",
        idempotency_key=request.headers.get("Idempotency-Key"),
    ))


@mutation.field("markNotificationRead")
def resolve_mark_notification_read(_, info, customerId: str, notificationId: str):
    return NotificationService().mark_as_read(customerId, notificationId).to_dict()


@notification.field("coinAmount")
def resolve_notification_coin_amount(notification_dict, info):
    return (notification_dict.get("data") or {}).get("coinAmount")


@notification.field("link")
def resolve_notification_link(notification_dict, info):
    return (notification_dict.get("data") or {}).get("link")


@order_item.field("productId")
def resolve_order_item_product_id(item_dict, info):
    return item_dict["id"]


# Define custom scalars
decimal_scalar = ScalarType("Decimal")
datetime_scalar = ScalarType("DateTime")


@decimal_scalar.serializer
def serialize_decimal(value):
    """Serialize Decimal to string."""
    return str(value)


@decimal_scalar.value_parser
def parse_decimal_value(value):
    """Parse Decimal from string."""
    return Decimal(str(value))


@datetime_scalar.serializer
def serialize_datetime(value):
    """Serialize DateTime to ISO format string; stored timestamps are already ISO strings."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@datetime_scalar.value_parser
def parse_datetime_value(value):
    """Parse DateTime from string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


# Create executable schema
schema = make_executable_schema(
    type_defs,
    query,
    mutation,
    notification,
    order_item,
    datetime_scalar,
    decimal_scalar,
)
