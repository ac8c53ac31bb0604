"""
JSON endpoints for the storefront and its admin console.

Every response uses the envelope ``{"success": true, "data": ...}`` or
``{"success": false, "error": ..., "code": ...}``.
"""
import json
from decimal import Decimal, InvalidOperation
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from main.api.middleware import ErrorHandler, ValidationError
from main.domain.coins import validate_amount
from main.services import BalanceService, NotificationService, OrderService, ProductService
from main.services.notifications import default_expiry


def api_view(methods: list[str]):
    """CSRF-exempt JSON view restricted to ``methods``; exceptions become error envelopes."""
    def decorator(func):
        @csrf_exempt
        @require_http_methods(methods)
        @wraps(func)
        def wrapper(request, *args, **kwargs):
            try:
                return func(request, *args, **kwargs)
            except Exception as e:
                return ErrorHandler.handle_error(e)
        return wrapper
    return decorator


def _success(data=None, status: int = 200, message: str | None = None, **extra) -> JsonResponse:
    payload = {"success": True}
    if data is not None:
        payload["data"] = data
    if message:
        payload["message"] = message
    payload.update(extra)
    return JsonResponse(payload, status=status)


def _json_body(request) -> dict:
    try:
        body = json.loads(request.body or b"{}")
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _positive_int(value: str | None, field: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{field} must be a positive integer")
    if number <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return number


def _require(body: dict, field: str, label: str) -> str:
    value = body.get(field)
    if not value:
        raise ValidationError(f"{label} is required")
    return value


def _credit_metadata(options: dict) -> dict:
    metadata = {
        "order_id": options.get("orderId"),
        "payment_method": options.get("paymentMethod"),
        "gifted_by": options.get("giftedBy"),
    }
    if options.get("paymentAmount") is not None:
        try:
            metadata["payment_amount"] = Decimal(str(options["paymentAmount"]))
        except InvalidOperation:
            raise ValidationError("paymentAmount must be a number")
    return {key: value for key, value in metadata.items() if value is not None}


# ---------------------------------------------------------------------------
# Coins
# ---------------------------------------------------------------------------

@api_view(["GET", "POST"])
def coins(request):
    """Balance and history lookup (GET), add/deduct (POST)."""
    service = BalanceService()

    if request.method == "GET":
        customer_id = _require(request.GET, "customerId", "Customer ID")
        if request.GET.get("transactions") == "true":
            limit = _positive_int(request.GET.get("limit"), "limit")
            transactions = service.list_transactions(customer_id, limit, request.GET.get("type") or None)
            return _success([t.to_dict() for t in transactions])
        return _success(service.get_balance(customer_id).to_dict())

    body = _json_body(request)
    customer_id = _require(body, "customerId", "Customer ID")
    amount = validate_amount(body.get("amount"))
    options = body.get("options") or {}
    if not isinstance(options, dict):
        raise ValidationError("options must be an object")
    action = body.get("action")

    if action == "add":
        entry = service.credit(
            customer_id,
            amount,
            options.get("type") or "purchase",
            body.get("description") or "Coin purchase",
            metadata=_credit_metadata(options),
            customer_email=body.get("customerEmail") or "",
        )
        return _success(entry.to_dict(), message=f"Successfully added {amount} coins")
    if action == "deduct":
        entry = service.debit(
            customer_id,
            amount,
            body.get("description") or "Coin deduction",
            options.get("orderId"),
        )
        return _success(entry.to_dict(), message=f"Successfully deducted {amount} coins")
    raise ValidationError('Invalid action. Use "add" or "deduct"')


@api_view(["GET", "POST"])
def admin_coins(request):
    """All balances (GET) and coin gifts (POST, honours ``Idempotency-Key``)."""
    service = BalanceService()

    if request.method == "GET":
        return _success([a.to_dict(include_transactions=False) for a in service.list_accounts()])

    body = _json_body(request)
    customer_id = _require(body, "customerId", "Customer ID")
    amount = validate_amount(body.get("amount"))
    entry = service.gift(
        customer_id,
        amount,
        description=body.get("description") or "",
        gifted_by=body.get("giftedBy") or "admin",
        customer_email=body.get("customerEmail") or "",
        idempotency_key=request.headers.get("Idempotency-Key"),
    )
    return _success(entry.to_dict(), message=f"Successfully gifted {amount} coins", replayed=entry.replayed)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

@api_view(["GET", "POST"])
def notifications(request):
    service = NotificationService()

    if request.method == "GET":
        customer_id = _require(request.GET, "customerId", "Customer ID")
        if request.GET.get("action") == "unreadCount":
            return _success(service.unread_count(customer_id))
        include_read = request.GET.get("includeRead") != "false"
        return _success([n.to_dict() for n in service.list_for_customer(customer_id, include_read)])

    body = _json_body(request)
    customer_id = _require(body, "customerId", "Customer ID")
    action = body.get("action")

    if action == "markAsRead":
        notification_id = _require(body, "notificationId", "Notification ID")
        return _success(service.mark_as_read(customer_id, notification_id).to_dict(), message="Notification marked as read")
    if action == "markAllAsRead":
        return _success(service.mark_all_as_read(customer_id), message="All notifications marked as read")
    if action == "delete":
        notification_id = _require(body, "notificationId", "Notification ID")
        service.delete(customer_id, notification_id)
        return _success(True, message="Notification deleted")
    if action == "deleteAll":
        return _success(service.delete_all(customer_id), message="All notifications deleted")
    raise ValidationError("Invalid action")


@api_view(["POST"])
def admin_notifications(request):
    body = _json_body(request)
    if not body.get("title") or not body.get("message") or not body.get("type"):
        raise ValidationError("Title, message, and type are required")

    service = NotificationService()
    content = {
        "type": body["type"],
        "title": body["title"],
        "message": body["message"],
        "data": body.get("data"),
        "expires_at": body.get("expiresAt") or default_expiry(),
    }
    action = body.get("action")

    if action == "sendToOne":
        customer_id = _require(body, "customerId", "Customer ID")
        return _success(service.create(customer_id, **content).to_dict(), message="Notification created successfully")
    if action == "sendToMultiple":
        customer_ids = body.get("customerIds")
        if not isinstance(customer_ids, list) or not customer_ids:
            raise ValidationError("Customer IDs array is required for sendToMultiple action")
        sent = service.send_to_customers(customer_ids, **content)
        return _success(sent, message=f"Notification sent to {sent} customers")
    if action == "broadcast":
        sent = service.broadcast(**content)
        return _success(sent, message=f"Notification sent to {sent} customers")
    raise ValidationError("Invalid action. Use: sendToOne, sendToMultiple, or broadcast")


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@api_view(["GET"])
def products(request):
    service = ProductService()
    items = service.list_products(
        category=request.GET.get("category") or None,
        in_stock_only=request.GET.get("inStock") == "true",
    )
    return _success([p.to_dict() for p in items], count=len(items))


@api_view(["GET"])
def product_detail(request, product_id: str):
    return _success(ProductService().get_product(product_id).to_dict())


@api_view(["POST"])
def product_stock(request):
    body = _json_body(request)
    items = body.get("items")
    if not isinstance(items, list):
        raise ValidationError("Invalid items data")
    for item in items:
        if not isinstance(item, dict) or not item.get("id"):
            raise ValidationError("Every item needs an id")
        if _positive_int(str(item.get("qty", "")), "qty") is None:
            raise ValidationError("qty must be a positive integer")

    results = ProductService().update_stock_after_purchase(items)
    updated = sum(1 for r in results if r["updated"])
    return _success(results, message=f"Stock updated for {updated} products", updatedCount=updated)


@api_view(["POST"])
def admin_products(request):
    product = ProductService().create_product(_json_body(request))
    return _success(product.to_dict(), status=201)


@api_view(["PUT", "DELETE"])
def admin_product_detail(request, product_id: str):
    service = ProductService()
    if request.method == "DELETE":
        service.delete_product(product_id)
        return _success(message="Product deleted successfully")
    return _success(service.update_product(product_id, _json_body(request)).to_dict())


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

ORDER_FILTERS = ("status", "paymentStatus", "customerId", "startDate", "endDate", "minAmount", "maxAmount")


@api_view(["GET", "POST"])
def orders(request):
    service = OrderService()

    if request.method == "GET":
        if request.GET.get("stats") == "true":
            return _success(service.statistics(), message="Order statistics retrieved successfully")
        filters = {key: request.GET[key] for key in ORDER_FILTERS if request.GET.get(key)}
        found = service.list_orders(filters)
        return _success([o.to_dict() for o in found], count=len(found))

    order = service.checkout(_json_body(request))
    return _success(order.to_dict(), status=201, message=f"Order {order.order_number} created successfully")


@api_view(["GET", "PUT", "DELETE"])
def order_detail(request, order_id: str):
    service = OrderService()

    if request.method == "GET":
        return _success(service.get_order(order_id).to_dict())
    if request.method == "DELETE":
        service.delete_order(order_id)
        return _success(message="Order deleted successfully")

    order = service.update_order(order_id, _json_body(request))
    return _success(order.to_dict(), message=f"Order {order.order_number} updated successfully")


@api_view(["GET"])
def customer_orders(request, email: str):
    found = OrderService().list_for_customer_email(email)
    return _success([o.to_dict() for o in found], count=len(found))
