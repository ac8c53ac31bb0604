"""
Integration tests for the REST API.
"""
import json

from django.test import SimpleTestCase

from main.domain.coins import CoinAccount, LedgerDocument
from main.test.utils import TempDataDirMixin


CATALOG = {
    "products": [
        {
            "id": "sw-1",
            "name": "Shirt",
            "price": "25.00",
            "image": "/shirt.png",
            "category": "tops",
            "sizes": ["M"],
            "sizeStock": {"M": 3},
            "stockQuantity": 3,
            "inStock": True,
        },
        {
            "id": "sw-2",
            "name": "Cap",
            "price": "15.00",
            "image": "/cap.png",
            "category": "accessories",
            "stockQuantity": 0,
            "inStock": False,
        },
    ]
}


class CoinAPITest(TempDataDirMixin, SimpleTestCase):
    """Tests for /api/coins."""

    def _add(self, amount, customer_id="cust-1", **options):
        return self.post_json("/api/coins", {
            "action": "add",
            "customerId": customer_id,
            "amount": amount,
            "options": options,
        })

    def _deduct(self, amount, customer_id="cust-1"):
        return self.post_json("/api/coins", {"action": "deduct", "customerId": customer_id, "amount": amount})

    def test_add_and_deduct(self):
        response = self._add(100, type="purchase", paymentMethod="card", paymentAmount="1.00")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data["success"])
        self.assertEqual(data["data"]["account"]["balance"], 100)
        self.assertEqual(data["data"]["transaction"]["paymentAmount"], "1.00")

        response = self._deduct(150)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertFalse(data["success"])
        self.assertEqual(data["code"], "INSUFFICIENT_BALANCE")
        self.assertIn("Available: 100, requested: 150", data["error"])

        response = self._deduct(40)
        self.assertEqual(response.json()["data"]["account"]["balance"], 60)

        balance = self.client.get("/api/coins", {"customerId": "cust-1"}).json()["data"]
        self.assertEqual((balance["balance"], balance["totalEarned"], balance["totalSpent"]), (60, 100, 40))
        self.assertEqual(len(balance["transactions"]), 2)

    def test_ledger_file_written(self):
        self._add(10)
        document = self.read_document("coins.json")
        self.assertEqual(document["_version"], 1)
        self.assertEqual(document["customers"]["cust-1"]["balance"], 10)

    def test_balance_for_unknown_customer_is_zero(self):
        response = self.client.get("/api/coins", {"customerId": "nobody"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["balance"], 0)
        self.assertFalse((self.data_dir / "coins.json").exists())

    def test_transaction_history(self):
        self._add(10)
        self._add(20)
        self._deduct(5)

        response = self.client.get("/api/coins", {"customerId": "cust-1", "transactions": "true", "limit": "2"})
        history = response.json()["data"]
        self.assertEqual([t["type"] for t in history], ["deduction", "purchase"])
        self.assertEqual(history[1]["amount"], 20)

        response = self.client.get("/api/coins", {"customerId": "cust-1", "transactions": "true", "type": "deduction"})
        self.assertEqual([t["amount"] for t in response.json()["data"]], [5])

    def test_validation_errors(self):
        cases = [
            self.client.get("/api/coins"),
            self.client.get("/api/coins", {"customerId": "c", "transactions": "true", "limit": "zero"}),
            self.client.get("/api/coins", {"customerId": "c", "transactions": "true", "limit": "0"}),
            self.post_json("/api/coins", {"action": "add", "amount": 10}),
            self.post_json("/api/coins", {"action": "add", "customerId": "c"}),
            self.post_json("/api/coins", {"action": "add", "customerId": "c", "amount": -5}),
            self.post_json("/api/coins", {"action": "add", "customerId": "c", "amount": 2.5}),
            self.post_json("/api/coins", {"action": "steal", "customerId": "c", "amount": 5}),
            self.post_json("/api/coins", {"action": "add", "customerId": "c", "amount": 5, "options": {"type": "bogus"}}),
            self.post_json("/api/coins", {"action": "add", "customerId": "c", "amount": 5, "options": ["x"]}),
            self.client.post("/api/coins", data="{oops", content_type="application/json"),
        ]
        for response in cases:
            with self.subTest(body=response.content):
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_method_not_allowed(self):
        self.assertEqual(self.client.put("/api/coins").status_code, 405)

    def test_request_id_is_echoed(self):
        response = self.client.get("/api/coins", {"customerId": "c"}, HTTP_X_REQUEST_ID="req-123")
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_corrupt_ledger_file(self):
        (self.data_dir / "coins.json").write_text("{broken")
        response = self.client.get("/api/coins", {"customerId": "c"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "PERSISTENCE_ERROR")

    def test_inconsistent_ledger_file_is_a_storage_error(self):
        account = CoinAccount(customer_id="cust-1")
        account.credit(10)
        account._balance = 99
        self.write_document("coins.json", LedgerDocument(accounts={"cust-1": account}).to_dict())

        response = self._add(5)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "PERSISTENCE_ERROR")


class AdminCoinAPITest(TempDataDirMixin, SimpleTestCase):
    """Tests for /api/admin/coins."""

    def _gift(self, amount, key=None, **extra):
        headers = {"HTTP_IDEMPOTENCY_KEY": key} if key else {}
        payload = {"customerId": "cust-1", "amount": amount, "description": "Promo", **extra}
        return self.post_json("/api/admin/coins", payload, **headers)

    def test_gift_notifies_customer(self):
        response = self._gift(50)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["data"]["transaction"]["type"], "gift")
        self.assertEqual(data["data"]["transaction"]["giftedBy"], "admin")
        self.assertFalse(data["replayed"])

        inbox = self.client.get("/api/notifications", {"customerId": "cust-1"}).json()["data"]
        self.assertEqual(inbox[0]["title"], "Free Coins Received!")
        self.assertEqual(inbox[0]["data"]["coinAmount"], 50)

    def test_idempotent_gift(self):
        first = self._gift(50, key="gift-1").json()
        second = self._gift(50, key="gift-1").json()
        self.assertTrue(second["replayed"])
        self.assertEqual(second["data"]["transaction"]["id"], first["data"]["transaction"]["id"])

        conflict = self._gift(60, key="gift-1")
        self.assertEqual(conflict.status_code, 409)
        self.assertEqual(conflict.json()["code"], "DUPLICATE_REQUEST")

        balance = self.client.get("/api/coins", {"customerId": "cust-1"}).json()["data"]["balance"]
        self.assertEqual(balance, 50)
        inbox = self.client.get("/api/notifications", {"customerId": "cust-1"}).json()["data"]
        self.assertEqual(len(inbox), 1)

    def test_list_accounts(self):
        self._gift(5)
        self.post_json("/api/admin/coins", {"customerId": "cust-2", "amount": 10})
        accounts = self.client.get("/api/admin/coins").json()["data"]
        self.assertEqual([a["customerId"] for a in accounts], ["cust-2", "cust-1"])
        self.assertNotIn("transactions", accounts[0])

    def test_invalid_gift(self):
        response = self.post_json("/api/admin/coins", {"customerId": "cust-1", "amount": 0})
        self.assertEqual(response.status_code, 400)


class NotificationAPITest(TempDataDirMixin, SimpleTestCase):
    """Tests for /api/notifications and /api/admin/notifications."""

    def _send(self, **payload):
        body = {"action": "sendToOne", "customerId": "cust-1", "type": "system", "title": "Hi", "message": "Hello"}
        body.update(payload)
        return self.post_json("/api/admin/notifications", body)

    def test_send_and_read(self):
        created = self._send().json()["data"]
        self.assertTrue(created["id"].startswith("notif_"))
        self.assertIn("expiresAt", created)

        count = self.client.get("/api/notifications", {"customerId": "cust-1", "action": "unreadCount"})
        self.assertEqual(count.json()["data"], 1)

        response = self.post_json(
            "/api/notifications",
            {"action": "markAsRead", "customerId": "cust-1", "notificationId": created["id"]},
        )
        self.assertTrue(response.json()["data"]["isRead"])

        unread = self.client.get("/api/notifications", {"customerId": "cust-1", "includeRead": "false"})
        self.assertEqual(unread.json()["data"], [])

    def test_unknown_notification(self):
        self._send()
        response = self.post_json(
            "/api/notifications",
            {"action": "markAsRead", "customerId": "cust-1", "notificationId": "notif_nope"},
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "NOT_FOUND")

    def test_delete_all(self):
        self._send()
        self._send()
        response = self.post_json("/api/notifications", {"action": "deleteAll", "customerId": "cust-1"})
        self.assertEqual(response.json()["data"], 2)

    def test_send_to_multiple_and_broadcast(self):
        response = self._send(action="sendToMultiple", customerIds=["a", "b"])
        self.assertEqual(response.json()["data"], 2)

        response = self._send(action="broadcast")
        self.assertEqual(response.json()["data"], 2)

    def test_admin_validation(self):
        self.assertEqual(self._send(title="").status_code, 400)
        self.assertEqual(self._send(action="sendToMultiple").status_code, 400)
        self.assertEqual(self._send(action="shout").status_code, 400)
        self.assertEqual(self._send(type="spam").status_code, 400)

    def test_invalid_expiry_leaves_inboxes_readable(self):
        self._send(customerId="cust-2")
        for expires_at in ("next-week", 1700000000):
            for action in ("sendToOne", "broadcast"):
                with self.subTest(expires_at=expires_at, action=action):
                    response = self._send(action=action, expiresAt=expires_at)
                    self.assertEqual(response.status_code, 400)
                    self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

        listed = self.client.get("/api/notifications", {"customerId": "cust-2"})
        self.assertEqual(listed.status_code, 200)
        self.assertEqual(len(listed.json()["data"]), 1)
        count = self.client.get("/api/notifications", {"customerId": "cust-1", "action": "unreadCount"})
        self.assertEqual(count.json()["data"], 0)


class ProductAPITest(TempDataDirMixin, SimpleTestCase):
    """Tests for product endpoints."""

    def setUp(self):
        super().setUp()
        self.write_document("products.json", CATALOG)

    def test_list_and_detail(self):
        response = self.client.get("/api/products")
        self.assertEqual(response.json()["count"], 2)

        response = self.client.get("/api/products", {"inStock": "true"})
        self.assertEqual([p["id"] for p in response.json()["data"]], ["sw-1"])

        response = self.client.get("/api/products/sw-2")
        self.assertEqual(response.json()["data"]["stockStatus"], "out-of-stock")

        self.assertEqual(self.client.get("/api/products/sw-404").status_code, 404)

    def test_stock_update(self):
        response = self.post_json("/api/products/stock", {"items": [{"id": "sw-1", "qty": 2, "size": "M"}]})
        data = response.json()
        self.assertEqual(data["updatedCount"], 1)
        self.assertEqual(data["data"][0]["newStock"], 1)

        response = self.post_json("/api/products/stock", {"items": [{"id": "sw-1", "qty": 0}]})
        self.assertEqual(response.status_code, 400)

    def test_admin_crud(self):
        response = self.post_json("/api/admin/products", {"name": "Mug", "price": "9.50", "image": "/mug.png"})
        self.assertEqual(response.status_code, 201)
        product_id = response.json()["data"]["id"]

        response = self.client.put(
            f"/api/admin/products/{product_id}",
            data=json.dumps({"price": "8.00"}),
            content_type="application/json",
        )
        self.assertEqual(response.json()["data"]["price"], "8.00")

        self.assertEqual(self.client.delete(f"/api/admin/products/{product_id}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/admin/products/{product_id}").status_code, 404)

        response = self.post_json("/api/admin/products", {"name": "Mug"})
        self.assertEqual(response.status_code, 400)


class OrderAPITest(TempDataDirMixin, SimpleTestCase):
    """Tests for order endpoints."""

    def setUp(self):
        super().setUp()
        self.write_document("products.json", CATALOG)
        self.post_json("/api/coins", {"action": "add", "customerId": "cust-1", "amount": 1000})

    def _order_body(self, **overrides):
        body = {
            "customerId": "cust-1",
            "customerEmail": "buyer@example.com",
            "items": [{"id": "sw-1", "name": "Shirt", "price": "25.00", "quantity": 1, "size": "M"}],
            "shippingAddress": {"city": "Berlin"},
            "coinsUsed": 300,
        }
        body.update(overrides)
        return body

    def test_create_and_fetch(self):
        response = self.post_json("/api/orders", self._order_body())
        self.assertEqual(response.status_code, 201)
        order = response.json()["data"]
        self.assertEqual(order["total"], "22.00")
        self.assertEqual(order["status"], "pending")

        detail = self.client.get(f"/api/orders/{order['id']}").json()["data"]
        self.assertEqual(detail["orderNumber"], order["orderNumber"])

        by_email = self.client.get("/api/orders/customer/Buyer@Example.com").json()
        self.assertEqual(by_email["count"], 1)

        balance = self.client.get("/api/coins", {"customerId": "cust-1"}).json()["data"]["balance"]
        self.assertEqual(balance, 700)

    def test_out_of_stock(self):
        response = self.post_json(
            "/api/orders",
            self._order_body(items=[{"id": "sw-2", "price": "15.00", "quantity": 1}]),
        )
        self.assertEqual(response.status_code, 409)
        data = response.json()
        self.assertEqual(data["code"], "OUT_OF_STOCK")
        self.assertEqual(data["productIds"], ["sw-2"])

    def test_missing_fields(self):
        response = self.post_json("/api/orders", {"customerId": "cust-1"})
        self.assertEqual(response.status_code, 400)

    def test_cancel_refunds_and_locks_order(self):
        order = self.post_json("/api/orders", self._order_body()).json()["data"]

        response = self.client.put(
            f"/api/orders/{order['id']}",
            data=json.dumps({"status": "cancelled"}),
            content_type="application/json",
        )
        self.assertEqual(response.json()["data"]["status"], "cancelled")
        balance = self.client.get("/api/coins", {"customerId": "cust-1"}).json()["data"]["balance"]
        self.assertEqual(balance, 1000)

        response = self.client.put(
            f"/api/orders/{order['id']}",
            data=json.dumps({"status": "shipped"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATE")

    def test_list_stats_and_delete(self):
        order = self.post_json("/api/orders", self._order_body(coinsUsed=0)).json()["data"]

        listed = self.client.get("/api/orders", {"customerId": "cust-1"}).json()
        self.assertEqual(listed["count"], 1)

        stats = self.client.get("/api/orders", {"stats": "true"}).json()["data"]
        self.assertEqual(stats["totalOrders"], 1)
        self.assertEqual(stats["totalRevenue"], "25.00")

        self.assertEqual(self.client.delete(f"/api/orders/{order['id']}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/orders/{order['id']}").status_code, 404)
