#!/usr/bin/env python3
"""
End-to-end check of the storefront HTTP API against a running server.

Covers:
- Coin purchase and deduction (REST)
- Insufficient balance rejection
- Admin gift with Idempotency-Key replay
- Transaction history and gift notification
- Coin balance through GraphQL

Start the server first (``python manage.py runserver``) and pass the base URL
through API_BASE_URL or ``--base-url``.
"""
import argparse
import os
import sys
from uuid import uuid4

import requests


API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000")


class StorefrontClient:
    """Thin client for the REST and GraphQL endpoints."""

    def __init__(self, base_url: str = API_BASE_URL):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def get(self, path: str, **params) -> dict:
        response = self.session.get(f"{self.base_url}{path}", params=params)
        return response.json()

    def post(self, path: str, payload: dict, idempotency_key: str = None) -> dict:
        headers = {"X-Request-ID": str(uuid4())}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        response = self.session.post(f"{self.base_url}{path}", json=payload, headers=headers)
        return response.json()

    def graphql(self, query: str, variables: dict = None) -> dict:
        response = self.session.post(
            f"{self.base_url}/graphql/",
            json={"query": query, "variables": variables or {}},
        )
        response.raise_for_status()
        return response.json()


def print_section(title: str):
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def print_result(success: bool, message: str) -> bool:
    status = "✓" if success else "✗"
    print(f"{status} {message}")
    return success


def check_purchase_and_deduct(client: StorefrontClient, customer_id: str) -> bool:
    print_section("Purchase and deduct")
    ok = True

    result = client.post("/api/coins", {
        "action": "add",
        "customerId": customer_id,
        "customerEmail": f"{customer_id}@example.com",
        "amount": 100,
        "options": {"type": "purchase", "paymentMethod": "card", "paymentAmount": "1.00"},
    })
    ok &= print_result(
        result.get("success") and result["data"]["account"]["balance"] == 100,
        f"Purchased 100 coins: {result.get('data', result)}",
    )

    result = client.post("/api/coins", {"action": "deduct", "customerId": customer_id, "amount": 150})
    ok &= print_result(
        not result.get("success") and result.get("code") == "INSUFFICIENT_BALANCE",
        f"Deducting 150 rejected: {result.get('error')}",
    )

    result = client.post("/api/coins", {"action": "deduct", "customerId": customer_id, "amount": 40})
    ok &= print_result(
        result.get("success") and result["data"]["account"]["balance"] == 60,
        "Deducted 40 coins, balance is 60",
    )
    return ok


def check_idempotent_gift(client: StorefrontClient, customer_id: str) -> bool:
    print_section("Admin gift with Idempotency-Key")
    key = str(uuid4())
    payload = {"customerId": customer_id, "amount": 25, "description": "Smoke test gift"}

    first = client.post("/api/admin/coins", payload, idempotency_key=key)
    second = client.post("/api/admin/coins", payload, idempotency_key=key)
    ok = print_result(first.get("success"), "Gift applied")
    ok &= print_result(
        second.get("replayed") and second["data"]["transaction"]["id"] == first["data"]["transaction"]["id"],
        "Replay returned the original transaction",
    )

    conflict = client.post("/api/admin/coins", {**payload, "amount": 26}, idempotency_key=key)
    ok &= print_result(conflict.get("code") == "DUPLICATE_REQUEST", "Key reuse with a different body rejected")
    return ok


def check_history_and_notifications(client: StorefrontClient, customer_id: str) -> bool:
    print_section("History and notifications")
    history = client.get("/api/coins", customerId=customer_id, transactions="true")
    types = [t["type"] for t in history.get("data", [])]
    ok = print_result(types == ["gift", "deduction", "purchase"], f"History newest first: {types}")

    notifications = client.get("/api/notifications", customerId=customer_id)
    titles = [n["title"] for n in notifications.get("data", [])]
    ok &= print_result("Free Coins Received!" in titles, f"Gift notification delivered: {titles}")
    return ok


def check_graphql_balance(client: StorefrontClient, customer_id: str) -> bool:
    print_section("GraphQL balance")
    response = client.graphql(
        """
        query CoinBalance($customerId: String!) {
            coinBalance(customerId: $customerId) {
                balance
                totalEarned
                totalSpent
            }
        }
        """,
        {"customerId": customer_id},
    )
    if "errors" in response:
        return print_result(False, f"Error: {response['errors']}")
    account = response["data"]["coinBalance"]
    return print_result(
        account == {"balance": 85, "totalEarned": 125, "totalSpent": 40},
        f"Balance: {account}",
    )


def main():
    parser = argparse.ArgumentParser(description="Storefront API smoke test")
    parser.add_argument("--base-url", default=API_BASE_URL)
    parser.add_argument("--customer-id", default=f"smoke-{uuid4().hex[:8]}")
    args = parser.parse_args()

    client = StorefrontClient(args.base_url)
    checks = [
        check_purchase_and_deduct,
        check_idempotent_gift,
        check_history_and_notifications,
        check_graphql_balance,
    ]
    try:
        results = [check(client, args.customer_id) for check in checks]
    except requests.RequestException as e:
        print_result(False, f"Server unreachable: {e}")
        sys.exit(2)

    print_section("Summary")
    print_result(all(results), f"{sum(results)}/{len(results)} checks passed")
    sys.exit(0 if all(results) else 1)


if __name__ == "__main__":
    main()
