"""
Domain model for the coin ledger.

A ``CoinAccount`` is the per-customer aggregate; every balance change is
recorded as an immutable ``CoinTransaction``. All accounts of the store live
in one ``LedgerDocument`` which is loaded and saved as a whole.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from enum import Enum
from typing import Any
from uuid import uuid4


COIN_TO_CURRENCY_RATE = Decimal("0.01")
CURRENCY_TO_COIN_RATE = 100


class InvalidAmount(ValueError):
    """Coin amount is not a positive integer."""


class InsufficientBalance(ValueError):
    """Debit exceeds the current balance."""

    def __init__(self, customer_id: str, balance: int, requested: int):
        self.customer_id = customer_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient coin balance. Available: {balance}, requested: {requested}"
        )


class TransactionType(str, Enum):
    """Coin transaction type."""
    PURCHASE = "purchase"
    GIFT = "gift"
    DEDUCTION = "deduction"
    REFUND = "refund"

    @property
    def is_credit(self) -> bool:
        return self is not TransactionType.DEDUCTION


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_amount(amount: Any) -> int:
    """Return ``amount`` if it is a positive integer, raise otherwise."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Coin amount must be an integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount("Coin amount must be positive")
    return amount


def currency_to_coins(amount: Decimal | int | float | str) -> int:
    """Convert a currency amount to coins, rounding down."""
    coins = Decimal(str(amount)) * CURRENCY_TO_COIN_RATE
    return int(coins.to_integral_value(rounding=ROUND_FLOOR))


def coins_to_currency(coins: int) -> Decimal:
    return (Decimal(coins) * COIN_TO_CURRENCY_RATE).quantize(Decimal("0.01"))


@dataclass(frozen=True)
class CoinTransaction:
    """Immutable ledger entry. ``amount`` is always positive; the sign follows ``type``."""
    id: str
    customer_id: str
    type: TransactionType
    amount: int
    balance_before: int
    balance_after: int
    description: str
    created_at: str
    customer_email: str = ""
    order_id: str | None = None
    gifted_by: str | None = None
    payment_method: str | None = None
    payment_amount: Decimal | None = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "type": self.type.value,
            "amount": self.amount,
            "balanceBefore": self.balance_before,
            "balanceAfter": self.balance_after,
            "description": self.description,
            "createdAt": self.created_at,
        }
        if self.order_id is not None:
            data["orderId"] = self.order_id
        if self.gifted_by is not None:
            data["giftedBy"] = self.gifted_by
        if self.payment_method is not None:
            data["paymentMethod"] = self.payment_method
        if self.payment_amount is not None:
            data["paymentAmount"] = str(self.payment_amount)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> CoinTransaction:
        payment_amount = data.get("paymentAmount")
        return cls(
            id=data["id"],
            customer_id=data["customerId"],
            customer_email=data.get("customerEmail", ""),
            type=TransactionType(data["type"]),
            amount=int(data["amount"]),
            balance_before=int(data["balanceBefore"]),
            balance_after=int(data["balanceAfter"]),
            description=data.get("description", ""),
            created_at=data["createdAt"],
            order_id=data.get("orderId"),
            gifted_by=data.get("giftedBy"),
            payment_method=data.get("paymentMethod"),
            payment_amount=Decimal(str(payment_amount)) if payment_amount is not None else None,
        )


class CoinAccount:
    """Coin account aggregate root."""

    def __init__(
        self,
        customer_id: str,
        customer_email: str = "",
        balance: int = 0,
        total_earned: int = 0,
        total_spent: int = 0,
        created_at: str | None = None,
        updated_at: str | None = None,
        last_transaction_date: str | None = None,
        transactions: list[CoinTransaction] | None = None,
    ):
        if not customer_id:
            raise ValueError("Customer id is required")
        now = utcnow()
        self.customer_id = customer_id
        self.customer_email = customer_email
        self._balance = balance
        self._total_earned = total_earned
        self._total_spent = total_spent
        self.created_at: str | None = created_at or now
        self.updated_at: str | None = updated_at or now
        self.last_transaction_date = last_transaction_date
        self._transactions = list(transactions or [])

    @classmethod
    def empty(cls, customer_id: str) -> CoinAccount:
        """Zero-value account for a customer without ledger history. Not persisted."""
        account = cls(customer_id=customer_id)
        account.created_at = None
        account.updated_at = None
        return account

    @property
    def balance(self) -> int:
        return self._balance

    @property
    def total_earned(self) -> int:
        return self._total_earned

    @property
    def total_spent(self) -> int:
        return self._total_spent

    @property
    def transactions(self) -> list[CoinTransaction]:
        """Get account transactions in insertion order (copy)."""
        return list(self._transactions)

    def credit(
        self,
        amount: int,
        kind: TransactionType = TransactionType.PURCHASE,
        description: str = "",
        *,
        order_id: str | None = None,
        gifted_by: str | None = None,
        payment_method: str | None = None,
        payment_amount: Decimal | None = None,
    ) -> CoinTransaction:
        """Add coins to the account."""
        amount = validate_amount(amount)
        kind = TransactionType(kind)
        if not kind.is_credit:
            raise ValueError(f"{kind.value} is not a credit transaction type")

        transaction = self._record(
            kind,
            amount,
            self._balance + amount,
            description,
            order_id=order_id,
            gifted_by=gifted_by,
            payment_method=payment_method,
            payment_amount=payment_amount,
        )
        self._total_earned += amount
        return transaction

    def debit(self, amount: int, description: str = "", order_id: str | None = None) -> CoinTransaction:
        """Remove coins from the account. Rejected wholesale if the balance is too low."""
        amount = validate_amount(amount)
        if amount > self._balance:
            raise InsufficientBalance(self.customer_id, self._balance, amount)

        transaction = self._record(
            TransactionType.DEDUCTION,
            amount,
            self._balance - amount,
            description,
            order_id=order_id,
        )
        self._total_spent += amount
        return transaction

    def _record(self, kind: TransactionType, amount: int, balance_after: int, description: str, **metadata) -> CoinTransaction:
        now = utcnow()
        transaction = CoinTransaction(
            id=f"txn_{uuid4().hex}",
            customer_id=self.customer_id,
            customer_email=self.customer_email,
            type=kind,
            amount=amount,
            balance_before=self._balance,
            balance_after=balance_after,
            description=description,
            created_at=now,
            **metadata,
        )
        self._balance = balance_after
        self._transactions.append(transaction)
        self.last_transaction_date = now
        self.updated_at = now
        return transaction

    def calculate_balance_from_transactions(self) -> int:
        """Replay the transaction list (for validation)."""
        balance = 0
        for transaction in self._transactions:
            if transaction.type.is_credit:
                balance += transaction.amount
            else:
                balance -= transaction.amount
        return balance

    def invariant_violations(self) -> list[str]:
        """Describe every broken ledger invariant, empty when consistent."""
        problems = []
        if self._balance < 0:
            problems.append(f"negative balance {self._balance}")
        if self._balance != self._total_earned - self._total_spent:
            problems.append(
                f"balance {self._balance} != totalEarned {self._total_earned} - totalSpent {self._total_spent}"
            )
        replayed = self.calculate_balance_from_transactions()
        if replayed != self._balance:
            problems.append(f"balance {self._balance} != replayed transactions {replayed}")
        running = 0
        for transaction in self._transactions:
            running += transaction.amount if transaction.type.is_credit else -transaction.amount
            if transaction.balance_after != running:
                problems.append(
                    f"transaction {transaction.id} balanceAfter {transaction.balance_after} != {running}"
                )
        return problems

    def to_dict(self, include_transactions: bool = True) -> dict:
        data = {
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "balance": self._balance,
            "totalEarned": self._total_earned,
            "totalSpent": self._total_spent,
            "lastTransactionDate": self.last_transaction_date,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if include_transactions:
            data["transactions"] = [t.to_dict() for t in self._transactions]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> CoinAccount:
        return cls(
            customer_id=data["customerId"],
            customer_email=data.get("customerEmail", ""),
            balance=int(data.get("balance", 0)),
            total_earned=int(data.get("totalEarned", 0)),
            total_spent=int(data.get("totalSpent", 0)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            last_transaction_date=data.get("lastTransactionDate"),
            transactions=[CoinTransaction.from_dict(t) for t in data.get("transactions", [])],
        )


@dataclass
class IdempotencyRecord:
    """Outcome of a keyed gift request, stored alongside the accounts."""
    key: str
    request_hash: str
    customer_id: str
    transaction_id: str
    created_at: str = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "requestHash": self.request_hash,
            "customerId": self.customer_id,
            "transactionId": self.transaction_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict) -> IdempotencyRecord:
        return cls(
            key=key,
            request_hash=data["requestHash"],
            customer_id=data["customerId"],
            transaction_id=data["transactionId"],
            created_at=data.get("createdAt", ""),
        )


class LedgerDocument:
    """All coin accounts plus gift idempotency records."""

    def __init__(
        self,
        accounts: dict[str, CoinAccount] | None = None,
        idempotency: dict[str, IdempotencyRecord] | None = None,
        version: int = 0,
    ):
        self.accounts = accounts or {}
        self.idempotency = idempotency or {}
        self.version = version

    def get_account(self, customer_id: str) -> CoinAccount | None:
        return self.accounts.get(customer_id)

    def get_or_create(self, customer_id: str, customer_email: str = "") -> CoinAccount:
        """Return the account, adding a zero-value one to this document if missing."""
        account = self.accounts.get(customer_id)
        if account is None:
            account = CoinAccount(customer_id=customer_id, customer_email=customer_email)
            self.accounts[customer_id] = account
        elif customer_email and not account.customer_email:
            account.customer_email = customer_email
        return account

    def to_dict(self) -> dict:
        return {
            "customers": {cid: account.to_dict() for cid, account in self.accounts.items()},
            "idempotency": {key: record.to_dict() for key, record in self.idempotency.items()},
        }

    @classmethod
    def from_dict(cls, data: dict, version: int = 0) -> LedgerDocument:
        return cls(
            accounts={
                cid: CoinAccount.from_dict(raw)
                for cid, raw in (data.get("customers") or {}).items()
            },
            idempotency={
                key: IdempotencyRecord.from_dict(key, raw)
                for key, raw in (data.get("idempotency") or {}).items()
            },
            version=version,
        )
