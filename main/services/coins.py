"""
Balance service for the coin ledger.

Every mutation is a full load-modify-save cycle of the ledger document. It
runs under the ledger's single-writer lock, shared by all customers, and is
retried when another process changed the stored document underneath it
(optimistic version check on save).
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass

from django.conf import settings

from main.domain.coins import (
    CoinAccount,
    CoinTransaction,
    IdempotencyRecord,
    InsufficientBalance,
    TransactionType,
    parse_timestamp,
    validate_amount,
)
from main.domain.errors import DuplicateRequest
from main.infra.json_store import StaleDocumentError
from main.infra.pii_masker import mask_pii_in_dict
from main.infra.repositories import LedgerRepository
from main.infra.retry import retry_with_backoff


logger = logging.getLogger(__name__)

CREDIT_METADATA = frozenset({"order_id", "gifted_by", "payment_method", "payment_amount"})


def _write_retries() -> int:
    return settings.LEDGER_WRITE_RETRIES


@dataclass(frozen=True)
class LedgerEntry:
    """Result of a successful credit or debit."""
    account: CoinAccount
    transaction: CoinTransaction
    replayed: bool = False

    def to_dict(self) -> dict:
        return {
            "account": self.account.to_dict(include_transactions=False),
            "transaction": self.transaction.to_dict(),
        }


class BalanceService:
    """Service for coin balance operations."""

    def __init__(self, ledger_repo: LedgerRepository | None = None, notifier=None):
        self.ledger_repo = ledger_repo or LedgerRepository()
        self._notifier = notifier

    @property
    def notifier(self):
        if self._notifier is None:
            from main.services.notifications import NotificationService
            self._notifier = NotificationService(ledger_repo=self.ledger_repo)
        return self._notifier

    def get_balance(self, customer_id: str) -> CoinAccount:
        """Current account; a zero-value account when the customer has no history. Never writes."""
        _require_customer(customer_id)
        account = self.ledger_repo.load().get_account(customer_id)
        return account if account is not None else CoinAccount.empty(customer_id)

    def credit(
        self,
        customer_id: str,
        amount: int,
        kind: TransactionType | str = TransactionType.PURCHASE,
        description: str = "",
        metadata: dict | None = None,
        customer_email: str = "",
    ) -> LedgerEntry:
        """Add coins. ``kind`` must be a credit type (purchase, gift or refund)."""
        _require_customer(customer_id)
        validate_amount(amount)
        kind = TransactionType(kind)
        if not kind.is_credit:
            raise ValueError(f"{kind.value} is not a credit transaction type")
        metadata = dict(metadata or {})
        unknown = set(metadata) - CREDIT_METADATA
        if unknown:
            raise ValueError(f"Unsupported transaction metadata: {', '.join(sorted(unknown))}")

        with self.ledger_repo.write_lock():
            entry = self._apply_credit(customer_id, amount, kind, description, metadata, customer_email)

        if kind == TransactionType.GIFT:
            self._notify_gift(customer_id, amount, description)
        return entry

    def debit(
        self,
        customer_id: str,
        amount: int,
        description: str = "",
        order_id: str | None = None,
    ) -> LedgerEntry:
        """Remove coins; rejected wholesale with ``InsufficientBalance`` when the balance is too low."""
        _require_customer(customer_id)
        validate_amount(amount)

        with self.ledger_repo.write_lock():
            try:
                return self._apply_debit(customer_id, amount, description, order_id)
            except InsufficientBalance as e:
                logger.warning(
                    "coins_debit_rejected",
                    extra=mask_pii_in_dict({
                        "customer_id": customer_id,
                        "amount": amount,
                        "balance": e.balance,
                        "order_id": order_id,
                    }),
                )
                raise

    def refund(
        self,
        customer_id: str,
        amount: int,
        description: str = "",
        order_id: str | None = None,
    ) -> LedgerEntry:
        """Give back coins that were spent, e.g. on a cancelled order."""
        return self.credit(
            customer_id,
            amount,
            TransactionType.REFUND,
            description or "Coin refund",
            {"order_id": order_id} if order_id else None,
        )

    def gift(
        self,
        customer_id: str,
        amount: int,
        description: str = "",
        gifted_by: str = "admin",
        customer_email: str = "",
        idempotency_key: str | None = None,
    ) -> LedgerEntry:
        """
        Credit free coins and notify the customer.

        With ``idempotency_key`` the gift is applied at most once: replaying the
        same request returns the original entry, reusing the key for a
        different request raises ``DuplicateRequest``. The notification is
        best-effort and never undoes the credit.
        """
        _require_customer(customer_id)
        validate_amount(amount)
        description = description or "Admin gift"
        if not idempotency_key:
            return self.credit(
                customer_id,
                amount,
                TransactionType.GIFT,
                description,
                {"gifted_by": gifted_by},
                customer_email,
            )

        request_hash = _request_hash(customer_id, amount, description, gifted_by)
        with self.ledger_repo.write_lock():
            entry = self._apply_keyed_gift(
                customer_id, amount, description, gifted_by, customer_email, idempotency_key, request_hash
            )

        if entry.replayed:
            logger.info("gift_replayed", extra={"idempotency_key": idempotency_key[:8] + "..."})
        else:
            self._notify_gift(customer_id, amount, description)
        return entry

    def list_transactions(
        self,
        customer_id: str,
        limit: int | None = None,
        kind: TransactionType | str | None = None,
    ) -> list[CoinTransaction]:
        """Customer transactions, newest first, optionally filtered by type and truncated."""
        _require_customer(customer_id)
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0):
            raise ValueError("Limit must be a positive integer")
        kind = TransactionType(kind) if kind else None

        account = self.ledger_repo.load().get_account(customer_id)
        if account is None:
            return []

        transactions = [t for t in account.transactions if kind is None or t.type == kind]
        # reversed() first so equal timestamps keep latest-appended first
        transactions = sorted(
            reversed(transactions),
            key=lambda t: parse_timestamp(t.created_at),
            reverse=True,
        )
        if limit is not None:
            transactions = transactions[:limit]
        return transactions

    def list_accounts(self) -> list[CoinAccount]:
        """All accounts, highest balance first."""
        accounts = list(self.ledger_repo.load().accounts.values())
        accounts.sort(key=lambda a: a.balance, reverse=True)
        return accounts

    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _apply_credit(self, customer_id, amount, kind, description, metadata, customer_email) -> LedgerEntry:
        document = self.ledger_repo.load()
        account = document.get_or_create(customer_id, customer_email)
        transaction = account.credit(amount, kind, description, **metadata)
        self.ledger_repo.save(document)

        logger.info(
            "coins_credited",
            extra=mask_pii_in_dict({
                "customer_id": customer_id,
                "transaction_id": transaction.id,
                "transaction_type": kind.value,
                "amount": amount,
                "balance": account.balance,
            }),
        )
        return LedgerEntry(account, transaction)

    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _apply_debit(self, customer_id, amount, description, order_id) -> LedgerEntry:
        document = self.ledger_repo.load()
        account = document.get_account(customer_id)
        if account is None:
            raise InsufficientBalance(customer_id, 0, amount)
        transaction = account.debit(amount, description, order_id)
        self.ledger_repo.save(document)

        logger.info(
            "coins_debited",
            extra=mask_pii_in_dict({
                "customer_id": customer_id,
                "transaction_id": transaction.id,
                "amount": amount,
                "balance": account.balance,
                "order_id": order_id,
            }),
        )
        return LedgerEntry(account, transaction)

    @retry_with_backoff(max_retries=_write_retries, exceptions=(StaleDocumentError,))
    def _apply_keyed_gift(
        self, customer_id, amount, description, gifted_by, customer_email, idempotency_key, request_hash
    ) -> LedgerEntry:
        document = self.ledger_repo.load()
        record = document.idempotency.get(idempotency_key)
        if record is not None:
            if record.request_hash != request_hash:
                raise DuplicateRequest("Idempotency key already used with different request")
            account = document.get_account(record.customer_id)
            for transaction in account.transactions if account else []:
                if transaction.id == record.transaction_id:
                    return LedgerEntry(account, transaction, replayed=True)
            raise DuplicateRequest(f"Idempotency key {idempotency_key} refers to a missing transaction")

        account = document.get_or_create(customer_id, customer_email)
        transaction = account.credit(amount, TransactionType.GIFT, description, gifted_by=gifted_by)
        document.idempotency[idempotency_key] = IdempotencyRecord(
            key=idempotency_key,
            request_hash=request_hash,
            customer_id=customer_id,
            transaction_id=transaction.id,
        )
        self.ledger_repo.save(document)

        logger.info(
            "coins_credited",
            extra=mask_pii_in_dict({
                "customer_id": customer_id,
                "transaction_id": transaction.id,
                "transaction_type": TransactionType.GIFT.value,
                "amount": amount,
                "balance": account.balance,
            }),
        )
        return LedgerEntry(account, transaction)

    def _notify_gift(self, customer_id: str, amount: int, description: str) -> None:
        try:
            self.notifier.notify_coin_gift(customer_id, amount, description)
        except Exception as e:
            logger.warning(
                "gift_notification_failed",
                extra=mask_pii_in_dict({"customer_id": customer_id, "amount": amount, "error": str(e)}),
                exc_info=True,
            )


def _require_customer(customer_id: str) -> None:
    if not customer_id or not isinstance(customer_id, str):
        raise ValueError("Customer ID is required")


def _request_hash(customer_id: str, amount: int, description: str, gifted_by: str) -> str:
    """Create hash of a gift request for deduplication."""
    content = json.dumps(
        {"customerId": customer_id, "amount": amount, "description": description, "giftedBy": gifted_by},
        sort_keys=True,
    )
    return hashlib.sha256(content.encode()).hexdigest()
