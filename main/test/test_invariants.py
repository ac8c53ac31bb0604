"""
Tests for domain invariants and validation.
"""
import dataclasses
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase

from main.domain.coins import CoinAccount, LedgerDocument
from main.infra.json_store import InMemoryDocumentStore, PersistenceError
from main.infra.repositories import LedgerRepository
from main.test.utils import TempDataDirMixin


class CoinAccountInvariantTest(SimpleTestCase):
    """Tests for coin account invariants."""

    def _document_with(self, account):
        return LedgerDocument(accounts={account.customer_id: account})

    def test_balance_cannot_be_negative(self):
        account = CoinAccount(customer_id="cust-1")
        account._balance = -10

        repo = LedgerRepository(InMemoryDocumentStore())
        with self.assertRaises(PersistenceError) as context:
            repo.save(self._document_with(account))
        self.assertIn("negative balance", str(context.exception))

    def test_balance_must_match_transactions(self):
        account = CoinAccount(customer_id="cust-1")
        account.credit(100)
        account._balance = 200
        account._total_earned = 200

        repo = LedgerRepository(InMemoryDocumentStore())
        with self.assertRaises(PersistenceError) as context:
            repo.save(self._document_with(account))
        self.assertIn("replayed transactions", str(context.exception))

    def test_balance_must_equal_earned_minus_spent(self):
        account = CoinAccount(customer_id="cust-1")
        account.credit(100)
        account._total_spent = 5

        self.assertTrue(any("totalEarned" in p for p in account.invariant_violations()))

    def test_rejected_save_writes_nothing(self):
        store = InMemoryDocumentStore()
        account = CoinAccount(customer_id="cust-1")
        account._balance = -1

        with self.assertRaises(PersistenceError):
            LedgerRepository(store).save(self._document_with(account))
        self.assertEqual(store.saves, 0)

    def test_consistent_history_after_many_operations(self):
        account = CoinAccount(customer_id="cust-1")
        for amount in (100, 250, 5):
            account.credit(amount)
        account.debit(300)
        account.debit(55)
        self.assertEqual(account.invariant_violations(), [])
        self.assertEqual(account.balance, 0)

    def test_transactions_are_immutable(self):
        account = CoinAccount(customer_id="cust-1")
        transaction = account.credit(100)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            transaction.amount = 200


class AuditLedgerCommandTest(TempDataDirMixin, SimpleTestCase):

    def _write_ledger(self, *accounts):
        document = LedgerDocument(accounts={a.customer_id: a for a in accounts})
        self.write_document("coins.json", document.to_dict())

    def test_clean_ledger(self):
        account = CoinAccount(customer_id="cust-1")
        account.credit(10)
        self._write_ledger(account)

        out = StringIO()
        call_command("audit_ledger", "--strict", stdout=out)
        self.assertIn("Audited 1 accounts, 0 with violations", out.getvalue())

    def test_strict_fails_on_violation(self):
        broken = CoinAccount(customer_id="cust-2")
        broken.credit(10)
        broken._balance = 99
        self._write_ledger(broken)

        out = StringIO()
        with self.assertRaises(CommandError):
            call_command("audit_ledger", "--strict", stdout=out)
        self.assertIn("cust-2", out.getvalue())

    def test_unknown_customer(self):
        self._write_ledger()
        with self.assertRaises(CommandError):
            call_command("audit_ledger", "--customer", "nobody", stdout=StringIO())
