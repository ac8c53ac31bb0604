"""
Management command to audit coin account invariants.
"""
from django.core.management.base import BaseCommand, CommandError

from main.infra.repositories import LedgerRepository


class Command(BaseCommand):
    help = 'Check every coin account against its transaction history'

    def add_arguments(self, parser):
        parser.add_argument(
            '--customer',
            help='Audit a single customer only',
        )
        parser.add_argument(
            '--strict',
            action='store_true',
            help='Exit with an error when any violation is found',
        )

    def handle(self, *args, **options):
        document = LedgerRepository().load()
        accounts = document.accounts
        if options['customer']:
            account = accounts.get(options['customer'])
            if account is None:
                raise CommandError(f"No coin account for customer {options['customer']}")
            accounts = {account.customer_id: account}

        failed = 0
        for customer_id, account in sorted(accounts.items()):
            problems = account.invariant_violations()
            if not problems:
                continue
            failed += 1
            self.stdout.write(self.style.WARNING(f'{customer_id}:'))
            for problem in problems:
                self.stdout.write(f'  - {problem}')

        summary = f'Audited {len(accounts)} accounts, {failed} with violations'
        if failed and options['strict']:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary) if not failed else summary)
