"""
Management command to recompute product stock totals and flags.
"""
from django.core.management.base import BaseCommand

from main.services.products import ProductService


class Command(BaseCommand):
    help = 'Recompute stock quantities from size stock and refresh in-stock flags'

    def handle(self, *args, **options):
        products = ProductService().normalize_stock()
        for product in products:
            self.stdout.write(
                f'{product.id}: {product.stock_quantity} units, {product.stock_status.value}'
            )
        self.stdout.write(self.style.SUCCESS(f'Normalized {len(products)} products'))
