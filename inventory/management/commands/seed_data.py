"""
Management command to seed the database with sample data.

Generates:
- Bar and lounge categories
- Products per category with costs, prices and reorder levels
- Opening stock recorded as IN transactions, plus some OUT and ADJUSTMENT
  movements so the dashboard and reports have data

Usage:
    python manage.py seed_data
    python manage.py seed_data --clear  # Clear existing data first
"""
import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from inventory.models import AuditLog, Category, Product
from inventory.services import create_category, create_product
from stock.models import StockTransaction
from stock.services import InsufficientStockError, record_transaction

CATALOG = {
    'Beers': [
        ('San Miguel Pale Pilsen', 'bottle'), ('San Miguel Light', 'bottle'),
        ('Red Horse', 'bottle'), ('Heineken', 'can'), ('Corona Extra', 'bottle'),
    ],
    'Spirits': [
        ('Tanduay Rhum 5 Years', 'bottle'), ('Don Papa Rum', 'bottle'),
        ('Ginebra San Miguel', 'bottle'), ('Jose Cuervo Especial', 'bottle'),
        ("Jack Daniel's", 'bottle'), ('Absolut Vodka', 'bottle'),
    ],
    'Wines': [
        ('Carlo Rossi Red', 'bottle'), ('Jacob\'s Creek Shiraz', 'bottle'),
        ('Yellow Tail Chardonnay', 'bottle'),
    ],
    'Mixers': [
        ('Coca-Cola', 'can'), ('Sprite', 'can'), ('Tonic Water', 'can'),
        ('Soda Water', 'can'), ('Calamansi Juice', 'liter'),
    ],
    'Bar Chow': [
        ('Chicharon', 'pack'), ('Mani', 'pack'), ('Nachos', 'pack'),
    ],
    'Supplies': [
        ('Ice Cubes', 'bag'), ('Cocktail Napkins', 'pack'), ('Straws', 'box'),
    ],
}

DESCRIPTIONS = {
    'Beers': 'Local and imported beers',
    'Spirits': 'Rum, gin, whisky, vodka',
    'Wines': 'Red and white wines',
    'Mixers': 'Sodas and juices',
    'Bar Chow': 'Snacks',
    'Supplies': 'Consumables',
}


class Command(BaseCommand):
    help = 'Seed the database with sample categories, products and stock transactions'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--movements',
            type=int,
            default=60,
            help='Number of OUT/ADJUSTMENT movements to record (default: 60)',
        )
        parser.add_argument(
            '--username',
            default='seed',
            help='User recorded as creator of the seeded data (default: seed)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        user, _ = get_user_model().objects.get_or_create(username=options['username'])

        self.stdout.write('Starting database seeding...')

        with transaction.atomic():
            products = self._create_catalog(user)
            self._record_opening_stock(products, user)
            self._record_movements(products, options['movements'], user)

        self.stdout.write(self.style.SUCCESS('Database seeding completed successfully!'))

    def _clear_data(self):
        """Clear all existing data."""
        StockTransaction.objects.all().delete()
        Product.objects.all().delete()
        Category.objects.all().delete()
        AuditLog.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_catalog(self, user):
        """Create categories and their products."""
        products = []
        for index, (category_name, items) in enumerate(CATALOG.items()):
            category = Category.objects.filter(name__iexact=category_name).first()
            if category is None:
                category = create_category(category_name, DESCRIPTIONS[category_name], acting_user=user)
                self.stdout.write(f'  Created category: {category_name}')

            for item_index, (name, unit) in enumerate(items):
                sku = f"{category_name[:3].upper()}-{index + 1:02d}{item_index + 1:02d}"
                existing = Product.objects.filter(sku=sku).first()
                if existing:
                    products.append(existing)
                    continue

                unit_cost = Decimal(random.randint(20, 900))
                margin = Decimal(random.choice(['1.30', '1.50', '1.80', '2.00']))
                products.append(create_product({
                    'category': category,
                    'name': name,
                    'sku': sku,
                    'unit': unit,
                    'unit_cost': unit_cost,
                    'selling_price': (unit_cost * margin).quantize(Decimal('0.01')),
                    'quantity': 0,
                    'reorder_level': random.choice([6, 12, 24]),
                    'location': random.choice(['Main Bar', 'Stock Room', 'Chiller']),
                    'supplier': random.choice(['', 'Metro Distributors', 'Island Beverages']),
                }, acting_user=user))

        self.stdout.write(self.style.SUCCESS(f'Catalog has {len(products)} products'))
        return products

    def _record_opening_stock(self, products, user):
        for product in products:
            if product.stock_transactions.exists():
                continue
            record_transaction(
                product.id, StockTransaction.Type.IN, random.randint(12, 120),
                'Opening stock', acting_user=user
            )
        self.stdout.write(self.style.SUCCESS('Recorded opening stock'))

    def _record_movements(self, products, count, user):
        recorded = 0
        for _ in range(count):
            product = random.choice(products)
            if random.random() < 0.85:
                try:
                    record_transaction(
                        product.id, StockTransaction.Type.OUT, random.randint(1, 12),
                        'Bar service', acting_user=user
                    )
                except InsufficientStockError:
                    continue
            else:
                product.refresh_from_db()
                counted = max(1, product.quantity + random.randint(-3, 2))
                record_transaction(
                    product.id, StockTransaction.Type.ADJUSTMENT, counted,
                    'Physical count', acting_user=user
                )
            recorded += 1
        self.stdout.write(self.style.SUCCESS(f'Recorded {recorded} stock movements'))
