"""
Tests for categories, products, reports and the rate limiter.

Test Cases:
1. Category rename cascades to products of that category only
2. Category names are unique regardless of case
3. Categories and products in use cannot be deleted
4. Dashboard, report rows and activity figures
5. Audit history for every write
6. Search rate limiting
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APITestCase

from core.rate_limiting import reset_redis_client
from stock.models import StockTransaction
from stock.services import record_transaction
from . import reports
from .models import AuditLog, Category, Product
from .services import (
    CategoryInUseError,
    CategoryValidationError,
    ProductInUseError,
    create_category,
    create_product,
    delete_category,
    delete_product,
    update_category,
    update_product,
    write_audit,
)


def make_product(category, name, sku, quantity=0, **extra):
    return Product.objects.create(
        category=category,
        category_name=category.name,
        name=name,
        sku=sku,
        quantity=quantity,
        **extra
    )


class CategoryServiceTestCase(TestCase):
    """Test cases for category writes."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='manager', password='secret')
        self.rum = create_category('Rum', 'Dark and white rum', acting_user=self.user)
        self.beers = create_category('Beers')
        self.tanduay = make_product(self.rum, 'Tanduay', 'RUM-01')
        self.don_papa = make_product(self.rum, 'Don Papa', 'RUM-02')
        self.red_horse = make_product(self.beers, 'Red Horse', 'BEE-01')

    def test_create_category_is_audited(self):
        entry = AuditLog.objects.get(
            entity_type=AuditLog.EntityType.CATEGORY,
            entity_id=self.rum.id,
            action=AuditLog.Action.CREATE,
        )
        self.assertEqual(entry.user, self.user)
        self.assertEqual(entry.changes['name'], 'Rum')

    def test_duplicate_name_is_rejected_regardless_of_case(self):
        with self.assertRaises(CategoryValidationError):
            create_category('rum')
        with self.assertRaises(CategoryValidationError):
            create_category('  BEERS  ')
        with self.assertRaises(CategoryValidationError):
            update_category(self.beers.id, 'RUM')

    def test_name_and_description_validation(self):
        with self.assertRaises(CategoryValidationError):
            create_category('   ')
        with self.assertRaises(CategoryValidationError):
            create_category('Wines', 'x' * 31)

        self.assertEqual(create_category('Wines', 'x' * 30).description, 'x' * 30)

    def test_rename_keeping_own_name_in_different_case(self):
        category, cascade_ok = update_category(self.rum.id, 'RUM')

        self.assertTrue(cascade_ok)
        self.assertEqual(category.name, 'RUM')

    def test_rename_cascades_to_own_products_only(self):
        """
        Given: "Rum" with two products, "Beers" with one
        When: Renaming "Rum" to "Spirits"
        Then: Both rum products show "Spirits", the beer is untouched
        """
        category, cascade_ok = update_category(self.rum.id, 'Spirits', acting_user=self.user)

        self.assertTrue(cascade_ok)
        self.assertEqual(category.name, 'Spirits')
        self.assertEqual(
            set(Product.objects.filter(category=self.rum).values_list('category_name', flat=True)),
            {'Spirits'}
        )
        self.red_horse.refresh_from_db()
        self.assertEqual(self.red_horse.category_name, 'Beers')

        entry = AuditLog.objects.get(
            entity_type=AuditLog.EntityType.CATEGORY,
            entity_id=self.rum.id,
            action=AuditLog.Action.UPDATE,
        )
        self.assertEqual(entry.changes['name'], ['Rum', 'Spirits'])

    def test_rename_kept_when_cascade_fails(self):
        with patch(
            'inventory.services.cascade_category_name',
            side_effect=DatabaseError('lock timeout')
        ):
            with self.assertLogs('inventory.services', level='ERROR'):
                category, cascade_ok = update_category(self.rum.id, 'Spirits')

        self.assertFalse(cascade_ok)
        self.rum.refresh_from_db()
        self.tanduay.refresh_from_db()
        self.assertEqual(self.rum.name, 'Spirits')
        self.assertEqual(self.tanduay.category_name, 'Rum')

    def test_description_only_update_skips_cascade(self):
        with patch('inventory.services.cascade_category_name') as cascade:
            category, cascade_ok = update_category(self.rum.id, 'Rum', 'Aged rum')

        self.assertTrue(cascade_ok)
        cascade.assert_not_called()
        self.assertEqual(category.description, 'Aged rum')

    def test_delete_category_in_use(self):
        with self.assertRaises(CategoryInUseError) as context:
            delete_category(self.rum.id)

        self.assertEqual(context.exception.product_count, 2)
        self.assertTrue(Category.objects.filter(id=self.rum.id).exists())

    def test_delete_empty_category(self):
        empty = create_category('Wines')

        delete_category(empty.id, acting_user=self.user)

        self.assertFalse(Category.objects.filter(id=empty.id).exists())
        self.assertTrue(AuditLog.objects.filter(
            entity_type=AuditLog.EntityType.CATEGORY,
            entity_id=empty.id,
            action=AuditLog.Action.DELETE,
        ).exists())


class ProductServiceTestCase(TestCase):
    """Test cases for product writes."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='manager', password='secret')
        self.spirits = Category.objects.create(name='Spirits')
        self.mixers = Category.objects.create(name='Mixers')

    def test_create_product_caches_category_name(self):
        product = create_product({
            'category': self.spirits,
            'category_name': 'ignored',
            'name': 'Ginebra',
            'sku': 'SPI-01',
            'unit_cost': Decimal('95.00'),
        }, acting_user=self.user)

        self.assertEqual(product.category_name, 'Spirits')
        entry = AuditLog.objects.get(entity_type=AuditLog.EntityType.PRODUCT, entity_id=product.id)
        self.assertEqual(entry.changes['unit_cost'], '95.00')

    def test_update_product_records_changed_fields(self):
        product = create_product({'category': self.spirits, 'name': 'Tonic', 'sku': 'MIX-01'})

        update_product(product, {'category': self.mixers, 'reorder_level': 24}, acting_user=self.user)

        product.refresh_from_db()
        self.assertEqual(product.category_name, 'Mixers')
        entry = AuditLog.objects.get(
            entity_type=AuditLog.EntityType.PRODUCT,
            entity_id=product.id,
            action=AuditLog.Action.UPDATE,
        )
        self.assertEqual(entry.changes['category_id'], [self.spirits.id, self.mixers.id])
        self.assertEqual(entry.changes['reorder_level'], [10, 24])
        self.assertNotIn('name', entry.changes)

    def test_delete_product_with_transactions_is_refused(self):
        product = make_product(self.spirits, 'Ginebra', 'SPI-01')
        record_transaction(product.id, StockTransaction.Type.IN, 6)

        with self.assertRaises(ProductInUseError) as context:
            delete_product(product.id)

        self.assertEqual(context.exception.transaction_count, 1)
        self.assertTrue(Product.objects.filter(id=product.id).exists())

    def test_delete_unused_product(self):
        product = make_product(self.spirits, 'Ginebra', 'SPI-01')

        delete_product(product.id, acting_user=self.user)

        self.assertFalse(Product.objects.filter(id=product.id).exists())
        entry = AuditLog.objects.get(
            entity_type=AuditLog.EntityType.PRODUCT, action=AuditLog.Action.DELETE
        )
        self.assertEqual(entry.changes['sku'], 'SPI-01')

    def test_anonymous_user_is_not_attributed(self):
        entry = write_audit(
            AuditLog.EntityType.PRODUCT, 1, AuditLog.Action.UPDATE, user=AnonymousUser()
        )
        self.assertIsNone(entry.user)


class ReportTestCase(TestCase):
    """Test cases for dashboard and report figures."""

    def setUp(self):
        self.category = Category.objects.create(name='Spirits')
        self.low = make_product(
            self.category, 'Absolut', 'SPI-01',
            unit_cost=Decimal('50.00'), selling_price=Decimal('80.00'), reorder_level=10
        )
        self.healthy = make_product(
            self.category, 'Bacardi', 'SPI-02',
            unit_cost=Decimal('12.50'), selling_price=Decimal('20.00'), reorder_level=10
        )
        self.retired = make_product(
            self.category, 'Cossack', 'SPI-03', status=Product.Status.INACTIVE
        )
        record_transaction(self.low.id, StockTransaction.Type.IN, 10)
        record_transaction(self.healthy.id, StockTransaction.Type.IN, 40)

    def test_dashboard_stats(self):
        stats = reports.dashboard_stats()

        self.assertEqual(stats['total_products'], 2)
        self.assertEqual(stats['low_stock_items'], 1)
        self.assertEqual(stats['total_value'], Decimal('1000.00'))
        self.assertEqual(stats['total_transactions'], 2)
        self.assertEqual(len(stats['recent_transactions']), 2)

    def test_low_stock_includes_reorder_level_and_skips_inactive(self):
        self.assertEqual(list(reports.low_stock_products()), [self.low])

        rows = reports.low_stock_report()
        self.assertEqual(rows[0]['units_below_reorder'], 0)
        self.assertEqual(rows[0]['supplier'], 'N/A')

    def test_valuation_totals(self):
        data = reports.valuation_report()

        self.assertEqual(len(data['rows']), 3)
        self.assertEqual(data['totals']['stock_value'], Decimal('1000.00'))
        self.assertEqual(data['totals']['potential_revenue'], Decimal('1600.00'))
        self.assertEqual(data['totals']['potential_profit'], Decimal('600.00'))

    def test_transaction_report_rows(self):
        rows = reports.transaction_report()

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]['product'], 'Bacardi')
        self.assertEqual(rows[0]['reason'], 'N/A')
        self.assertFalse(rows[0]['edited'])

    def test_transaction_activity(self):
        record_transaction(self.healthy.id, StockTransaction.Type.OUT, 5)

        counts = reports.transaction_activity(7)
        self.assertEqual(len(counts), 7)
        self.assertEqual(counts[-1]['in'], 2)
        self.assertEqual(counts[-1]['out'], 1)
        self.assertEqual(counts[-1]['total'], 3)
        self.assertEqual(counts[0]['total'], 0)

        units = reports.transaction_activity(14, metric='quantity')
        self.assertEqual(len(units), 14)
        self.assertEqual(units[-1]['in'], 50)
        self.assertEqual(units[-1]['out'], 5)


@override_settings(RATE_LIMIT_ENABLED=False)
class InventoryAPITestCase(APITestCase):
    """Test cases for category, product and report endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='manager', password='secret')
        self.client.force_authenticate(self.user)
        self.rum = Category.objects.create(name='Rum')
        self.beers = Category.objects.create(name='Beers')
        self.tanduay = make_product(
            self.rum, 'Tanduay', 'RUM-01', unit_cost=Decimal('50.00'), reorder_level=10
        )
        self.red_horse = make_product(self.beers, 'Red Horse', 'BEE-01', reorder_level=0)

    def test_create_duplicate_category(self):
        response = self.client.post('/api/categories/', {'name': 'rum'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Category.objects.count(), 2)

    def test_create_category_description_too_long(self):
        response = self.client.post(
            '/api/categories/', {'name': 'Wines', 'description': 'x' * 31}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_rename_category(self):
        response = self.client.patch(
            f'/api/categories/{self.rum.id}/', {'name': 'Spirits'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['name'], 'Spirits')
        self.assertNotIn('warning', response.data)
        self.tanduay.refresh_from_db()
        self.assertEqual(self.tanduay.category_name, 'Spirits')

    def test_delete_category_in_use(self):
        response = self.client.delete(f'/api/categories/{self.rum.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_create_product(self):
        response = self.client.post('/api/products/', {
            'category_id': self.rum.id,
            'name': 'Don Papa',
            'sku': 'RUM-02',
            'unit': 'bottle',
            'unit_cost': '850.00',
            'selling_price': '1200.00',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category_name'], 'Rum')
        self.assertEqual(response.data['category']['id'], self.rum.id)
        self.assertTrue(AuditLog.objects.filter(
            entity_type=AuditLog.EntityType.PRODUCT, entity_id=response.data['id']
        ).exists())

    def test_create_product_negative_quantity(self):
        response = self.client.post('/api/products/', {
            'category_id': self.rum.id,
            'name': 'Don Papa',
            'sku': 'RUM-02',
            'quantity': -1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_delete_product_in_use(self):
        record_transaction(self.tanduay.id, StockTransaction.Type.IN, 3)

        response = self.client.delete(f'/api/products/{self.tanduay.id}/')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['transaction_count'], 1)

    def test_delete_unused_product(self):
        response = self.client.delete(f'/api/products/{self.red_horse.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_search_products(self):
        response = self.client.get('/api/products/search/', {'q': 'bee'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['sku'] for p in response.data], ['BEE-01'])

    def test_low_stock_list(self):
        response = self.client.get('/api/products/low-stock/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        skus = [p['sku'] for p in response.data['results']]
        self.assertEqual(skus, ['BEE-01', 'RUM-01'])

    def test_dashboard(self):
        record_transaction(self.tanduay.id, StockTransaction.Type.IN, 20)

        response = self.client.get('/api/dashboard/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_value'], '1000.00')
        self.assertEqual(response.data['total_transactions'], 1)
        self.assertEqual(response.data['recent_transactions'][0]['quantity'], 20)

    def test_unknown_report(self):
        response = self.client.get('/api/reports/sales/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_valuation_report(self):
        response = self.client.get('/api/reports/valuation/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['record_count'], 2)
        self.assertIn('totals', response.data)

    def test_activity_rejects_unsupported_range(self):
        response = self.client.get('/api/reports/activity/', {'days': 5})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.get('/api/reports/activity/', {'days': 30})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 30)

    def test_audit_log_filters(self):
        self.client.post('/api/categories/', {'name': 'Wines'}, format='json')
        record_transaction(self.tanduay.id, StockTransaction.Type.IN, 3, acting_user=self.user)

        response = self.client.get('/api/audit-logs/', {'entity_type': 'category'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['username'], 'manager')
        self.assertEqual(response.data['results'][0]['action'], 'create')


@override_settings(RATE_LIMIT_ENABLED=True)
class RateLimitTestCase(APITestCase):
    """Test cases for Redis-backed rate limiting."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='manager', password='secret')
        self.client.force_authenticate(self.user)
        self.redis = MagicMock()
        self.redis.ttl.return_value = 42
        patcher = patch('core.rate_limiting.get_redis_client', return_value=self.redis)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(reset_redis_client)

    def test_under_limit_sets_headers(self):
        self.redis.incr.return_value = 1

        response = self.client.get('/api/products/search/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['X-RateLimit-Remaining'], '29')
        self.redis.expire.assert_called_once()

    def test_over_limit_is_rejected(self):
        self.redis.incr.return_value = 31

        response = self.client.get('/api/products/search/')

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response['Retry-After'], '42')
        self.assertEqual(response.data['retry_after'], 42)

    def test_redis_unavailable_fails_open(self):
        with patch('core.rate_limiting.get_redis_client', return_value=None):
            response = self.client.get('/api/products/search/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
