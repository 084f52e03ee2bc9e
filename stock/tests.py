"""
Tests for the stock ledger.

Test Cases:
1. Delta resolution for IN, OUT and ADJUSTMENT
2. Insufficient stock leaves the product untouched
3. Edits revert the old delta before applying the new one
4. Cross-product edits and partial failure reporting
5. Deletes revert relative to the current quantity
6. API responses for each ledger outcome
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from inventory.models import AuditLog, Category, Product
from stock.models import StockTransaction
from stock.services import (
    InsufficientStockError,
    PartialReconciliationError,
    PersistenceError,
    ProductNotFound,
    TransactionNotFound,
    TransactionValidationError,
    delete_transaction,
    edit_transaction,
    record_transaction,
    resolve_delta,
)
from stock.tasks import flag_negative_stock, generate_daily_transaction_report

IN = StockTransaction.Type.IN
OUT = StockTransaction.Type.OUT
ADJUSTMENT = StockTransaction.Type.ADJUSTMENT


def make_product(category, name, sku, quantity=0, **extra):
    return Product.objects.create(
        category=category,
        category_name=category.name,
        name=name,
        sku=sku,
        quantity=quantity,
        unit_cost=extra.pop('unit_cost', Decimal('50.00')),
        selling_price=extra.pop('selling_price', Decimal('80.00')),
        **extra
    )


class StockLedgerTestCase(TestCase):
    """Test cases for the stock ledger service."""

    def setUp(self):
        """Set up test data."""
        self.user = get_user_model().objects.create_user(username='cashier', password='secret')
        self.manager = get_user_model().objects.create_user(username='manager', password='secret')
        self.category = Category.objects.create(name='Spirits')
        self.product_a = make_product(self.category, 'Tanduay Rhum', 'SPI-0101', quantity=0)
        self.product_b = make_product(self.category, 'Don Papa', 'SPI-0102', quantity=7)

    def assertLedgerBalanced(self, product, baseline):
        """Product quantity equals baseline plus every stored delta."""
        product.refresh_from_db()
        deltas = sum(
            StockTransaction.objects.filter(product=product).values_list('quantity', flat=True)
        )
        self.assertEqual(product.quantity, baseline + deltas)

    # -------------------------------------------------------------------------
    # Delta resolution
    # -------------------------------------------------------------------------

    def test_resolve_delta(self):
        self.assertEqual(resolve_delta(IN, 10, 3), 10)
        self.assertEqual(resolve_delta(OUT, 4, 3), -4)
        self.assertEqual(resolve_delta(ADJUSTMENT, 15, 20), -5)
        self.assertEqual(resolve_delta(ADJUSTMENT, 25, 20), 5)

    # -------------------------------------------------------------------------
    # record_transaction
    # -------------------------------------------------------------------------

    def test_record_in_increases_stock(self):
        stock_transaction, product = record_transaction(
            self.product_a.id, IN, 10, 'Received from supplier', acting_user=self.user
        )

        self.assertEqual(product.quantity, 10)
        self.assertEqual(stock_transaction.quantity, 10)
        self.assertEqual(stock_transaction.product_name, 'Tanduay Rhum')
        self.assertEqual(stock_transaction.reason, 'Received from supplier')
        self.assertEqual(stock_transaction.created_by, self.user)
        self.assertFalse(stock_transaction.is_edited)

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 10)
        self.assertTrue(AuditLog.objects.filter(
            entity_type=AuditLog.EntityType.TRANSACTION,
            entity_id=stock_transaction.id,
            action=AuditLog.Action.CREATE,
            user=self.user,
        ).exists())

    def test_record_out_stores_negative_delta(self):
        stock_transaction, product = record_transaction(self.product_b.id, OUT, 3)

        self.assertEqual(stock_transaction.quantity, -3)
        self.assertEqual(product.quantity, 4)

    def test_out_with_insufficient_stock_changes_nothing(self):
        """
        Given: Product with 5 units
        When: Recording OUT 10
        Then: InsufficientStockError, quantity stays 5, nothing recorded
        """
        self.product_a.quantity = 5
        self.product_a.save()

        with self.assertRaises(InsufficientStockError) as context:
            record_transaction(self.product_a.id, OUT, 10)

        self.assertEqual(context.exception.requested, 10)
        self.assertEqual(context.exception.available, 5)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 5)
        self.assertFalse(StockTransaction.objects.exists())
        self.assertFalse(AuditLog.objects.exists())

    def test_out_of_exact_stock(self):
        _, product = record_transaction(self.product_b.id, OUT, 7)

        self.assertEqual(product.quantity, 0)

    def test_adjustment_sets_target_level(self):
        """
        Given: Product with 20 units
        When: Recording ADJUSTMENT 15
        Then: Stored delta is -5 and stock is 15
        """
        self.product_a.quantity = 20
        self.product_a.save()

        stock_transaction, product = record_transaction(self.product_a.id, ADJUSTMENT, 15)

        self.assertEqual(stock_transaction.quantity, -5)
        self.assertEqual(product.quantity, 15)

    def test_record_validation(self):
        with self.assertRaises(TransactionValidationError):
            record_transaction(self.product_a.id, IN, 0)
        with self.assertRaises(TransactionValidationError):
            record_transaction(self.product_a.id, IN, -2)
        with self.assertRaises(TransactionValidationError):
            record_transaction(self.product_a.id, 'SALE', 1)
        with self.assertRaises(TransactionValidationError):
            record_transaction(self.product_a.id, IN, 1, 'x' * 51)

        self.assertFalse(StockTransaction.objects.exists())

    def test_record_unknown_product(self):
        with self.assertRaises(ProductNotFound):
            record_transaction(99999, IN, 1)

    def test_record_database_failure_rolls_back(self):
        with patch.object(
            StockTransaction.objects, 'create', side_effect=DatabaseError('disk full')
        ):
            with self.assertRaises(PersistenceError):
                record_transaction(self.product_b.id, IN, 5)

        self.product_b.refresh_from_db()
        self.assertEqual(self.product_b.quantity, 7)

    # -------------------------------------------------------------------------
    # delete_transaction
    # -------------------------------------------------------------------------

    def test_record_then_delete_restores_quantity(self):
        stock_transaction, _ = record_transaction(self.product_b.id, OUT, 4)

        product = delete_transaction(stock_transaction.id, acting_user=self.manager)

        self.assertEqual(product.quantity, 7)
        self.assertFalse(StockTransaction.objects.exists())
        self.assertTrue(AuditLog.objects.filter(
            entity_type=AuditLog.EntityType.TRANSACTION,
            entity_id=stock_transaction.id,
            action=AuditLog.Action.DELETE,
            user=self.manager,
        ).exists())

    def test_delete_is_relative_to_current_quantity(self):
        """
        Given: IN 10 then OUT 4 on a product starting at 0 (stock 6)
        When: Deleting the IN
        Then: Stock becomes -4 and a warning is logged
        """
        receipt, _ = record_transaction(self.product_a.id, IN, 10)
        record_transaction(self.product_a.id, OUT, 4)

        with self.assertLogs('stock.services', level='WARNING') as logs:
            product = delete_transaction(receipt.id)

        self.assertEqual(product.quantity, -4)
        self.assertIn('negative stock', logs.output[0])
        self.assertLedgerBalanced(self.product_a, 0)

    def test_delete_unknown_transaction(self):
        with self.assertRaises(TransactionNotFound):
            delete_transaction(99999)

    # -------------------------------------------------------------------------
    # edit_transaction
    # -------------------------------------------------------------------------

    def test_edit_with_identical_inputs_keeps_quantity(self):
        stock_transaction, _ = record_transaction(
            self.product_b.id, IN, 10, 'Delivery', acting_user=self.user
        )
        created_at = stock_transaction.transaction_date

        edited, product = edit_transaction(
            stock_transaction.id, self.product_b.id, IN, 10, 'Recounted delivery',
            editing_user=self.manager
        )

        self.assertEqual(product.quantity, 17)
        self.assertEqual(edited.quantity, 10)
        self.assertEqual(edited.reason, 'Delivery')
        self.assertEqual(edited.transaction_date, created_at)
        self.assertEqual(edited.edited_by, self.manager)
        self.assertEqual(edited.edit_reason, 'Recounted delivery')
        self.assertIsNotNone(edited.edited_at)
        self.assertEqual(edited.created_by, self.user)

    def test_edit_same_product_changes_type(self):
        self.product_a.quantity = 20
        self.product_a.save()
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        edited, product = edit_transaction(
            stock_transaction.id, self.product_a.id, OUT, 5, 'Was a sale, not a delivery'
        )

        self.assertEqual(edited.transaction_type, OUT)
        self.assertEqual(edited.quantity, -5)
        self.assertEqual(product.quantity, 15)
        self.assertLedgerBalanced(self.product_a, 20)

    def test_edit_adjustment_resolves_against_reverted_stock(self):
        self.product_a.quantity = 20
        self.product_a.save()
        stock_transaction, _ = record_transaction(self.product_a.id, ADJUSTMENT, 15)

        edited, product = edit_transaction(
            stock_transaction.id, self.product_a.id, ADJUSTMENT, 25, 'Miscounted'
        )

        self.assertEqual(edited.quantity, 5)
        self.assertEqual(product.quantity, 25)

    def test_edit_guard_failure_changes_nothing(self):
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        with self.assertRaises(InsufficientStockError):
            edit_transaction(stock_transaction.id, self.product_a.id, OUT, 3, 'Wrong direction')

        self.product_a.refresh_from_db()
        stock_transaction.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 10)
        self.assertEqual(stock_transaction.transaction_type, IN)
        self.assertEqual(stock_transaction.quantity, 10)
        self.assertFalse(stock_transaction.is_edited)

    def test_edit_moves_transaction_to_other_product(self):
        """
        Given: IN 10 on product A (0 -> 10), product B at 7
        When: Editing it to IN 4 on product B
        Then: A is back to 0 and B is 11
        """
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        edited, product = edit_transaction(
            stock_transaction.id, self.product_b.id, IN, 4, 'Wrong product picked'
        )

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 0)
        self.assertEqual(product.id, self.product_b.id)
        self.assertEqual(product.quantity, 11)
        self.assertEqual(edited.product_id, self.product_b.id)
        self.assertEqual(edited.product_name, 'Don Papa')
        self.assertLedgerBalanced(self.product_a, 0)
        self.assertLedgerBalanced(self.product_b, 7)

    def test_cross_product_guard_failure_changes_nothing(self):
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        with self.assertRaises(InsufficientStockError):
            edit_transaction(stock_transaction.id, self.product_b.id, OUT, 10, 'Should be B')

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 10)
        self.assertEqual(self.product_b.quantity, 7)

    def test_cross_product_failure_after_revert_is_partial(self):
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        with patch('stock.services._apply_edit', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(PartialReconciliationError) as context:
                edit_transaction(stock_transaction.id, self.product_b.id, IN, 4, 'Wrong product')

        error = context.exception
        self.assertIsInstance(error, PersistenceError)
        self.assertEqual(error.transaction_id, stock_transaction.id)
        self.assertEqual(error.reverted_product_id, self.product_a.id)
        self.assertEqual(error.reverted_quantity, 0)

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        stock_transaction.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 0)
        self.assertEqual(self.product_b.quantity, 7)
        self.assertEqual(stock_transaction.product_id, self.product_a.id)

    def test_edit_requires_reason(self):
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)

        for reason in ('', '   ', None):
            with self.assertRaises(TransactionValidationError):
                edit_transaction(stock_transaction.id, self.product_a.id, IN, 2, reason)

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 10)

    def test_edit_unknown_transaction_or_product(self):
        with self.assertRaises(TransactionNotFound):
            edit_transaction(99999, self.product_a.id, IN, 1, 'typo')

        stock_transaction, _ = record_transaction(self.product_a.id, IN, 10)
        with self.assertRaises(ProductNotFound):
            edit_transaction(stock_transaction.id, 99999, IN, 1, 'typo')

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 10)

    def test_ledger_stays_balanced_across_operations(self):
        t1, _ = record_transaction(self.product_a.id, IN, 30)
        t2, _ = record_transaction(self.product_a.id, OUT, 8)
        t3, _ = record_transaction(self.product_b.id, IN, 5)
        t4, _ = record_transaction(self.product_a.id, ADJUSTMENT, 20)
        edit_transaction(t2.id, self.product_a.id, OUT, 2, 'Only two sold')
        edit_transaction(t3.id, self.product_a.id, IN, 6, 'Belongs to A')
        delete_transaction(t1.id)
        edit_transaction(t4.id, self.product_b.id, IN, 1, 'Count was for B')

        self.assertLedgerBalanced(self.product_a, 0)
        self.assertLedgerBalanced(self.product_b, 7)

    # -------------------------------------------------------------------------
    # Negative baselines
    # -------------------------------------------------------------------------

    def test_in_on_negative_stock(self):
        self.product_a.quantity = -3
        self.product_a.save()

        stock_transaction, product = record_transaction(self.product_a.id, IN, 2)

        self.assertEqual(stock_transaction.quantity, 2)
        self.assertEqual(product.quantity, -1)

    def test_adjustment_on_negative_stock(self):
        self.product_a.quantity = -3
        self.product_a.save()

        stock_transaction, product = record_transaction(self.product_a.id, ADJUSTMENT, 4)

        self.assertEqual(stock_transaction.quantity, 7)
        self.assertEqual(product.quantity, 4)

    def test_out_on_negative_stock_is_refused(self):
        self.product_a.quantity = -3
        self.product_a.save()

        with self.assertRaises(InsufficientStockError):
            record_transaction(self.product_a.id, OUT, 1)

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, -3)

    def test_edit_in_down_after_stock_was_consumed(self):
        """
        Given: IN 10 then OUT 10 on a product starting at 0 (stock 0)
        When: Editing the IN down to 5
        Then: Stock becomes -5
        """
        receipt, _ = record_transaction(self.product_a.id, IN, 10)
        record_transaction(self.product_a.id, OUT, 10)

        edited, product = edit_transaction(receipt.id, self.product_a.id, IN, 5, 'Short delivery')

        self.assertEqual(edited.quantity, 5)
        self.assertEqual(product.quantity, -5)
        self.assertLedgerBalanced(self.product_a, 0)

    def test_move_in_onto_negative_product(self):
        self.product_b.quantity = -2
        self.product_b.save()
        stock_transaction, _ = record_transaction(self.product_a.id, IN, 4)

        _, product = edit_transaction(stock_transaction.id, self.product_b.id, IN, 4, 'Wrong product')

        self.assertEqual(product.quantity, 2)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.quantity, 0)


class StockTaskTestCase(TestCase):
    """Test cases for background stock tasks."""

    def setUp(self):
        self.category = Category.objects.create(name='Mixers')
        self.product = make_product(self.category, 'Tonic Water', 'MIX-0101', quantity=10)

    def test_flag_negative_stock(self):
        negative = make_product(self.category, 'Soda Water', 'MIX-0102', quantity=-3)

        with self.assertLogs('stock.tasks', level='WARNING'):
            result = flag_negative_stock()

        self.assertEqual(result, {'flagged': 1, 'products': [negative.id]})

    def test_daily_transaction_report(self):
        record_transaction(self.product.id, IN, 12)
        record_transaction(self.product.id, OUT, 5)
        record_transaction(self.product.id, ADJUSTMENT, 20)

        stats = generate_daily_transaction_report(timezone.localdate().isoformat())

        self.assertEqual(stats['total_transactions'], 3)
        self.assertEqual(stats['in_transactions'], 1)
        self.assertEqual(stats['out_transactions'], 1)
        self.assertEqual(stats['adjustments'], 1)
        self.assertEqual(stats['units_in'], 12)
        self.assertEqual(stats['units_out'], 5)
        self.assertEqual(stats['net_change'], 10)

    def test_daily_report_defaults_to_yesterday(self):
        record_transaction(self.product.id, IN, 12)

        stats = generate_daily_transaction_report()

        yesterday = timezone.localdate() - timedelta(days=1)
        self.assertEqual(stats['date'], yesterday.isoformat())
        self.assertEqual(stats['total_transactions'], 0)


@override_settings(RATE_LIMIT_ENABLED=False)
class StockTransactionAPITestCase(APITestCase):
    """Test cases for the transaction endpoints."""

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='cashier', password='secret')
        self.client.force_authenticate(self.user)
        self.category = Category.objects.create(name='Beers')
        self.product = make_product(self.category, 'Red Horse', 'BEE-0101', quantity=5)
        self.other = make_product(self.category, 'Heineken', 'BEE-0102', quantity=0)
        self.list_url = '/api/transactions/'

    def detail_url(self, pk):
        return f'/api/transactions/{pk}/'

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get(self.list_url)
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_record_transaction(self):
        response = self.client.post(self.list_url, {
            'product_id': self.product.id,
            'transaction_type': 'IN',
            'quantity': 24,
            'reason': 'Delivery',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quantity'], 24)
        self.assertEqual(response.data['product_quantity'], 29)
        self.assertEqual(response.data['created_by'], 'cashier')

    def test_record_insufficient_stock(self):
        response = self.client.post(self.list_url, {
            'product_id': self.product.id,
            'transaction_type': 'OUT',
            'quantity': 10,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['available'], 5)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)

    def test_record_rejects_zero_quantity(self):
        response = self.client.post(self.list_url, {
            'product_id': self.product.id,
            'transaction_type': 'IN',
            'quantity': 0,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_record_unknown_product(self):
        response = self.client.post(self.list_url, {
            'product_id': 99999,
            'transaction_type': 'IN',
            'quantity': 1,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_filters_by_type(self):
        record_transaction(self.product.id, IN, 3)
        record_transaction(self.product.id, OUT, 2)

        response = self.client.get(self.list_url, {'type': 'out'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['quantity'], -2)

    def test_patch_requires_edit_reason(self):
        stock_transaction, _ = record_transaction(self.product.id, IN, 3)

        response = self.client.patch(
            self.detail_url(stock_transaction.id), {'quantity': 4}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('edit_reason', response.data)

    def test_patch_defaults_to_current_values(self):
        stock_transaction, _ = record_transaction(self.product.id, OUT, 2)

        response = self.client.patch(self.detail_url(stock_transaction.id), {
            'quantity': 3,
            'edit_reason': 'Three were sold',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['transaction_type'], 'OUT')
        self.assertEqual(response.data['quantity'], -3)
        self.assertEqual(response.data['product_quantity'], 2)
        self.assertEqual(response.data['edited_by'], 'cashier')
        self.assertTrue(response.data['is_edited'])

    def test_patch_adjustment_with_only_reason_keeps_stock(self):
        """
        Given: Product at 20 adjusted to 15 (delta -5)
        When: PATCHing the adjustment with only an edit reason
        Then: Stock stays 15 and the delta stays -5
        """
        self.product.quantity = 20
        self.product.save()
        stock_transaction, _ = record_transaction(self.product.id, ADJUSTMENT, 15)

        response = self.client.patch(
            self.detail_url(stock_transaction.id), {'edit_reason': 'typo fix'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity'], -5)
        self.assertEqual(response.data['product_quantity'], 15)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 15)

    def test_patch_type_change_requires_quantity(self):
        stock_transaction, _ = record_transaction(self.product.id, IN, 3)

        response = self.client.patch(self.detail_url(stock_transaction.id), {
            'transaction_type': 'ADJUSTMENT',
            'edit_reason': 'Was a count',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantity', response.data)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity, 8)

    def test_put_moves_to_other_product(self):
        stock_transaction, _ = record_transaction(self.product.id, IN, 10)

        response = self.client.put(self.detail_url(stock_transaction.id), {
            'product_id': self.other.id,
            'transaction_type': 'IN',
            'quantity': 4,
            'edit_reason': 'Wrong product',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.other.refresh_from_db()
        self.assertEqual(self.product.quantity, 5)
        self.assertEqual(self.other.quantity, 4)

    def test_partial_reconciliation_is_reported(self):
        stock_transaction, _ = record_transaction(self.product.id, IN, 10)

        with patch('stock.services._apply_edit', side_effect=DatabaseError('connection lost')):
            response = self.client.put(self.detail_url(stock_transaction.id), {
                'product_id': self.other.id,
                'transaction_type': 'IN',
                'quantity': 4,
                'edit_reason': 'Wrong product',
            }, format='json')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertTrue(response.data['partial'])
        self.assertEqual(response.data['reverted_product_id'], self.product.id)

    def test_delete_reverts_stock(self):
        stock_transaction, _ = record_transaction(self.product.id, IN, 10)

        response = self.client.delete(self.detail_url(stock_transaction.id))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['product_quantity'], 5)
        self.assertNotIn('warning', response.data)

    def test_delete_unknown_transaction(self):
        response = self.client.delete(self.detail_url(99999))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
