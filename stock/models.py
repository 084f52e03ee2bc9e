"""
Stock Models - the transaction ledger that moves product quantities.

Each StockTransaction stores the signed delta it applied to its product:
    IN          -> +entered quantity
    OUT         -> -entered quantity
    ADJUSTMENT  -> target level minus the level before the transaction
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from inventory.models import Product


class StockTransaction(models.Model):
    """
    A single stock movement for one product.

    `transaction_date` is fixed at creation. The edit fields stay empty
    until the transaction is modified through the ledger service.
    """

    class Type(models.TextChoices):
        IN = 'IN', 'Stock In'
        OUT = 'OUT', 'Stock Out'
        ADJUSTMENT = 'ADJUSTMENT', 'Adjustment'

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,  # Products with ledger history can't be deleted
        related_name='stock_transactions',
        help_text="Product whose stock this transaction moved"
    )
    product_name = models.CharField(
        max_length=200,
        blank=True,
        default='',
        help_text="Product name captured for display"
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='stock_transactions'
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=Type.choices,
        db_index=True
    )
    quantity = models.IntegerField(
        help_text="Signed change applied to the product's stock"
    )
    reason = models.CharField(max_length=50, blank=True, default='')
    transaction_date = models.DateTimeField(default=timezone.now, db_index=True)

    edited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='edited_stock_transactions'
    )
    edited_at = models.DateTimeField(null=True, blank=True)
    edit_reason = models.TextField(blank=True, default='')

    class Meta:
        verbose_name = 'Stock Transaction'
        verbose_name_plural = 'Stock Transactions'
        ordering = ['-transaction_date', '-id']
        indexes = [
            models.Index(fields=['product', 'transaction_date'], name='stocktx_product_date_idx'),
            models.Index(fields=['transaction_type', 'transaction_date'], name='stocktx_type_date_idx'),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.quantity:+d} {self.product_name or self.product_id}"

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    @property
    def entered_quantity(self) -> int:
        """
        Amount as entered for IN and OUT.

        For ADJUSTMENT this is only the size of the change; the entered
        value was a target level.
        """
        return abs(self.quantity)
