"""
Inventory Models - Core data entities for the inventory management system.

Models:
    - Category: Product categorization (names unique regardless of case)
    - Product: Stocked items; quantity is moved by stock transactions
    - AuditLog: Append-only history of category, product and transaction changes
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.functions import Lower


class Category(models.Model):
    """
    Product category for organizing products.
    """
    name = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Category name, unique regardless of case"
    )
    description = models.CharField(
        max_length=30,
        blank=True,
        default='',
        help_text="Optional short description"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Category'
        verbose_name_plural = 'Categories'
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                Lower('name'),
                name='unique_category_name_ci'
            )
        ]

    def __str__(self):
        return self.name


class Product(models.Model):
    """
    Product entity holding the current stock level.

    `category_name` is a cached copy of the category's name, refreshed when
    the product is saved through the service layer and when the category
    is renamed.
    """

    class Status(models.TextChoices):
        ACTIVE = 'Active', 'Active'
        INACTIVE = 'Inactive', 'Inactive'

    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name='products',
        help_text="Product category"
    )
    category_name = models.CharField(
        max_length=100,
        blank=True,
        default='',
        help_text="Category name cached at write time"
    )
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    sku = models.CharField(
        max_length=64,
        unique=True,
        help_text="Stock keeping unit"
    )
    unit = models.CharField(
        max_length=30,
        default='pcs',
        help_text="Unit of measure (bottle, case, pcs...)"
    )
    unit_cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Purchase cost per unit"
    )
    selling_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="Selling price per unit"
    )
    # Signed on purpose: deleting a transaction may surface a negative level.
    quantity = models.IntegerField(
        default=0,
        help_text="Current stock quantity"
    )
    reorder_level = models.PositiveIntegerField(
        default=10,
        help_text="Threshold for low stock alerts"
    )
    expiry_date = models.DateField(null=True, blank=True)
    location = models.CharField(max_length=100, blank=True, default='')
    supplier = models.CharField(max_length=200, blank=True, default='')
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['name', 'status'], name='product_name_status_idx'),
            models.Index(fields=['category', 'status'], name='product_category_status_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.sku})"

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    @property
    def is_low_stock(self) -> bool:
        """Check if stock is at or below the reorder level."""
        return self.quantity <= self.reorder_level

    @property
    def stock_value(self) -> Decimal:
        return self.quantity * self.unit_cost


class AuditLog(models.Model):
    """
    One row per change to a category, product or stock transaction.

    `changes` maps field names to either a value (create/delete) or an
    [old, new] pair (update).
    """

    class EntityType(models.TextChoices):
        CATEGORY = 'category', 'Category'
        PRODUCT = 'product', 'Product'
        TRANSACTION = 'transaction', 'Stock Transaction'

    class Action(models.TextChoices):
        CREATE = 'create', 'Create'
        UPDATE = 'update', 'Update'
        DELETE = 'delete', 'Delete'

    entity_type = models.CharField(max_length=20, choices=EntityType.choices)
    entity_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=10, choices=Action.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    changes = models.JSONField(default=dict, blank=True)
    message = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'Audit Log Entry'
        verbose_name_plural = 'Audit Log'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id'], name='auditlog_entity_idx'),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type} #{self.entity_id}"
