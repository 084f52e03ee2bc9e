"""
Inventory Service Layer - category and product writes with audit history.

Every write made here (and by the stock ledger in `stock.services`) leaves
an AuditLog row. The category rename cascade is best-effort: a failure to
refresh the cached `category_name` on products is logged and reported to
the caller, but the rename itself is kept.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from django.db import DatabaseError, transaction

from .models import AuditLog, Category, Product

logger = logging.getLogger(__name__)

CATEGORY_DESCRIPTION_MAX_LENGTH = 30

AUDITED_PRODUCT_FIELDS = [
    'category_id', 'name', 'sku', 'unit', 'unit_cost', 'selling_price',
    'quantity', 'reorder_level', 'expiry_date', 'location', 'supplier',
    'status',
]


class CategoryValidationError(Exception):
    """Raised when a category name or description is invalid."""
    pass


class CategoryInUseError(Exception):
    """Raised when deleting a category that still has products."""
    def __init__(self, category_id: int, product_count: int):
        self.category_id = category_id
        self.product_count = product_count
        super().__init__(
            f"Category {category_id} still has {product_count} product(s)"
        )


class ProductInUseError(Exception):
    """Raised when deleting a product that stock transactions reference."""
    def __init__(self, product_id: int, transaction_count: int):
        self.product_id = product_id
        self.transaction_count = transaction_count
        super().__init__(
            f"Product {product_id} is referenced by "
            f"{transaction_count} stock transaction(s)"
        )


def _jsonable(value):
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def attributable_user(user):
    # AnonymousUser and None both mean "unattributed".
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return user


def write_audit(
    entity_type: str,
    entity_id: int,
    action: str,
    user=None,
    changes: Optional[Dict[str, Any]] = None,
    message: str = '',
) -> AuditLog:
    """
    Append an entry to the audit history.

    Args:
        entity_type: One of AuditLog.EntityType
        entity_id: Primary key of the changed row
        action: One of AuditLog.Action
        user: Acting user, or None when unattributed
        changes: Field values (create/delete) or [old, new] pairs (update)
        message: Short human readable summary
    """
    entry = AuditLog.objects.create(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        user=attributable_user(user),
        changes={k: _jsonable(v) for k, v in (changes or {}).items()},
        message=message[:255],
    )
    logger.debug(f"Audit: {entry}")
    return entry


# =============================================================================
# Categories
# =============================================================================

def _validate_category(name: str, description: str, exclude_id: Optional[int] = None) -> str:
    name = (name or '').strip()
    if not name:
        raise CategoryValidationError("Category name is required")
    if len(description or '') > CATEGORY_DESCRIPTION_MAX_LENGTH:
        raise CategoryValidationError(
            f"Description must be {CATEGORY_DESCRIPTION_MAX_LENGTH} characters or less"
        )
    duplicates = Category.objects.filter(name__iexact=name)
    if exclude_id is not None:
        duplicates = duplicates.exclude(id=exclude_id)
    if duplicates.exists():
        raise CategoryValidationError("Category name already exists")
    return name


def create_category(name: str, description: str = '', acting_user=None) -> Category:
    name = _validate_category(name, description)
    with transaction.atomic():
        category = Category.objects.create(
            name=name,
            description=(description or '').strip()
        )
        write_audit(
            AuditLog.EntityType.CATEGORY, category.id, AuditLog.Action.CREATE,
            user=acting_user,
            changes={'name': category.name, 'description': category.description},
            message=f"Created category {category.name}",
        )
    logger.info(f"Created category #{category.id} {category.name}")
    return category


def cascade_category_name(category: Category) -> int:
    """Copy the category's current name onto all of its products."""
    return Product.objects.filter(category_id=category.id).exclude(
        category_name=category.name
    ).update(category_name=category.name)


def update_category(
    category_id: int,
    name: str,
    description: Optional[str] = None,
    acting_user=None,
) -> Tuple[Category, bool]:
    """
    Rename and/or re-describe a category, cascading the new name to products.

    The rename is committed before the cascade runs. If the cascade fails
    the error is logged and the rename stands.

    Returns:
        Tuple of (Category, whether the cascade succeeded)

    Raises:
        Category.DoesNotExist: If the category doesn't exist
        CategoryValidationError: If the name is empty, duplicated or the
            description is too long
    """
    category = Category.objects.get(id=category_id)
    if description is None:
        description = category.description
    name = _validate_category(name, description, exclude_id=category.id)
    description = description.strip()

    old_name = category.name
    changes = {}
    if name != category.name:
        changes['name'] = [category.name, name]
    if description != category.description:
        changes['description'] = [category.description, description]

    with transaction.atomic():
        category.name = name
        category.description = description
        category.save(update_fields=['name', 'description', 'updated_at'])
        if changes:
            write_audit(
                AuditLog.EntityType.CATEGORY, category.id, AuditLog.Action.UPDATE,
                user=acting_user,
                changes=changes,
                message=f"Updated category {name}",
            )

    if 'name' not in changes:
        return category, True

    try:
        with transaction.atomic():
            updated = cascade_category_name(category)
    except DatabaseError as e:
        logger.error(
            f"Category #{category.id} renamed from {old_name!r} to {name!r} "
            f"but product names were not refreshed: {e}"
        )
        return category, False

    logger.info(
        f"Renamed category #{category.id} {old_name!r} -> {name!r}, "
        f"refreshed {updated} product(s)"
    )
    return category, True


def delete_category(category_id: int, acting_user=None) -> None:
    category = Category.objects.get(id=category_id)
    product_count = category.products.count()
    if product_count:
        raise CategoryInUseError(category.id, product_count)

    with transaction.atomic():
        write_audit(
            AuditLog.EntityType.CATEGORY, category.id, AuditLog.Action.DELETE,
            user=acting_user,
            changes={'name': category.name},
            message=f"Deleted category {category.name}",
        )
        category.delete()
    logger.info(f"Deleted category #{category_id}")


# =============================================================================
# Products
# =============================================================================

def create_product(data: Dict[str, Any], acting_user=None) -> Product:
    """
    Create a product from validated serializer data.

    `category_name` is always taken from the category, never from input.
    """
    data = dict(data)
    data.pop('category_name', None)
    with transaction.atomic():
        product = Product(**data)
        product.category_name = product.category.name
        product.save()
        write_audit(
            AuditLog.EntityType.PRODUCT, product.id, AuditLog.Action.CREATE,
            user=acting_user,
            changes={f: getattr(product, f) for f in AUDITED_PRODUCT_FIELDS},
            message=f"Created product {product.name}",
        )
    logger.info(f"Created product #{product.id} {product.name}")
    return product


def update_product(product: Product, data: Dict[str, Any], acting_user=None) -> Product:
    data = dict(data)
    data.pop('category_name', None)
    before = {f: getattr(product, f) for f in AUDITED_PRODUCT_FIELDS}

    for field, value in data.items():
        setattr(product, field, value)
    product.category_name = product.category.name

    changes = {
        f: [before[f], getattr(product, f)]
        for f in AUDITED_PRODUCT_FIELDS
        if before[f] != getattr(product, f)
    }

    with transaction.atomic():
        product.save()
        if changes:
            write_audit(
                AuditLog.EntityType.PRODUCT, product.id, AuditLog.Action.UPDATE,
                user=acting_user,
                changes=changes,
                message=f"Updated product {product.name}",
            )

    if 'quantity' in changes:
        logger.info(
            f"Product #{product.id} quantity edited directly: "
            f"{changes['quantity'][0]} -> {changes['quantity'][1]}"
        )
    return product


def delete_product(product_id: int, acting_user=None) -> None:
    """
    Delete a product that no stock transaction references.

    Raises:
        Product.DoesNotExist: If the product doesn't exist
        ProductInUseError: If transactions still reference it
    """
    product = Product.objects.get(id=product_id)
    transaction_count = product.stock_transactions.count()
    if transaction_count:
        raise ProductInUseError(product.id, transaction_count)

    with transaction.atomic():
        write_audit(
            AuditLog.EntityType.PRODUCT, product.id, AuditLog.Action.DELETE,
            user=acting_user,
            changes={'name': product.name, 'sku': product.sku, 'quantity': product.quantity},
            message=f"Deleted product {product.name}",
        )
        product.delete()
    logger.info(f"Deleted product #{product_id}")
