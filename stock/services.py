"""
Stock Ledger Service Layer - keeps product quantities in step with transactions.

Invariant maintained by every operation here:

    product.quantity == baseline + sum(t.quantity for t in product's transactions)

Recording applies a signed delta. Editing first reverts the stored delta
and then applies a freshly resolved one. Deleting reverts the stored delta.
Product and transaction rows are locked with select_for_update() for the
duration of each read-modify-write.

Editing a transaction onto a different product runs in two phases: the old
product's revert is committed first, then the new assignment. A failure in
the second phase raises PartialReconciliationError so the caller can ask
for a manual reconciliation.
"""
import logging
from typing import Optional, Tuple

from django.db import DatabaseError, transaction
from django.utils import timezone

from inventory.models import AuditLog, Product
from inventory.services import attributable_user, write_audit
from .models import StockTransaction

logger = logging.getLogger(__name__)

REASON_MAX_LENGTH = 50


class StockLedgerError(Exception):
    """Base class for stock ledger failures."""
    pass


class TransactionNotFound(StockLedgerError):
    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Stock transaction {transaction_id} not found")


class ProductNotFound(StockLedgerError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found")


class InsufficientStockError(StockLedgerError):
    """Raised when a transaction would drive a product's stock below zero."""
    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class TransactionValidationError(StockLedgerError):
    """Raised when transaction input is invalid. Nothing has been written."""
    pass


class PersistenceError(StockLedgerError):
    """Raised when the database rejects a ledger write."""
    pass


class PartialReconciliationError(PersistenceError):
    """
    Raised when a cross-product edit failed after the old product's revert
    was committed.

    The transaction record still points at the old product with its old
    delta while that product's quantity no longer includes it.
    """
    def __init__(self, transaction_id: int, reverted_product_id: int, reverted_quantity: int):
        self.transaction_id = transaction_id
        self.reverted_product_id = reverted_product_id
        self.reverted_quantity = reverted_quantity
        super().__init__(
            f"Transaction {transaction_id} was only partially reconciled: "
            f"product {reverted_product_id} was reverted to {reverted_quantity} "
            f"but the new assignment was not saved"
        )


def resolve_delta(transaction_type: str, entered_quantity: int, baseline: int) -> int:
    """
    Translate an entered quantity into the signed change it makes to stock.

    For ADJUSTMENT the entered value is the target stock level, so the
    delta depends on the baseline it is applied to.
    """
    if transaction_type == StockTransaction.Type.IN:
        return entered_quantity
    if transaction_type == StockTransaction.Type.OUT:
        return -entered_quantity
    if transaction_type == StockTransaction.Type.ADJUSTMENT:
        return entered_quantity - baseline
    raise TransactionValidationError(f"Unknown transaction type: {transaction_type!r}")


def validate_entry(transaction_type: str, entered_quantity, reason: Optional[str] = None) -> None:
    """
    Validate user-entered transaction fields.

    Raises:
        TransactionValidationError: If validation fails
    """
    if transaction_type not in StockTransaction.Type.values:
        raise TransactionValidationError(
            f"transaction_type must be one of {', '.join(StockTransaction.Type.values)}"
        )
    if isinstance(entered_quantity, bool) or not isinstance(entered_quantity, int) or entered_quantity < 1:
        raise TransactionValidationError("quantity must be a positive integer")
    if reason and len(reason) > REASON_MAX_LENGTH:
        raise TransactionValidationError(
            f"reason must be {REASON_MAX_LENGTH} characters or less"
        )


def _check_stock(
    product: Product, transaction_type: str, entered_quantity: int, baseline: int, delta: int
) -> None:
    # Only OUT is guarded. IN and ADJUSTMENT may land on a negative baseline.
    if transaction_type == StockTransaction.Type.OUT and baseline + delta < 0:
        raise InsufficientStockError(product.id, entered_quantity, baseline)


def _lock_product(product_id: int) -> Product:
    try:
        return Product.objects.select_for_update().get(id=product_id)
    except Product.DoesNotExist:
        raise ProductNotFound(product_id)


def _lock_transaction(transaction_id: int) -> StockTransaction:
    try:
        return StockTransaction.objects.select_for_update().get(id=transaction_id)
    except StockTransaction.DoesNotExist:
        raise TransactionNotFound(transaction_id)


def _set_quantity(product: Product, quantity: int) -> None:
    product.quantity = quantity
    product.save(update_fields=['quantity', 'updated_at'])


def record_transaction(
    product_id: int,
    transaction_type: str,
    entered_quantity: int,
    reason: str = '',
    acting_user=None,
) -> Tuple[StockTransaction, Product]:
    """
    Record a new stock transaction and apply it to the product.

    Args:
        product_id: Product to move stock for
        transaction_type: IN, OUT or ADJUSTMENT
        entered_quantity: Amount for IN/OUT, target level for ADJUSTMENT
        reason: Optional free text, at most 50 characters
        acting_user: User recorded as creator

    Returns:
        Tuple of (created StockTransaction, updated Product)

    Raises:
        TransactionValidationError: If the input is invalid
        ProductNotFound: If the product doesn't exist
        InsufficientStockError: If an OUT exceeds the current stock
        PersistenceError: If the database rejects a write
    """
    validate_entry(transaction_type, entered_quantity, reason)
    reason = (reason or '').strip()

    try:
        with transaction.atomic():
            product = _lock_product(product_id)
            baseline = product.quantity
            delta = resolve_delta(transaction_type, entered_quantity, baseline)
            _check_stock(product, transaction_type, entered_quantity, baseline, delta)

            _set_quantity(product, baseline + delta)
            stock_transaction = StockTransaction.objects.create(
                product=product,
                product_name=product.name,
                created_by=attributable_user(acting_user),
                transaction_type=transaction_type,
                quantity=delta,
                reason=reason,
                transaction_date=timezone.now(),
            )
            write_audit(
                AuditLog.EntityType.TRANSACTION, stock_transaction.id, AuditLog.Action.CREATE,
                user=acting_user,
                changes={
                    'product_id': product.id,
                    'transaction_type': transaction_type,
                    'quantity': delta,
                    'stock': [baseline, product.quantity],
                },
                message=f"{transaction_type} {delta:+d} on {product.name}",
            )
    except DatabaseError as e:
        logger.exception(f"Failed to record {transaction_type} for product {product_id}")
        raise PersistenceError(f"Failed to record transaction: {e}") from e

    logger.info(
        f"Recorded transaction #{stock_transaction.id}: {transaction_type} "
        f"{delta:+d} on product #{product.id}, stock {baseline} -> {product.quantity}"
    )
    return stock_transaction, product


def _apply_edit(
    stock_transaction: StockTransaction,
    product: Product,
    baseline: int,
    new_delta: int,
    new_transaction_type: str,
    edit_reason: str,
    editing_user,
) -> None:
    """Write the edited transaction and its product. Caller holds the locks."""
    changes = {}
    if stock_transaction.product_id != product.id:
        changes['product_id'] = [stock_transaction.product_id, product.id]
    if stock_transaction.transaction_type != new_transaction_type:
        changes['transaction_type'] = [stock_transaction.transaction_type, new_transaction_type]
    if stock_transaction.quantity != new_delta:
        changes['quantity'] = [stock_transaction.quantity, new_delta]
    changes['stock'] = [product.quantity, baseline + new_delta]
    changes['edit_reason'] = edit_reason

    _set_quantity(product, baseline + new_delta)

    stock_transaction.product = product
    stock_transaction.product_name = product.name
    stock_transaction.transaction_type = new_transaction_type
    stock_transaction.quantity = new_delta
    stock_transaction.edited_by = attributable_user(editing_user)
    stock_transaction.edited_at = timezone.now()
    stock_transaction.edit_reason = edit_reason
    stock_transaction.save()

    write_audit(
        AuditLog.EntityType.TRANSACTION, stock_transaction.id, AuditLog.Action.UPDATE,
        user=editing_user,
        changes=changes,
        message=f"Edited transaction on {product.name}: {edit_reason}",
    )


def edit_transaction(
    transaction_id: int,
    new_product_id: int,
    new_transaction_type: str,
    new_entered_quantity: int,
    edit_reason: str,
    editing_user=None,
) -> Tuple[StockTransaction, Product]:
    """
    Edit a stock transaction, reverting its old effect before applying the new one.

    The baseline for resolving the new delta is the product's stock without
    this transaction when the product is unchanged, or the new product's
    current stock when the transaction moves to another product. The
    original `reason` and `transaction_date` are kept.

    Returns:
        Tuple of (edited StockTransaction, Product it now applies to)

    Raises:
        TransactionValidationError: If the edit reason is missing or input is invalid
        TransactionNotFound: If the transaction doesn't exist
        ProductNotFound: If the old or new product doesn't exist
        InsufficientStockError: If the new OUT exceeds the baseline stock
        PartialReconciliationError: If a cross-product edit failed after the
            old product had already been reverted
        PersistenceError: If the database rejects a write
    """
    edit_reason = (edit_reason or '').strip()
    if not edit_reason:
        raise TransactionValidationError("An edit reason is required")
    validate_entry(new_transaction_type, new_entered_quantity)

    try:
        with transaction.atomic():
            stock_transaction = _lock_transaction(transaction_id)
            old_product_id = stock_transaction.product_id

            # Lock in id order to avoid deadlocks between concurrent edits.
            product_ids = sorted({old_product_id, new_product_id})
            locked = {
                p.id: p for p in
                Product.objects.select_for_update().filter(id__in=product_ids).order_by('id')
            }
            if old_product_id not in locked:
                raise ProductNotFound(old_product_id)
            if new_product_id not in locked:
                raise ProductNotFound(new_product_id)
            old_product = locked[old_product_id]
            new_product = locked[new_product_id]

            old_delta = stock_transaction.quantity
            reverted_quantity = old_product.quantity - old_delta
            same_product = old_product.id == new_product.id
            baseline = reverted_quantity if same_product else new_product.quantity

            new_delta = resolve_delta(new_transaction_type, new_entered_quantity, baseline)
            _check_stock(new_product, new_transaction_type, new_entered_quantity, baseline, new_delta)

            if same_product:
                _apply_edit(
                    stock_transaction, new_product, baseline, new_delta,
                    new_transaction_type, edit_reason, editing_user
                )
            else:
                _set_quantity(old_product, reverted_quantity)
    except DatabaseError as e:
        logger.exception(f"Failed to edit transaction #{transaction_id}")
        raise PersistenceError(f"Failed to edit transaction: {e}") from e

    if same_product:
        logger.info(
            f"Edited transaction #{transaction_id}: delta {old_delta:+d} -> {new_delta:+d}, "
            f"product #{new_product.id} stock now {new_product.quantity}"
        )
        return stock_transaction, new_product

    logger.info(
        f"Transaction #{transaction_id} moving from product #{old_product.id} "
        f"(reverted to {reverted_quantity}) to product #{new_product_id}"
    )

    try:
        with transaction.atomic():
            stock_transaction = _lock_transaction(transaction_id)
            new_product = _lock_product(new_product_id)
            baseline = new_product.quantity
            new_delta = resolve_delta(new_transaction_type, new_entered_quantity, baseline)
            _check_stock(new_product, new_transaction_type, new_entered_quantity, baseline, new_delta)
            _apply_edit(
                stock_transaction, new_product, baseline, new_delta,
                new_transaction_type, edit_reason, editing_user
            )
    except (StockLedgerError, DatabaseError) as e:
        logger.error(
            f"Transaction #{transaction_id} partially reconciled: product "
            f"#{old_product.id} reverted to {reverted_quantity}, "
            f"assignment to product #{new_product_id} failed: {e}"
        )
        raise PartialReconciliationError(
            transaction_id, old_product.id, reverted_quantity
        ) from e

    logger.info(
        f"Edited transaction #{transaction_id}: now {new_delta:+d} on "
        f"product #{new_product.id}, stock {baseline} -> {new_product.quantity}"
    )
    return stock_transaction, new_product


def delete_transaction(transaction_id: int, acting_user=None) -> Product:
    """
    Delete a stock transaction and revert its delta from the product.

    The revert is relative: the stored delta is subtracted from whatever the
    product holds now. A negative result is allowed and logged.

    Returns:
        The product with its reverted quantity

    Raises:
        TransactionNotFound: If the transaction doesn't exist
        ProductNotFound: If the transaction's product doesn't exist
        PersistenceError: If the database rejects a write
    """
    try:
        with transaction.atomic():
            stock_transaction = _lock_transaction(transaction_id)
            product = _lock_product(stock_transaction.product_id)
            current = product.quantity
            reverted_quantity = current - stock_transaction.quantity

            if reverted_quantity < 0:
                logger.warning(
                    f"Deleting transaction #{transaction_id} leaves product "
                    f"#{product.id} at negative stock {reverted_quantity}"
                )

            _set_quantity(product, reverted_quantity)
            write_audit(
                AuditLog.EntityType.TRANSACTION, stock_transaction.id, AuditLog.Action.DELETE,
                user=acting_user,
                changes={
                    'product_id': product.id,
                    'transaction_type': stock_transaction.transaction_type,
                    'quantity': stock_transaction.quantity,
                    'stock': [current, reverted_quantity],
                },
                message=f"Deleted {stock_transaction.transaction_type} on {product.name}",
            )
            stock_transaction.delete()
    except DatabaseError as e:
        logger.exception(f"Failed to delete transaction #{transaction_id}")
        raise PersistenceError(f"Failed to delete transaction: {e}") from e

    logger.info(
        f"Deleted transaction #{transaction_id}, product #{product.id} "
        f"stock {current} -> {reverted_quantity}"
    )
    return product
