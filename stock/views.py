"""
Stock Transaction API Views.

Implements:
- GET /transactions/ - List transactions, newest first
- POST /transactions/ - Record a transaction and apply it to stock
- GET /transactions/{id}/ - Transaction detail
- PUT/PATCH /transactions/{id}/ - Edit, reverting the old effect first
- DELETE /transactions/{id}/ - Delete and revert the stock change
"""
import logging

from rest_framework import generics, status
from rest_framework.response import Response

from core.responses import error_response
from .models import StockTransaction
from .serializers import (
    StockTransactionCreateSerializer,
    StockTransactionEditSerializer,
    StockTransactionListSerializer,
    StockTransactionSerializer,
)
from .services import (
    InsufficientStockError,
    PartialReconciliationError,
    PersistenceError,
    ProductNotFound,
    TransactionNotFound,
    TransactionValidationError,
    delete_transaction,
    edit_transaction,
    record_transaction,
)

logger = logging.getLogger(__name__)


def ledger_error_response(e):
    """Translate a stock ledger exception into an API error response."""
    if isinstance(e, TransactionValidationError):
        return error_response('Validation Error', str(e), status.HTTP_400_BAD_REQUEST)
    if isinstance(e, (TransactionNotFound, ProductNotFound)):
        return error_response('Not Found', str(e), status.HTTP_404_NOT_FOUND)
    if isinstance(e, InsufficientStockError):
        return error_response(
            'Insufficient Stock', str(e), status.HTTP_409_CONFLICT,
            product_id=e.product_id, requested=e.requested, available=e.available
        )
    if isinstance(e, PartialReconciliationError):
        return error_response(
            'Partial Reconciliation', str(e), status.HTTP_500_INTERNAL_SERVER_ERROR,
            partial=True,
            transaction_id=e.transaction_id,
            reverted_product_id=e.reverted_product_id,
            reverted_quantity=e.reverted_quantity
        )
    if isinstance(e, PersistenceError):
        return error_response(
            'Server Error', 'Stock could not be saved', status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    raise e


class StockTransactionListCreateView(generics.ListCreateAPIView):
    """
    GET: List transactions
    POST: Record a new transaction

    Query Parameters (GET):
        - product_id: Filter by product
        - type: Filter by type (IN, OUT, ADJUSTMENT)

    Request Body (POST):
    {
        "product_id": 1,
        "transaction_type": "IN",
        "quantity": 24,
        "reason": "Received from supplier"
    }
    """

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return StockTransactionCreateSerializer
        return StockTransactionListSerializer

    def get_queryset(self):
        queryset = StockTransaction.objects.all()

        product_id = self.request.query_params.get('product_id')
        if product_id:
            queryset = queryset.filter(product_id=product_id)

        type_filter = self.request.query_params.get('type', '').upper()
        if type_filter in StockTransaction.Type.values:
            queryset = queryset.filter(transaction_type=type_filter)

        return queryset.order_by('-transaction_date', '-id')

    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Transaction recorded
            - 400: Validation error
            - 404: Product not found
            - 409: Insufficient stock
        """
        serializer = StockTransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            stock_transaction, product = record_transaction(
                data['product_id'],
                data['transaction_type'],
                data['quantity'],
                data.get('reason', ''),
                acting_user=request.user,
            )
        except (TransactionValidationError, ProductNotFound,
                InsufficientStockError, PersistenceError) as e:
            logger.warning(f"Transaction not recorded: {e}")
            return ledger_error_response(e)
        except Exception as e:
            logger.exception(f"Unexpected error recording transaction: {e}")
            return error_response(
                'Server Error', 'An unexpected error occurred',
                status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        body = StockTransactionSerializer(stock_transaction).data
        body['product_quantity'] = product.quantity
        return Response(body, status=status.HTTP_201_CREATED)


class StockTransactionDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a transaction
    PUT/PATCH: Edit a transaction (edit_reason required)
    DELETE: Delete a transaction and revert its stock change

    On PATCH, omitted fields default to the transaction's current product
    and type. The quantity default is described in _current_values.
    """
    serializer_class = StockTransactionSerializer

    def get_queryset(self):
        return StockTransaction.objects.select_related('product', 'created_by', 'edited_by')

    def _current_values(self, stock_transaction, incoming):
        """
        Defaults for a PATCH that resubmit the transaction as it stands.

        The quantity default is only filled when product and type are kept.
        For ADJUSTMENT it is the level the product holds now, so an edit
        that only adds a reason leaves stock untouched. Changing the type
        requires an explicit quantity.
        """
        values = {
            'product_id': stock_transaction.product_id,
            'transaction_type': stock_transaction.transaction_type,
        }
        same_product = str(incoming.get('product_id', stock_transaction.product_id)) == str(
            stock_transaction.product_id
        )
        same_type = str(incoming.get(
            'transaction_type', stock_transaction.transaction_type
        )).upper() == stock_transaction.transaction_type

        if stock_transaction.transaction_type == StockTransaction.Type.ADJUSTMENT:
            if same_product and same_type:
                values['quantity'] = stock_transaction.product.quantity
        elif same_type:
            values['quantity'] = stock_transaction.entered_quantity
        return values

    def update(self, request, *args, **kwargs):
        stock_transaction = self.get_object()

        data = {}
        if kwargs.get('partial', False):
            data = self._current_values(stock_transaction, request.data)
        data.update(request.data.items())

        serializer = StockTransactionEditSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            stock_transaction, product = edit_transaction(
                stock_transaction.id,
                data['product_id'],
                data['transaction_type'],
                data['quantity'],
                data['edit_reason'],
                editing_user=request.user,
            )
        except PartialReconciliationError as e:
            logger.error(f"Transaction edit needs manual reconciliation: {e}")
            return ledger_error_response(e)
        except (TransactionValidationError, TransactionNotFound, ProductNotFound,
                InsufficientStockError, PersistenceError) as e:
            logger.warning(f"Transaction #{stock_transaction.id} not edited: {e}")
            return ledger_error_response(e)

        body = StockTransactionSerializer(stock_transaction).data
        body['product_quantity'] = product.quantity
        return Response(body)

    def destroy(self, request, *args, **kwargs):
        stock_transaction = self.get_object()
        try:
            product = delete_transaction(stock_transaction.id, acting_user=request.user)
        except (TransactionNotFound, ProductNotFound, PersistenceError) as e:
            logger.warning(f"Transaction #{stock_transaction.id} not deleted: {e}")
            return ledger_error_response(e)

        body = {'product_id': product.id, 'product_quantity': product.quantity}
        if product.quantity < 0:
            body['warning'] = 'Product stock is negative and needs a manual count'
        return Response(body, status=status.HTTP_200_OK)
