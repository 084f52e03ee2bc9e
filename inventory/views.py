"""
Inventory API Views with optimized queries.

Implements:
- CRUD operations for Category and Product (writes go through the service
  layer so they are audited and keep cached category names in step)
- Product search by name/SKU, rate limited
- Low stock list, dashboard statistics, report rows and audit history
"""
import logging

from django.db.models import Q
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.rate_limiting import rate_limit
from core.responses import error_response
from stock.serializers import StockTransactionListSerializer
from . import reports
from .models import AuditLog, Category, Product
from .serializers import (
    AuditLogSerializer,
    CategorySerializer,
    LowStockProductSerializer,
    ProductSerializer,
)
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
)

logger = logging.getLogger(__name__)


# =============================================================================
# Category Views
# =============================================================================

class CategoryListCreateView(generics.ListCreateAPIView):
    """
    GET: List all categories
    POST: Create a new category (name unique regardless of case)
    """
    queryset = Category.objects.all()
    serializer_class = CategorySerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            category = create_category(
                serializer.validated_data['name'],
                serializer.validated_data.get('description', ''),
                acting_user=request.user,
            )
        except CategoryValidationError as e:
            return error_response('Validation Error', str(e), status.HTTP_400_BAD_REQUEST)
        return Response(CategorySerializer(category).data, status=status.HTTP_201_CREATED)


class CategoryDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a category
    PUT/PATCH: Update a category; a rename is copied onto its products
    DELETE: Delete a category with no products
    """
    queryset = Category.objects.all()
    serializer_class = CategorySerializer

    def update(self, request, *args, **kwargs):
        category = self.get_object()
        serializer = self.get_serializer(
            category, data=request.data, partial=kwargs.get('partial', False)
        )
        serializer.is_valid(raise_exception=True)
        try:
            category, cascade_ok = update_category(
                category.id,
                serializer.validated_data.get('name', category.name),
                serializer.validated_data.get('description'),
                acting_user=request.user,
            )
        except CategoryValidationError as e:
            return error_response('Validation Error', str(e), status.HTTP_400_BAD_REQUEST)

        data = CategorySerializer(category).data
        if not cascade_ok:
            data['warning'] = 'Category renamed but some products still show the old name'
        return Response(data)

    def destroy(self, request, *args, **kwargs):
        category = self.get_object()
        try:
            delete_category(category.id, acting_user=request.user)
        except CategoryInUseError as e:
            return error_response('Conflict', str(e), status.HTTP_409_CONFLICT)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Product Views
# =============================================================================

class ProductListCreateView(generics.ListCreateAPIView):
    """
    GET: List products with category info
    POST: Create a new product

    Query Parameters (GET):
        - category_id: Filter by category
        - status: Active or Inactive

    Uses select_related to eliminate N+1 queries.
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        queryset = Product.objects.select_related('category')

        category_id = self.request.query_params.get('category_id')
        if category_id:
            queryset = queryset.filter(category_id=category_id)

        status_filter = self.request.query_params.get('status', '').capitalize()
        if status_filter in Product.Status.values:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('name')

    def perform_create(self, serializer):
        serializer.instance = create_product(serializer.validated_data, acting_user=self.request.user)


class ProductDetailView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Retrieve a product
    PUT/PATCH: Update a product
    DELETE: Delete a product that has no stock transactions
    """
    serializer_class = ProductSerializer

    def get_queryset(self):
        return Product.objects.select_related('category')

    def perform_update(self, serializer):
        serializer.instance = update_product(
            serializer.instance, serializer.validated_data, acting_user=self.request.user
        )

    def destroy(self, request, *args, **kwargs):
        product = self.get_object()
        try:
            delete_product(product.id, acting_user=request.user)
        except ProductInUseError as e:
            return error_response(
                'Conflict', str(e), status.HTTP_409_CONFLICT,
                transaction_count=e.transaction_count
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProductSearchView(APIView):
    """
    GET: Search products by name or SKU.

    Query Parameters:
        - q: Keyword matched against name and SKU (case-insensitive)
        - category_id: Filter by category ID

    Rate limited to 30 requests per minute.
    """

    @rate_limit(max_requests=30, window_seconds=60)
    def get(self, request):
        queryset = Product.objects.select_related('category')

        keyword = request.query_params.get('q', '').strip()
        if keyword:
            queryset = queryset.filter(
                Q(name__icontains=keyword) |
                Q(sku__icontains=keyword)
            )

        category_id = request.query_params.get('category_id')
        if category_id:
            queryset = queryset.filter(category_id=category_id)

        products = queryset.order_by('name')[:50]
        return Response(ProductSerializer(products, many=True).data)


class LowStockListView(generics.ListAPIView):
    """GET: Active products at or below their reorder level."""
    serializer_class = LowStockProductSerializer

    def get_queryset(self):
        return reports.low_stock_products()


# =============================================================================
# Dashboard, Reports, Audit
# =============================================================================

class DashboardView(APIView):
    """
    GET: Dashboard cards: active products, low stock count, inventory value,
    transaction count and the latest transactions.
    """

    def get(self, request):
        stats = reports.dashboard_stats()
        stats['total_value'] = str(stats['total_value'])
        stats['recent_transactions'] = StockTransactionListSerializer(
            stats['recent_transactions'], many=True
        ).data
        stats['low_stock_products'] = LowStockProductSerializer(
            reports.low_stock_products(), many=True
        ).data
        return Response(stats)


class ReportView(APIView):
    """
    GET: Rows for one report.

    Path Parameters:
        - report_type: inventory, low-stock, transactions or valuation
    """

    def get(self, request, report_type):
        builder = reports.REPORTS.get(report_type)
        if builder is None:
            return error_response(
                'Not Found',
                f"Unknown report {report_type!r}. Available: {', '.join(reports.REPORTS)}",
                status.HTTP_404_NOT_FOUND
            )
        data = builder()
        rows = data['rows'] if isinstance(data, dict) else data
        if not rows:
            logger.info(f"Report {report_type} generated with no rows")

        body = {'report_type': report_type, 'record_count': len(rows)}
        if isinstance(data, dict):
            body.update(data)
        else:
            body['rows'] = data
        return Response(body)


class TransactionActivityView(APIView):
    """
    GET: Per-day transaction activity.

    Query Parameters:
        - days: 7, 14 or 30 (default 7)
        - metric: count or quantity (default count)
    """

    def get(self, request):
        try:
            days = int(request.query_params.get('days', 7))
        except ValueError:
            days = 7
        if days not in (7, 14, 30):
            return error_response(
                'Validation Error', 'days must be 7, 14 or 30', status.HTTP_400_BAD_REQUEST
            )
        metric = request.query_params.get('metric', 'count')
        if metric not in ('count', 'quantity'):
            metric = 'count'
        return Response(reports.transaction_activity(days, metric))


class AuditLogListView(generics.ListAPIView):
    """
    GET: Audit history, newest first.

    Query Parameters:
        - entity_type: category, product or transaction
        - entity_id: Restrict to one record
    """
    serializer_class = AuditLogSerializer

    def get_queryset(self):
        queryset = AuditLog.objects.select_related('user')

        entity_type = self.request.query_params.get('entity_type', '').lower()
        if entity_type in AuditLog.EntityType.values:
            queryset = queryset.filter(entity_type=entity_type)

        entity_id = self.request.query_params.get('entity_id')
        if entity_id and entity_id.isdigit():
            queryset = queryset.filter(entity_id=int(entity_id))

        return queryset
