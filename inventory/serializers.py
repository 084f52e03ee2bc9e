"""
Serializers for inventory models.
Provides data validation and JSON conversion for API endpoints.
"""
from rest_framework import serializers
from .models import AuditLog, Category, Product


class CategorySerializer(serializers.ModelSerializer):
    """Serializer for Category model."""
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Category
        fields = ['id', 'name', 'description', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']
        # Uniqueness is case-insensitive and checked by the service layer.
        validators = []

    def get_product_count(self, obj):
        """Get count of products in this category."""
        return obj.products.count()


class CategoryMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for nested category representation."""
    class Meta:
        model = Category
        fields = ['id', 'name']


class ProductSerializer(serializers.ModelSerializer):
    """Serializer for Product model with nested category."""
    category = CategoryMinimalSerializer(read_only=True)
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True
    )
    is_low_stock = serializers.BooleanField(read_only=True)
    stock_value = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'sku', 'unit', 'category', 'category_id',
            'category_name', 'unit_cost', 'selling_price', 'quantity',
            'reorder_level', 'expiry_date', 'location', 'supplier', 'status',
            'is_low_stock', 'stock_value', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'category_name', 'created_at', 'updated_at']

    def validate_quantity(self, value):
        if value < 0:
            raise serializers.ValidationError("Quantity cannot be negative")
        return value


class ProductMinimalSerializer(serializers.ModelSerializer):
    """Minimal serializer for pickers and nested representations."""
    class Meta:
        model = Product
        fields = ['id', 'name', 'sku', 'quantity', 'unit']


class LowStockProductSerializer(serializers.ModelSerializer):
    """Serializer for low stock alerts."""
    units_below_reorder = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'sku', 'category_name', 'quantity',
            'reorder_level', 'units_below_reorder', 'unit', 'supplier'
        ]

    def get_units_below_reorder(self, obj):
        return obj.reorder_level - obj.quantity


class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for audit history entries."""
    username = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = [
            'id', 'entity_type', 'entity_id', 'action',
            'username', 'changes', 'message', 'created_at'
        ]

    def get_username(self, obj):
        return obj.user.get_username() if obj.user else None
