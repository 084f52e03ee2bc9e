"""
Serializers for stock transactions.
"""
from rest_framework import serializers

from inventory.serializers import ProductMinimalSerializer
from .models import StockTransaction
from .services import REASON_MAX_LENGTH


class StockTransactionSerializer(serializers.ModelSerializer):
    """Serializer for StockTransaction with product and user details."""
    product = ProductMinimalSerializer(read_only=True)
    created_by = serializers.SerializerMethodField()
    edited_by = serializers.SerializerMethodField()
    is_edited = serializers.BooleanField(read_only=True)

    class Meta:
        model = StockTransaction
        fields = [
            'id', 'product', 'product_name', 'transaction_type', 'quantity',
            'reason', 'transaction_date', 'created_by',
            'is_edited', 'edited_by', 'edited_at', 'edit_reason'
        ]

    def get_created_by(self, obj):
        return obj.created_by.get_username() if obj.created_by else None

    def get_edited_by(self, obj):
        return obj.edited_by.get_username() if obj.edited_by else None


class StockTransactionListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing transactions.
    Reads the captured product name instead of joining products.
    """
    is_edited = serializers.BooleanField(read_only=True)

    class Meta:
        model = StockTransaction
        fields = [
            'id', 'product_id', 'product_name', 'transaction_type',
            'quantity', 'reason', 'transaction_date', 'is_edited'
        ]


class StockTransactionCreateSerializer(serializers.Serializer):
    """
    Serializer for recording transactions via POST /transactions/

    Request format:
    {
        "product_id": 1,
        "transaction_type": "OUT",
        "quantity": 3,
        "reason": "Bar restock"
    }

    For ADJUSTMENT, quantity is the counted stock level.
    """
    product_id = serializers.IntegerField(min_value=1)
    transaction_type = serializers.ChoiceField(choices=StockTransaction.Type.choices)
    quantity = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(
        max_length=REASON_MAX_LENGTH,
        required=False,
        allow_blank=True,
        default=''
    )


class StockTransactionEditSerializer(serializers.Serializer):
    """
    Serializer for editing transactions via PUT/PATCH /transactions/{id}/

    On PATCH, omitted fields keep the transaction's current product, type
    and entered quantity. `edit_reason` is always required.
    """
    product_id = serializers.IntegerField(min_value=1)
    transaction_type = serializers.ChoiceField(choices=StockTransaction.Type.choices)
    quantity = serializers.IntegerField(min_value=1)
    edit_reason = serializers.CharField(allow_blank=False, trim_whitespace=True)
