"""
Django Admin configuration for stock transactions.

Transactions are read-only here: creating, editing or deleting one must
go through stock.services so the product quantity follows.
"""
from django.contrib import admin
from .models import StockTransaction


@admin.register(StockTransaction)
class StockTransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'transaction_date', 'product_name', 'transaction_type', 'quantity', 'created_by', 'is_edited']
    list_filter = ['transaction_type', 'transaction_date']
    search_fields = ['product_name', 'reason', 'edit_reason']
    ordering = ['-transaction_date']
    raw_id_fields = ['product']

    def is_edited(self, obj):
        return obj.is_edited
    is_edited.boolean = True
    is_edited.short_description = 'Edited'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
