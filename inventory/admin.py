"""
Django Admin configuration for inventory models.
"""
from django.contrib import admin
from .models import AuditLog, Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'description', 'product_count', 'created_at']
    search_fields = ['name']
    ordering = ['name']

    def product_count(self, obj):
        return obj.products.count()
    product_count.short_description = 'Products'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'sku', 'category_name', 'quantity', 'reorder_level', 'is_low_stock', 'status']
    list_filter = ['category', 'status', 'created_at']
    search_fields = ['name', 'sku', 'supplier']
    ordering = ['name']
    raw_id_fields = ['category']
    # Stock moves through the transaction ledger.
    readonly_fields = ['quantity', 'category_name', 'created_at', 'updated_at']

    def is_low_stock(self, obj):
        return obj.is_low_stock
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['id', 'entity_type', 'entity_id', 'action', 'user', 'message', 'created_at']
    list_filter = ['entity_type', 'action', 'created_at']
    search_fields = ['message', 'user__username']
    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
