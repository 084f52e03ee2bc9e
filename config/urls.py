"""
URL configuration for the inventory ledger service.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def health_check(request):
    """Health check endpoint for container orchestration."""
    return JsonResponse({'status': 'healthy', 'service': 'inventory-ledger'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health-check'),
    path('api-auth/', include('rest_framework.urls')),
    path('api/', include('inventory.urls')),
    path('api/', include('stock.urls')),
]
