"""
URL routing for inventory API endpoints.
"""
from django.urls import path
from . import views

app_name = 'inventory'

urlpatterns = [
    # Categories
    path('categories/', views.CategoryListCreateView.as_view(), name='category-list'),
    path('categories/<int:pk>/', views.CategoryDetailView.as_view(), name='category-detail'),

    # Products
    path('products/', views.ProductListCreateView.as_view(), name='product-list'),
    path('products/<int:pk>/', views.ProductDetailView.as_view(), name='product-detail'),
    path('products/search/', views.ProductSearchView.as_view(), name='product-search'),
    path('products/low-stock/', views.LowStockListView.as_view(), name='product-low-stock'),

    # Dashboard and reports
    path('dashboard/', views.DashboardView.as_view(), name='dashboard'),
    path('reports/activity/', views.TransactionActivityView.as_view(), name='report-activity'),
    path('reports/<slug:report_type>/', views.ReportView.as_view(), name='report'),

    # Audit history
    path('audit-logs/', views.AuditLogListView.as_view(), name='audit-log-list'),
]
