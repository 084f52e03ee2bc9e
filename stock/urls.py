"""
URL routing for stock transaction endpoints.
"""
from django.urls import path
from . import views

app_name = 'stock'

urlpatterns = [
    path('transactions/', views.StockTransactionListCreateView.as_view(), name='transaction-list'),
    path('transactions/<int:pk>/', views.StockTransactionDetailView.as_view(), name='transaction-detail'),
]
