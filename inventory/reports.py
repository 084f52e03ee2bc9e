"""
Dashboard statistics and report rows.

Reports are returned as lists of flat dicts, one per row, ready for any
tabular export. Money values are Decimals rounded to cents.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List

from django.db.models import Count, F, Q, Sum
from django.db.models.functions import Abs, TruncDate
from django.utils import timezone

from stock.models import StockTransaction
from .models import Product

CENTS = Decimal('0.01')

RECENT_TRANSACTION_COUNT = 5


def _money(value) -> Decimal:
    return Decimal(value or 0).quantize(CENTS)


def low_stock_products():
    """Active products at or below their reorder level."""
    return Product.objects.filter(
        status=Product.Status.ACTIVE,
        quantity__lte=F('reorder_level')
    ).order_by('quantity', 'name')


def inventory_value() -> Decimal:
    total = Decimal('0.00')
    for quantity, unit_cost in Product.objects.values_list('quantity', 'unit_cost'):
        total += quantity * unit_cost
    return _money(total)


def dashboard_stats() -> Dict:
    recent = StockTransaction.objects.order_by('-transaction_date', '-id')[:RECENT_TRANSACTION_COUNT]
    return {
        'total_products': Product.objects.filter(status=Product.Status.ACTIVE).count(),
        'low_stock_items': low_stock_products().count(),
        'total_value': inventory_value(),
        'total_transactions': StockTransaction.objects.count(),
        'recent_transactions': list(recent),
    }


# =============================================================================
# Report rows
# =============================================================================

def inventory_report() -> List[Dict]:
    return [
        {
            'sku': p.sku,
            'name': p.name,
            'category': p.category_name,
            'quantity': p.quantity,
            'unit': p.unit,
            'unit_cost': p.unit_cost,
            'selling_price': p.selling_price,
            'total_value': _money(p.stock_value),
            'reorder_level': p.reorder_level,
            'location': p.location,
            'status': p.status,
        }
        for p in Product.objects.order_by('name')
    ]


def low_stock_report() -> List[Dict]:
    return [
        {
            'sku': p.sku,
            'name': p.name,
            'category': p.category_name,
            'current_quantity': p.quantity,
            'reorder_level': p.reorder_level,
            'units_below_reorder': p.reorder_level - p.quantity,
            'location': p.location,
            'supplier': p.supplier or 'N/A',
        }
        for p in low_stock_products()
    ]


def transaction_report() -> List[Dict]:
    transactions = StockTransaction.objects.select_related('created_by').order_by(
        '-transaction_date', '-id'
    )
    return [
        {
            'date': tx.transaction_date.isoformat(),
            'product': tx.product_name,
            'type': tx.transaction_type,
            'quantity': tx.quantity,
            'user': tx.created_by.get_username() if tx.created_by else '',
            'reason': tx.reason or 'N/A',
            'edited': tx.is_edited,
        }
        for tx in transactions
    ]


def valuation_report() -> Dict:
    """Per-product valuation rows plus totals over all products."""
    rows = []
    total_value = Decimal('0.00')
    total_revenue = Decimal('0.00')
    for p in Product.objects.order_by('name'):
        value = p.quantity * p.unit_cost
        revenue = p.quantity * p.selling_price
        total_value += value
        total_revenue += revenue
        rows.append({
            'sku': p.sku,
            'name': p.name,
            'category': p.category_name,
            'quantity': p.quantity,
            'unit_cost': _money(p.unit_cost),
            'stock_value': _money(value),
            'potential_revenue': _money(revenue),
            'potential_profit': _money(revenue - value),
        })
    return {
        'rows': rows,
        'totals': {
            'stock_value': _money(total_value),
            'potential_revenue': _money(total_revenue),
            'potential_profit': _money(total_revenue - total_value),
        },
    }


REPORTS = {
    'inventory': inventory_report,
    'low-stock': low_stock_report,
    'transactions': transaction_report,
    'valuation': valuation_report,
}


def transaction_activity(days: int = 7, metric: str = 'count') -> List[Dict]:
    """
    Per-day IN/OUT/ADJUSTMENT activity for the last `days` days, oldest first.

    `metric` is 'count' for the number of transactions or 'quantity' for the
    sum of absolute deltas.
    """
    today = timezone.localdate()
    start = today - timedelta(days=days - 1)
    types = StockTransaction.Type

    if metric == 'quantity':
        agg = {
            'val_in': Sum(Abs('quantity'), filter=Q(transaction_type=types.IN)),
            'val_out': Sum(Abs('quantity'), filter=Q(transaction_type=types.OUT)),
            'val_adj': Sum(Abs('quantity'), filter=Q(transaction_type=types.ADJUSTMENT)),
        }
    else:
        agg = {
            'val_in': Count('id', filter=Q(transaction_type=types.IN)),
            'val_out': Count('id', filter=Q(transaction_type=types.OUT)),
            'val_adj': Count('id', filter=Q(transaction_type=types.ADJUSTMENT)),
        }

    per_day = {
        row['day']: row
        for row in StockTransaction.objects.filter(
            transaction_date__date__gte=start
        ).annotate(day=TruncDate('transaction_date')).values('day').annotate(**agg).order_by('day')
    }

    data = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        row = per_day.get(day, {})
        val_in = row.get('val_in') or 0
        val_out = row.get('val_out') or 0
        val_adj = row.get('val_adj') or 0
        data.append({
            'date': day.isoformat(),
            'in': val_in,
            'out': val_out,
            'adjustment': val_adj,
            'total': val_in + val_out + val_adj,
        })
    return data
