"""
Celery tasks for the stock ledger.

Tasks:
    - generate_daily_transaction_report: Yesterday's activity per transaction type
    - flag_negative_stock: Log products whose stock went below zero
"""
import logging
from datetime import date, timedelta

from celery import shared_task
from django.db.models import Count, Q, Sum
from django.db.models.functions import Abs
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task
def generate_daily_transaction_report(day=None):
    """
    Generate daily stock transaction statistics.

    Scheduled via Celery Beat. `day` is an ISO date; defaults to yesterday.
    """
    from stock.models import StockTransaction

    if day is None:
        day = timezone.localdate() - timedelta(days=1)
    elif isinstance(day, str):
        day = date.fromisoformat(day)

    types = StockTransaction.Type
    stats = StockTransaction.objects.filter(
        transaction_date__date=day
    ).aggregate(
        total_transactions=Count('id'),
        in_transactions=Count('id', filter=Q(transaction_type=types.IN)),
        out_transactions=Count('id', filter=Q(transaction_type=types.OUT)),
        adjustments=Count('id', filter=Q(transaction_type=types.ADJUSTMENT)),
        units_in=Sum('quantity', filter=Q(transaction_type=types.IN)),
        units_out=Sum(Abs('quantity'), filter=Q(transaction_type=types.OUT)),
        net_change=Sum('quantity'),
    )
    for key in ('units_in', 'units_out', 'net_change'):
        stats[key] = stats[key] or 0
    stats['date'] = day.isoformat()

    report = f"""
    ===============================================
    DAILY STOCK REPORT - {day}
    ===============================================
    Transactions: {stats['total_transactions']}
    IN: {stats['in_transactions']} ({stats['units_in']} units)
    OUT: {stats['out_transactions']} ({stats['units_out']} units)
    Adjustments: {stats['adjustments']}
    Net change: {stats['net_change']:+d}
    ===============================================
    """

    logger.info(report)

    return stats


@shared_task
def flag_negative_stock():
    """
    Periodic sweep for products whose stock is below zero.

    Negative stock only appears when a transaction is deleted after later
    movements consumed its stock; each one needs a manual count.
    """
    from inventory.models import Product

    negative = list(
        Product.objects.filter(quantity__lt=0).values('id', 'name', 'sku', 'quantity')
    )
    for product in negative:
        logger.warning(
            f"Product #{product['id']} {product['name']} ({product['sku']}) "
            f"has negative stock {product['quantity']}"
        )
    return {'flagged': len(negative), 'products': [p['id'] for p in negative]}
