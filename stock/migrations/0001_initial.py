import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='StockTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('product_name', models.CharField(blank=True, default='', help_text='Product name captured for display', max_length=200)),
                ('transaction_type', models.CharField(choices=[('IN', 'Stock In'), ('OUT', 'Stock Out'), ('ADJUSTMENT', 'Adjustment')], db_index=True, max_length=20)),
                ('quantity', models.IntegerField(help_text="Signed change applied to the product's stock")),
                ('reason', models.CharField(blank=True, default='', max_length=50)),
                ('transaction_date', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('edited_at', models.DateTimeField(blank=True, null=True)),
                ('edit_reason', models.TextField(blank=True, default='')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_transactions', to=settings.AUTH_USER_MODEL)),
                ('edited_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='edited_stock_transactions', to=settings.AUTH_USER_MODEL)),
                ('product', models.ForeignKey(help_text='Product whose stock this transaction moved', on_delete=django.db.models.deletion.PROTECT, related_name='stock_transactions', to='inventory.product')),
            ],
            options={
                'verbose_name': 'Stock Transaction',
                'verbose_name_plural': 'Stock Transactions',
                'ordering': ['-transaction_date', '-id'],
                'indexes': [
                    models.Index(fields=['product', 'transaction_date'], name='stocktx_product_date_idx'),
                    models.Index(fields=['transaction_type', 'transaction_date'], name='stocktx_type_date_idx'),
                ],
            },
        ),
    ]
