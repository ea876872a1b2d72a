# Generated manually

import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


STATUS_CHOICES = [('ACTIVE', 'Active'), ('CLOSED', 'Closed'), ('SENT', 'Sent'), ('ARCHIVED', 'Archived')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Campaign',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('slug', models.SlugField(max_length=255, unique=True)),
                ('name', models.CharField(max_length=200)),
                ('description', models.TextField(blank=True)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='ACTIVE', max_length=20)),
                ('deadline', models.DateTimeField(blank=True, null=True)),
                ('shipping_cost', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('pix_key', models.CharField(blank=True, max_length=200, null=True)),
                ('pix_type', models.CharField(blank=True, choices=[('CPF', 'CPF'), ('CNPJ', 'CNPJ'), ('EMAIL', 'Email'), ('PHONE', 'Phone'), ('RANDOM', 'Random Key')], max_length=10, null=True)),
                ('pix_name', models.CharField(blank=True, max_length=200, null=True)),
                ('pix_visible_at_status', models.CharField(choices=STATUS_CHOICES, default='ACTIVE', max_length=20)),
                ('pickup_zip_code', models.CharField(blank=True, max_length=9, null=True)),
                ('pickup_address', models.CharField(blank=True, max_length=255, null=True)),
                ('pickup_address_number', models.CharField(blank=True, max_length=20, null=True)),
                ('pickup_complement', models.CharField(blank=True, max_length=100, null=True)),
                ('pickup_neighborhood', models.CharField(blank=True, max_length=100, null=True)),
                ('pickup_city', models.CharField(blank=True, max_length=100, null=True)),
                ('pickup_state', models.CharField(blank=True, max_length=2, null=True)),
                ('pickup_latitude', models.FloatField(blank=True, null=True)),
                ('pickup_longitude', models.FloatField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('creator', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='campaigns', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'campaigns',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_campaign_status'),
                    models.Index(fields=['creator', 'status'], name='idx_campaign_creator_status'),
                    models.Index(fields=['status', 'deadline'], name='idx_campaign_status_deadline'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('price', models.DecimalField(decimal_places=2, max_digits=10)),
                ('weight', models.DecimalField(decimal_places=3, default=Decimal('0.000'), help_text='Weight in grams, used to split shipping', max_digits=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('campaign', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='products', to='campaigns.campaign')),
            ],
            options={
                'db_table': 'campaign_products',
                'ordering': ['created_at', 'id'],
            },
        ),
    ]
