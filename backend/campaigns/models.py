from django.db import models
from decimal import Decimal
from backend.core.models import User


class Campaign(models.Model):
    """Group-buying campaign: products, a deadline and a shared shipping cost"""
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_CLOSED = 'CLOSED'
    STATUS_SENT = 'SENT'
    STATUS_ARCHIVED = 'ARCHIVED'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_CLOSED, 'Closed'),
        (STATUS_SENT, 'Sent'),
        (STATUS_ARCHIVED, 'Archived'),
    ]

    PIX_TYPE_CHOICES = [
        ('CPF', 'CPF'),
        ('CNPJ', 'CNPJ'),
        ('EMAIL', 'Email'),
        ('PHONE', 'Phone'),
        ('RANDOM', 'Random Key'),
    ]

    slug = models.SlugField(max_length=255, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    deadline = models.DateTimeField(null=True, blank=True)
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    creator = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='campaigns')
    # Payment instructions
    pix_key = models.CharField(max_length=200, blank=True, null=True)
    pix_type = models.CharField(max_length=10, choices=PIX_TYPE_CHOICES, blank=True, null=True)
    pix_name = models.CharField(max_length=200, blank=True, null=True)
    pix_visible_at_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    # Pickup address
    pickup_zip_code = models.CharField(max_length=9, blank=True, null=True)
    pickup_address = models.CharField(max_length=255, blank=True, null=True)
    pickup_address_number = models.CharField(max_length=20, blank=True, null=True)
    pickup_complement = models.CharField(max_length=100, blank=True, null=True)
    pickup_neighborhood = models.CharField(max_length=100, blank=True, null=True)
    pickup_city = models.CharField(max_length=100, blank=True, null=True)
    pickup_state = models.CharField(max_length=2, blank=True, null=True)
    pickup_latitude = models.FloatField(null=True, blank=True)
    pickup_longitude = models.FloatField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE

    def is_owned_by(self, user):
        """Creator or platform admin"""
        if not user or not user.is_authenticated:
            return False
        return user.is_platform_admin or self.creator_id == user.id

    class Meta:
        db_table = 'campaigns'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_campaign_status'),
            models.Index(fields=['creator', 'status'], name='idx_campaign_creator_status'),
            models.Index(fields=['status', 'deadline'], name='idx_campaign_status_deadline'),
        ]


class Product(models.Model):
    """Product offered in a campaign"""
    campaign = models.ForeignKey(Campaign, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    weight = models.DecimalField(max_digits=10, decimal_places=3, default=Decimal('0.000'), help_text='Weight in grams, used to split shipping')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'campaign_products'
        ordering = ['created_at', 'id']
