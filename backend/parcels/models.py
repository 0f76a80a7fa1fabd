from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Package(models.Model):
    """A sender's item waiting for a traveler on the same (or a nearby) route."""

    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('MATCHED', 'Matched'),
        ('CANCELLED', 'Cancelled'),
        ('EXPIRED', 'Expired'),
    ]

    CATEGORY_CHOICES = [
        ('DOCUMENTS', 'Documents'),
        ('ELECTRONICS', 'Electronics'),
        ('CLOTHING', 'Clothing'),
        ('GIFTS', 'Gifts'),
        ('FOOD', 'Food'),
        ('MEDICINE', 'Medicine'),
        ('BOOKS', 'Books'),
        ('PERSONAL_ITEMS', 'Personal items'),
        ('BUSINESS_ITEMS', 'Business items'),
        ('OTHER', 'Other'),
    ]

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='packages'
    )

    # Route
    origin = models.ForeignKey('locations.Location', on_delete=models.PROTECT, related_name='departing_packages')
    destination = models.ForeignKey('locations.Location', on_delete=models.PROTECT, related_name='arriving_packages')

    # Contents
    description = models.TextField()
    weight = models.DecimalField(max_digits=6, decimal_places=2, validators=[MinValueValidator(0)])
    dimensions = models.JSONField(null=True, blank=True)
    declared_value = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='OTHER')
    fragile = models.BooleanField(default=False)
    urgent = models.BooleanField(default=False)

    # Hand-off details
    pickup_address = models.TextField()
    delivery_address = models.TextField()
    pickup_window_start = models.DateTimeField()
    pickup_window_end = models.DateTimeField()
    delivery_window_start = models.DateTimeField(null=True, blank=True)
    delivery_window_end = models.DateTimeField(null=True, blank=True)
    receiver_name = models.CharField(max_length=150)
    receiver_phone = models.CharField(max_length=20)
    receiver_email = models.EmailField(null=True, blank=True)

    # Pricing
    max_reward = models.DecimalField(max_digits=10, decimal_places=2)
    estimated_reward = models.DecimalField(max_digits=10, decimal_places=2)
    traditional_cost = models.DecimalField(max_digits=10, decimal_places=2)
    savings = models.PositiveSmallIntegerField(default=0)  # percent

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='PENDING')
    expires_at = models.DateTimeField()
    views = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'packages'
        ordering = ['-urgent', '-created_at']
        indexes = [
            models.Index(fields=['origin', 'destination', 'status']),
            models.Index(fields=['expires_at']),
        ]

    def __str__(self):
        return f"Package #{self.id} - {self.weight}kg {self.origin_id} -> {self.destination_id} ({self.status})"
