from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class Trip(models.Model):
    """A traveler's flight with spare luggage capacity. Never deleted, only status-transitioned."""

    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('CANCELLED', 'Cancelled'),
        ('COMPLETED', 'Completed'),
    ]

    BAG_TYPE_CHOICES = [
        ('CARRY_ON', 'Carry-on'),
        ('CHECKED', 'Checked'),
        ('PERSONAL_ITEM', 'Personal item'),
        ('BACKPACK', 'Backpack'),
        ('SUITCASE', 'Suitcase'),
    ]

    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='trips'
    )

    # Route
    origin = models.ForeignKey('locations.Location', on_delete=models.PROTECT, related_name='departing_trips')
    destination = models.ForeignKey('locations.Location', on_delete=models.PROTECT, related_name='arriving_trips')

    # Schedule
    departure_date = models.DateTimeField()
    arrival_date = models.DateTimeField(null=True, blank=True)
    return_date = models.DateTimeField(null=True, blank=True)
    airline = models.CharField(max_length=100, null=True, blank=True)
    flight_number = models.CharField(max_length=20, null=True, blank=True)

    # Capacity (kg)
    space_available = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(0)],
    )
    bag_types = models.JSONField(default=list, blank=True)
    number_of_bags = models.PositiveIntegerField(default=1)

    # Terms
    price_per_kg = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    acceptable_items = models.JSONField(default=list, blank=True)
    restrictions = models.JSONField(default=list, blank=True)
    additional_notes = models.TextField(null=True, blank=True)
    flexibility_level = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
    )

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='ACTIVE')
    is_public = models.BooleanField(default=True)
    views = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'trips'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['origin', 'destination', 'status']),
            models.Index(fields=['departure_date']),
        ]

    def __str__(self):
        return f"Trip #{self.id} - {self.origin_id} -> {self.destination_id} ({self.status})"
