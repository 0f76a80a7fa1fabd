from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models


class Location(models.Model):
    """Airport, city or address that trips and packages travel between. Immutable once created."""

    TYPE_CHOICES = [
        ('AIRPORT', 'Airport'),
        ('CITY', 'City'),
        ('ADDRESS', 'Address'),
    ]

    name = models.CharField(max_length=200)
    city = models.CharField(max_length=120)
    country = models.CharField(max_length=120)
    country_code = models.CharField(max_length=3)
    airport_code = models.CharField(max_length=4, null=True, blank=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='CITY')

    latitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
    )
    longitude = models.DecimalField(
        max_digits=9,
        decimal_places=6,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
    )
    timezone = models.CharField(max_length=64, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'locations'
        ordering = ['name']
        indexes = [
            models.Index(fields=['latitude', 'longitude']),
            models.Index(fields=['airport_code']),
        ]

    def __str__(self):
        if self.airport_code:
            return f"{self.name} ({self.airport_code})"
        return f"{self.name}, {self.country_code}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Locations are immutable once created")
        if not -90 <= float(self.latitude) <= 90:
            raise ValidationError({"latitude": "Latitude must be between -90 and 90."})
        if not -180 <= float(self.longitude) <= 180:
            raise ValidationError({"longitude": "Longitude must be between -180 and 180."})
        super().save(*args, **kwargs)
