from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with marketplace role"""
    ROLE_CHOICES = [
        ('sender', 'Sender'),
        ('traveler', 'Traveler'),
        ('both', 'Sender & Traveler'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='both')
    phone_number = models.CharField(max_length=20, blank=True)
    rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    completed_deliveries = models.IntegerField(default=0)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def can_travel(self):
        return self.role in ('traveler', 'both')

    @property
    def can_send(self):
        return self.role in ('sender', 'both')
