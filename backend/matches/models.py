from django.conf import settings
from django.db import models


class MatchRequest(models.Model):
    """
    A proposal to carry one package on one trip.

    pending -> accepted | declined | expired; accepted -> paid -> confirmed.
    Every transition bumps ``version`` so writers can compare-and-swap.
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('declined', 'Declined'),
        ('expired', 'Expired'),
        ('paid', 'Paid'),
        ('confirmed', 'Confirmed'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
    ]

    ESCROW_STATUS_CHOICES = [
        ('held', 'Held'),
        ('released', 'Released'),
        ('refunded', 'Refunded'),
    ]

    PROPOSER_CHOICES = [
        ('sender', 'Sender'),
        ('traveler', 'Traveler'),
    ]

    OPEN_STATUSES = ('pending', 'accepted')

    trip = models.ForeignKey('trips.Trip', on_delete=models.CASCADE, related_name='match_requests')
    parcel = models.ForeignKey('parcels.Package', on_delete=models.CASCADE, related_name='match_requests')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='sent_match_requests'
    )
    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='received_match_requests'
    )
    proposed_by = models.CharField(max_length=10, choices=PROPOSER_CHOICES, default='sender')

    weight = models.DecimalField(max_digits=6, decimal_places=2)
    reward = models.DecimalField(max_digits=10, decimal_places=2)
    category = models.CharField(max_length=20, blank=True, default='')
    message = models.TextField(null=True, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='pending')
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUS_CHOICES, default='pending')
    escrow_status = models.CharField(max_length=10, choices=ESCROW_STATUS_CHOICES, null=True, blank=True)
    payment_reference = models.CharField(max_length=120, null=True, blank=True)
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    accepted_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'match_requests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'expires_at']),
        ]
        constraints = [
            # At most one open request per trip/package pair
            models.UniqueConstraint(
                fields=['trip', 'parcel'],
                condition=models.Q(status__in=['pending', 'accepted']),
                name='unique_open_match_request',
            ),
        ]

    def __str__(self):
        return f"MatchRequest #{self.id} - trip {self.trip_id} / package {self.parcel_id} ({self.status})"

    @property
    def counterpart_role(self) -> str:
        """Role that must answer this request."""
        return 'traveler' if self.proposed_by == 'sender' else 'sender'

    def role_of(self, user):
        if user.id == self.sender_id:
            return 'sender'
        if user.id == self.traveler_id:
            return 'traveler'
        return None


class Match(models.Model):
    """
    A paid match request being delivered.

    confirmed -> in_transit -> delivered, or disputed from any non-final state.
    tracking_step only moves forward: picked_up -> in_transit -> delivered.
    """

    STATUS_CHOICES = [
        ('confirmed', 'Confirmed'),
        ('in_transit', 'In transit'),
        ('delivered', 'Delivered'),
        ('disputed', 'Disputed'),
    ]

    TRACKING_STEPS = ['picked_up', 'in_transit', 'delivered']
    TRACKING_CHOICES = [
        ('picked_up', 'Picked up'),
        ('in_transit', 'In transit'),
        ('delivered', 'Delivered'),
    ]

    match_request = models.OneToOneField(MatchRequest, on_delete=models.PROTECT, related_name='match')
    trip = models.ForeignKey('trips.Trip', on_delete=models.PROTECT, related_name='matches')
    parcel = models.ForeignKey('parcels.Package', on_delete=models.PROTECT, related_name='matches')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='sender_matches'
    )
    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='traveler_matches'
    )

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='confirmed')
    tracking_step = models.CharField(max_length=12, choices=TRACKING_CHOICES, null=True, blank=True)

    # Hand-off codes, generated once at payment time
    pickup_code = models.CharField(max_length=12)
    delivery_code = models.CharField(max_length=12)

    pickup_address = models.TextField(blank=True, default='')
    delivery_address = models.TextField(blank=True, default='')
    photos = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'matches'
        ordering = ['-created_at']
        verbose_name_plural = 'matches'

    def __str__(self):
        return f"Match #{self.id} - request {self.match_request_id} ({self.status})"

    @property
    def tracking_index(self) -> int:
        """-1 before pickup, otherwise the position in TRACKING_STEPS."""
        if not self.tracking_step:
            return -1
        return self.TRACKING_STEPS.index(self.tracking_step)

    def role_of(self, user):
        if user.id == self.sender_id:
            return 'sender'
        if user.id == self.traveler_id:
            return 'traveler'
        return None
