from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class Dispute(models.Model):
    """An issue raised on a match, worked through by support against SLA deadlines."""

    STATUS_CHOICES = [
        ('open', 'Open'),
        ('waiting', 'Waiting on participant'),
        ('review', 'In review'),
        ('offer', 'Offer made'),
        ('resolved', 'Resolved'),
        ('escalated', 'Escalated'),
        ('closed', 'Closed'),
    ]

    REASON_CHOICES = [
        ('lost', 'Lost'),
        ('damaged', 'Damaged'),
        ('late', 'Late'),
        ('payment', 'Payment'),
        ('other', 'Other'),
    ]

    OUTCOME_CHOICES = [
        ('refund', 'Refund'),
        ('partial', 'Partial refund'),
        ('replacement', 'Replacement'),
        ('other', 'Other'),
    ]

    ACTIVE_STATUSES = ('open', 'waiting', 'review', 'offer', 'escalated')

    match = models.ForeignKey('matches.Match', on_delete=models.PROTECT, related_name='disputes')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='sender_disputes'
    )
    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='traveler_disputes'
    )
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='opened_disputes'
    )

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='open')
    reason = models.CharField(max_length=10, choices=REASON_CHOICES)
    description = models.TextField()
    preferred_outcome = models.CharField(max_length=12, choices=OUTCOME_CHOICES, default='refund')
    evidence = models.JSONField(default=list, blank=True)
    escrow_outcome = models.CharField(max_length=10, null=True, blank=True)

    # SLA tracking
    first_reply_due = models.DateTimeField()
    resolution_due = models.DateTimeField()
    first_replied_at = models.DateTimeField(null=True, blank=True)
    first_reply_breached = models.BooleanField(default=False)
    resolution_breached = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'disputes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'first_reply_due']),
            models.Index(fields=['status', 'resolution_due']),
        ]

    def __str__(self):
        return f"Dispute #{self.id} - match {self.match_id} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES


class DisputeTimelineEntry(models.Model):
    """Append-only event on a dispute. Rows are never updated or deleted."""

    ACTOR_ROLE_CHOICES = [
        ('sender', 'Sender'),
        ('traveler', 'Traveler'),
        ('support', 'Support'),
        ('system', 'System'),
    ]

    TYPE_CHOICES = [
        ('opened', 'Opened'),
        ('comment', 'Comment'),
        ('evidence', 'Evidence'),
        ('status_change', 'Status change'),
        ('offer', 'Offer'),
        ('sla_breach', 'SLA breach'),
    ]

    dispute = models.ForeignKey(Dispute, on_delete=models.CASCADE, related_name='timeline')
    sequence = models.PositiveIntegerField()
    timestamp = models.DateTimeField()
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='dispute_entries'
    )
    actor_role = models.CharField(max_length=10, choices=ACTOR_ROLE_CHOICES)
    type = models.CharField(max_length=15, choices=TYPE_CHOICES)
    message = models.TextField(blank=True, default='')
    payload = models.JSONField(null=True, blank=True)
    from_status = models.CharField(max_length=10, null=True, blank=True)
    to_status = models.CharField(max_length=10, null=True, blank=True)

    class Meta:
        db_table = 'dispute_timeline_entries'
        ordering = ['dispute', 'sequence']
        constraints = [
            models.UniqueConstraint(fields=['dispute', 'sequence'], name='unique_dispute_sequence'),
        ]

    def __str__(self):
        return f"Dispute {self.dispute_id} #{self.sequence} {self.type} by {self.actor_role}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Dispute timeline entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Dispute timeline entries are append-only")
