from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from .models import Dispute, DisputeTimelineEntry


class DisputeTimelineEntrySerializer(serializers.ModelSerializer):
    actor = UserBasicSerializer(read_only=True)

    class Meta:
        model = DisputeTimelineEntry
        fields = ['sequence', 'timestamp', 'actor', 'actor_role', 'type', 'message', 'payload',
                  'from_status', 'to_status']
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    """Dispute with its full timeline, oldest entry first"""
    sender = UserBasicSerializer(read_only=True)
    traveler = UserBasicSerializer(read_only=True)
    opened_by = UserBasicSerializer(read_only=True)
    timeline = serializers.SerializerMethodField()

    class Meta:
        model = Dispute
        fields = ['id', 'match', 'sender', 'traveler', 'opened_by', 'status', 'reason', 'description',
                  'preferred_outcome', 'evidence', 'escrow_outcome', 'first_reply_due',
                  'resolution_due', 'first_replied_at', 'first_reply_breached',
                  'resolution_breached', 'created_at', 'resolved_at', 'timeline']
        read_only_fields = fields

    def get_timeline(self, obj):
        entries = obj.timeline.select_related('actor').order_by('sequence')
        return DisputeTimelineEntrySerializer(entries, many=True).data


class DisputeCreateSerializer(serializers.Serializer):
    match_id = serializers.IntegerField()
    reason = serializers.ChoiceField(choices=[c[0] for c in Dispute.REASON_CHOICES])
    description = serializers.CharField(max_length=5000)
    preferred_outcome = serializers.ChoiceField(
        choices=[c[0] for c in Dispute.OUTCOME_CHOICES], required=False, default='refund'
    )
    evidence = serializers.ListField(child=serializers.URLField(), required=False, default=list)


class TimelineEntryCreateSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=['comment', 'evidence', 'status_change'], required=False, default='comment')
    message = serializers.CharField(required=False, allow_blank=True, max_length=5000)
    payload = serializers.JSONField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=[c[0] for c in Dispute.STATUS_CHOICES], required=False)


class OfferSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=5000)
    offer = serializers.JSONField()


class ResolveSerializer(serializers.Serializer):
    escrow_outcome = serializers.ChoiceField(choices=['refunded', 'released'])
    message = serializers.CharField(required=False, allow_blank=True, max_length=5000)
