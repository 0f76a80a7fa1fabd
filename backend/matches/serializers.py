from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from locations.serializers import LocationBasicSerializer
from .models import Match, MatchRequest


class MatchRequestSerializer(serializers.ModelSerializer):
    """Serializer for match requests"""
    sender = UserBasicSerializer(read_only=True)
    traveler = UserBasicSerializer(read_only=True)
    origin = LocationBasicSerializer(read_only=True, source='trip.origin')
    destination = LocationBasicSerializer(read_only=True, source='trip.destination')
    match_id = serializers.SerializerMethodField()

    class Meta:
        model = MatchRequest
        fields = ['id', 'trip', 'parcel', 'sender', 'traveler', 'proposed_by', 'origin', 'destination',
                  'weight', 'reward', 'category', 'message', 'status', 'payment_status',
                  'escrow_status', 'payment_reference', 'created_at', 'expires_at',
                  'accepted_at', 'declined_at', 'paid_at', 'match_id']
        read_only_fields = fields

    def get_match_id(self, obj):
        match = getattr(obj, 'match', None) if obj.status in ('paid', 'confirmed') else None
        return match.id if match else None


class MatchRequestCreateSerializer(serializers.Serializer):
    trip_id = serializers.IntegerField()
    parcel_id = serializers.IntegerField()
    reward = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)
    message = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class PaymentSerializer(serializers.Serializer):
    payment_reference = serializers.CharField(required=False, allow_blank=True, max_length=120)


class PaymentWebhookSerializer(serializers.Serializer):
    """Provider event: payment_intent.succeeded / payment_intent.payment_failed"""
    EVENT_TYPES = ['payment_intent.succeeded', 'payment_intent.payment_failed']

    type = serializers.ChoiceField(choices=EVENT_TYPES)
    match_request_id = serializers.IntegerField()
    payment_reference = serializers.CharField(max_length=120)


class MatchSerializer(serializers.ModelSerializer):
    """
    Serializer for matches. Hand-off codes are only shown to the sender,
    who passes them on at pickup and delivery.
    """
    sender = UserBasicSerializer(read_only=True)
    traveler = UserBasicSerializer(read_only=True)
    origin = LocationBasicSerializer(read_only=True, source='trip.origin')
    destination = LocationBasicSerializer(read_only=True, source='trip.destination')
    escrow_status = serializers.CharField(source='match_request.escrow_status', read_only=True)
    reward = serializers.DecimalField(source='match_request.reward', max_digits=10, decimal_places=2, read_only=True)
    pickup_code = serializers.SerializerMethodField()
    delivery_code = serializers.SerializerMethodField()

    class Meta:
        model = Match
        fields = ['id', 'match_request', 'trip', 'parcel', 'sender', 'traveler', 'origin', 'destination',
                  'status', 'tracking_step', 'pickup_code', 'delivery_code', 'pickup_address',
                  'delivery_address', 'photos', 'notes', 'reward', 'escrow_status', 'created_at',
                  'picked_up_at', 'in_transit_at', 'delivered_at']
        read_only_fields = fields

    def _is_sender(self, obj) -> bool:
        request = self.context.get('request')
        return bool(request and request.user and request.user.id == obj.sender_id)

    def get_pickup_code(self, obj):
        return obj.pickup_code if self._is_sender(obj) else None

    def get_delivery_code(self, obj):
        return obj.delivery_code if self._is_sender(obj) else None


class TrackingUpdateSerializer(serializers.Serializer):
    tracking_step = serializers.ChoiceField(choices=Match.TRACKING_STEPS)
    code = serializers.CharField(required=False, allow_blank=True, max_length=12)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    photos = serializers.ListField(child=serializers.URLField(), required=False, default=list)
