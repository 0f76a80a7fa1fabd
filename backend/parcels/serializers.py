from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from locations.serializers import LocationBasicSerializer
from .models import Package


class PackageSerializer(serializers.ModelSerializer):
    """Serializer for packages"""
    sender = UserBasicSerializer(read_only=True)
    origin = LocationBasicSerializer(read_only=True)
    destination = LocationBasicSerializer(read_only=True)

    class Meta:
        model = Package
        fields = ['id', 'sender', 'origin', 'destination', 'description', 'weight', 'dimensions',
                  'declared_value', 'category', 'fragile', 'urgent', 'pickup_address',
                  'delivery_address', 'pickup_window_start', 'pickup_window_end',
                  'delivery_window_start', 'delivery_window_end', 'receiver_name',
                  'receiver_phone', 'receiver_email', 'max_reward', 'estimated_reward',
                  'traditional_cost', 'savings', 'status', 'expires_at', 'views',
                  'created_at', 'updated_at']
        read_only_fields = fields


class DimensionsSerializer(serializers.Serializer):
    length = serializers.FloatField(min_value=0)
    width = serializers.FloatField(min_value=0)
    height = serializers.FloatField(min_value=0)


class PackageCreateSerializer(serializers.Serializer):
    """Validates a new package"""
    origin_id = serializers.IntegerField()
    destination_id = serializers.IntegerField()
    description = serializers.CharField(max_length=2000)
    weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0.01)
    dimensions = DimensionsSerializer(required=False, allow_null=True)
    declared_value = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    category = serializers.ChoiceField(choices=[c[0] for c in Package.CATEGORY_CHOICES])
    fragile = serializers.BooleanField(required=False, default=False)
    urgent = serializers.BooleanField(required=False, default=False)
    pickup_address = serializers.CharField()
    delivery_address = serializers.CharField()
    pickup_window_start = serializers.DateTimeField()
    pickup_window_end = serializers.DateTimeField()
    delivery_window_start = serializers.DateTimeField(required=False, allow_null=True)
    delivery_window_end = serializers.DateTimeField(required=False, allow_null=True)
    receiver_name = serializers.CharField(max_length=150)
    receiver_phone = serializers.CharField(max_length=20)
    receiver_email = serializers.EmailField(required=False, allow_null=True)
    max_reward = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)

    def validate(self, attrs):
        if attrs['origin_id'] == attrs['destination_id']:
            raise serializers.ValidationError("Origin and destination must differ")
        if attrs['pickup_window_end'] < attrs['pickup_window_start']:
            raise serializers.ValidationError("Pickup window end must be after its start")
        return attrs


class PackageUpdateSerializer(serializers.Serializer):
    """Mutable package fields"""
    description = serializers.CharField(required=False, max_length=2000)
    weight = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, min_value=0.01)
    fragile = serializers.BooleanField(required=False)
    urgent = serializers.BooleanField(required=False)
    pickup_address = serializers.CharField(required=False)
    delivery_address = serializers.CharField(required=False)
    receiver_name = serializers.CharField(required=False, max_length=150)
    receiver_phone = serializers.CharField(required=False, max_length=20)
    receiver_email = serializers.EmailField(required=False, allow_null=True)
    max_reward = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)


class PackageSearchSerializer(serializers.Serializer):
    origin_id = serializers.IntegerField(required=False)
    destination_id = serializers.IntegerField(required=False)
    category = serializers.ChoiceField(choices=[c[0] for c in Package.CATEGORY_CHOICES], required=False)
    max_weight = serializers.DecimalField(max_digits=6, decimal_places=2, required=False)
    min_reward = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    urgent = serializers.ChoiceField(choices=['true', 'false'], required=False)
    limit = serializers.IntegerField(required=False, default=20, min_value=1, max_value=100)
    offset = serializers.IntegerField(required=False, default=0, min_value=0)


class PackageQuoteSerializer(serializers.Serializer):
    weight = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0.01)
    origin_id = serializers.IntegerField()
    destination_id = serializers.IntegerField()
