from django.utils import timezone
from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from locations.serializers import LocationBasicSerializer
from .models import Trip


class TripSerializer(serializers.ModelSerializer):
    """Serializer for trips"""
    traveler = UserBasicSerializer(read_only=True)
    origin = LocationBasicSerializer(read_only=True)
    destination = LocationBasicSerializer(read_only=True)

    class Meta:
        model = Trip
        fields = ['id', 'traveler', 'origin', 'destination', 'departure_date', 'arrival_date',
                  'return_date', 'airline', 'flight_number', 'space_available', 'bag_types',
                  'number_of_bags', 'price_per_kg', 'acceptable_items', 'restrictions',
                  'additional_notes', 'flexibility_level', 'status', 'is_public', 'views',
                  'created_at', 'updated_at']
        read_only_fields = fields


class TripCreateSerializer(serializers.Serializer):
    """Validates a new trip listing"""
    origin_id = serializers.IntegerField()
    destination_id = serializers.IntegerField()
    departure_date = serializers.DateTimeField()
    arrival_date = serializers.DateTimeField(required=False, allow_null=True)
    return_date = serializers.DateTimeField(required=False, allow_null=True)
    airline = serializers.CharField(required=False, allow_blank=True, max_length=100)
    flight_number = serializers.CharField(required=False, allow_blank=True, max_length=20)
    space_available = serializers.DecimalField(max_digits=6, decimal_places=2, min_value=0.1)
    bag_types = serializers.ListField(
        child=serializers.ChoiceField(choices=[c[0] for c in Trip.BAG_TYPE_CHOICES]),
        allow_empty=False,
    )
    number_of_bags = serializers.IntegerField(required=False, default=1, min_value=1)
    price_per_kg = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, min_value=0)
    acceptable_items = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    restrictions = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    additional_notes = serializers.CharField(required=False, allow_blank=True)
    flexibility_level = serializers.IntegerField(required=False, default=1, min_value=1, max_value=5)

    def validate_departure_date(self, value):
        if value < timezone.now():
            raise serializers.ValidationError("Departure date must be in the future")
        return value

    def validate(self, attrs):
        if attrs['origin_id'] == attrs['destination_id']:
            raise serializers.ValidationError("Origin and destination must differ")
        arrival = attrs.get('arrival_date')
        if arrival and arrival < attrs['departure_date']:
            raise serializers.ValidationError("Arrival date must be after departure date")
        return attrs


class TripUpdateSerializer(serializers.Serializer):
    """Mutable trip fields"""
    arrival_date = serializers.DateTimeField(required=False, allow_null=True)
    return_date = serializers.DateTimeField(required=False, allow_null=True)
    airline = serializers.CharField(required=False, allow_blank=True, max_length=100)
    flight_number = serializers.CharField(required=False, allow_blank=True, max_length=20)
    space_available = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, min_value=0.1)
    number_of_bags = serializers.IntegerField(required=False, min_value=1)
    price_per_kg = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, min_value=0)
    additional_notes = serializers.CharField(required=False, allow_blank=True)
    flexibility_level = serializers.IntegerField(required=False, min_value=1, max_value=5)
    is_public = serializers.BooleanField(required=False)


class TripSearchSerializer(serializers.Serializer):
    origin_id = serializers.IntegerField(required=False)
    destination_id = serializers.IntegerField(required=False)
    departure_from = serializers.DateTimeField(required=False)
    departure_to = serializers.DateTimeField(required=False)
    min_space = serializers.DecimalField(max_digits=6, decimal_places=2, required=False)
    max_price_per_kg = serializers.DecimalField(max_digits=8, decimal_places=2, required=False)
    bag_types = serializers.CharField(required=False, help_text="Comma separated bag types")
    limit = serializers.IntegerField(required=False, default=20, min_value=1, max_value=100)
    offset = serializers.IntegerField(required=False, default=0, min_value=0)
