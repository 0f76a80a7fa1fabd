from rest_framework import serializers

from .models import Location


class LocationSerializer(serializers.ModelSerializer):
    """Full location representation."""

    class Meta:
        model = Location
        fields = [
            "id", "name", "city", "country", "country_code", "airport_code",
            "type", "latitude", "longitude", "timezone",
        ]
        read_only_fields = ["id"]


class LocationBasicSerializer(serializers.ModelSerializer):
    """Compact location embedded in trips and packages."""

    class Meta:
        model = Location
        fields = ["id", "name", "city", "country_code", "airport_code", "latitude", "longitude"]


class NearbyLocationQuerySerializer(serializers.Serializer):
    """
    Validates a proximity query.

    Restricts values to valid Earth coordinate ranges.
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    radius_km = serializers.FloatField(required=False, min_value=0.1, max_value=500)
    limit = serializers.IntegerField(required=False, default=20, min_value=1, max_value=100)


class LocationSearchSerializer(serializers.Serializer):
    city = serializers.CharField(required=False)
    country = serializers.CharField(required=False)
    country_code = serializers.CharField(required=False, max_length=3)
    type = serializers.ChoiceField(choices=[c[0] for c in Location.TYPE_CHOICES], required=False)
    limit = serializers.IntegerField(required=False, default=20, min_value=1, max_value=100)
