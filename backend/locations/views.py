from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from .serializers import (
    LocationSerializer,
    LocationSearchSerializer,
    NearbyLocationQuerySerializer,
)
from .services import get_location_index


class LocationListView(APIView):
    """
    GET:  Search locations by city/country/type.
    POST: Register a new location (geocoding data source).
    """

    def get(self, request):
        query = LocationSearchSerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        locations = get_location_index().search(
            city=params.get("city"),
            country=params.get("country"),
            country_code=params.get("country_code"),
            location_type=params.get("type"),
            limit=params["limit"],
        )
        return Response({
            "count": len(locations),
            "locations": LocationSerializer(locations, many=True).data,
        })

    def post(self, request):
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        location = serializer.save()
        return Response(LocationSerializer(location).data, status=status.HTTP_201_CREATED)


class LocationDetailView(APIView):
    def get(self, request, location_id: int):
        location = get_location_index().get_location(location_id)
        return Response(LocationSerializer(location).data)


class NearbyLocationsView(APIView):
    """
    GET: Locations around a point, closest first.
    """

    def get(self, request):
        query = NearbyLocationQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data

        nearby = get_location_index().find_nearby(
            params["latitude"],
            params["longitude"],
            radius_km=params.get("radius_km"),
            limit=params["limit"],
        )
        return Response({
            "count": len(nearby),
            "locations": [
                {**LocationSerializer(item.location).data, "distance_km": round(item.distance_km, 2)}
                for item in nearby
            ],
        })


class AirportListView(APIView):
    def get(self, request):
        airports = get_location_index().airports()
        return Response(LocationSerializer(airports, many=True).data)


class PopularRoutesView(APIView):
    def get(self, request):
        limit = int(request.query_params.get("limit", 10))
        return Response({"routes": get_location_index().popular_routes(limit)})


class RouteStatsView(APIView):
    def get(self, request, origin_id: int, destination_id: int):
        index = get_location_index()
        index.find_exact(origin_id, destination_id)
        return Response(index.route_stats(origin_id, destination_id))
