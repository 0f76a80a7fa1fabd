from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from common.serializers import serialize_candidates
from parcels.serializers import PackageSerializer
from services.matching import find_matching_packages
from . import services
from .serializers import TripCreateSerializer, TripSearchSerializer, TripSerializer, TripUpdateSerializer


@api_view(['GET', 'POST'])
def trip_list(request):
    """
    GET:  Search public trips (filters + pagination).
    POST: List a new trip for the current user.
    """
    if request.method == 'POST':
        serializer = TripCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        trip = services.create_trip(
            request.user,
            data.pop('origin_id'),
            data.pop('destination_id'),
            **data,
        )
        return Response(TripSerializer(trip).data, status=status.HTTP_201_CREATED)

    query = TripSearchSerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    params = query.validated_data

    bag_types = params.get('bag_types')
    result = services.search_trips(
        origin_id=params.get('origin_id'),
        destination_id=params.get('destination_id'),
        departure_from=params.get('departure_from'),
        departure_to=params.get('departure_to'),
        min_space=params.get('min_space'),
        max_price_per_kg=params.get('max_price_per_kg'),
        bag_types=[b.strip() for b in bag_types.split(',') if b.strip()] if bag_types else None,
        limit=params['limit'],
        offset=params['offset'],
    )
    return Response({
        'trips': TripSerializer(result.trips, many=True).data,
        'total': result.total,
        'has_more': result.has_more,
    })


@api_view(['GET'])
def my_trips(request):
    """Trips listed by the current user, soonest departure first."""
    trips = services.get_user_trips(request.user, status=request.query_params.get('status'))
    return Response(TripSerializer(trips, many=True).data)


@api_view(['GET', 'PATCH'])
def trip_detail(request, trip_id):
    if request.method == 'PATCH':
        serializer = TripUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        trip = services.update_trip(request.user, trip_id, **serializer.validated_data)
        return Response(TripSerializer(trip).data)

    trip = services.get_trip(trip_id, count_view=True)
    return Response(TripSerializer(trip).data)


@api_view(['POST'])
def cancel_trip(request, trip_id):
    trip = services.cancel_trip(request.user, trip_id)
    return Response({'message': 'Trip cancelled successfully', 'trip': TripSerializer(trip).data})


@api_view(['POST'])
def complete_trip(request, trip_id):
    trip = services.complete_trip(request.user, trip_id)
    return Response({'message': 'Trip marked as completed', 'trip': TripSerializer(trip).data})


@api_view(['GET'])
def trip_matches(request, trip_id):
    """Pending packages this trip could carry: exact route first, then nearby."""
    candidates = find_matching_packages(trip_id)
    return Response({
        'count': len(candidates),
        'matches': serialize_candidates(candidates, PackageSerializer, 'package'),
    })
