from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from common.serializers import serialize_candidates
from services.matching import find_matching_trips
from trips.serializers import TripSerializer
from . import services
from .serializers import (
    PackageCreateSerializer,
    PackageQuoteSerializer,
    PackageSearchSerializer,
    PackageSerializer,
    PackageUpdateSerializer,
)


@api_view(['GET', 'POST'])
def package_list(request):
    """
    GET:  Search pending packages (filters + pagination).
    POST: Post a new package for the current user.
    """
    if request.method == 'POST':
        serializer = PackageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        if data.get('dimensions') is not None:
            data['dimensions'] = dict(data['dimensions'])
        package = services.create_package(
            request.user,
            data.pop('origin_id'),
            data.pop('destination_id'),
            data.pop('weight'),
            data.pop('max_reward'),
            **data,
        )
        return Response(PackageSerializer(package).data, status=status.HTTP_201_CREATED)

    query = PackageSearchSerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    params = query.validated_data

    urgent = params.get('urgent')
    result = services.search_packages(
        origin_id=params.get('origin_id'),
        destination_id=params.get('destination_id'),
        category=params.get('category'),
        max_weight=params.get('max_weight'),
        min_reward=params.get('min_reward'),
        urgent=None if urgent is None else urgent == 'true',
        limit=params['limit'],
        offset=params['offset'],
    )
    return Response({
        'packages': PackageSerializer(result.packages, many=True).data,
        'total': result.total,
        'has_more': result.has_more,
    })


@api_view(['GET'])
def my_packages(request):
    packages = services.get_user_packages(request.user, status=request.query_params.get('status'))
    return Response(PackageSerializer(packages, many=True).data)


@api_view(['GET', 'PATCH'])
def package_detail(request, package_id):
    if request.method == 'PATCH':
        serializer = PackageUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        package = services.update_package(request.user, package_id, **serializer.validated_data)
        return Response(PackageSerializer(package).data)

    package = services.get_package(package_id, count_view=True)
    return Response(PackageSerializer(package).data)


@api_view(['POST'])
def cancel_package(request, package_id):
    package = services.cancel_package(request.user, package_id)
    return Response({'message': 'Package cancelled successfully', 'package': PackageSerializer(package).data})


@api_view(['GET'])
def package_matches(request, package_id):
    """Upcoming trips with room for this package: exact route first, then nearby."""
    candidates = find_matching_trips(package_id)
    return Response({
        'count': len(candidates),
        'matches': serialize_candidates(candidates, TripSerializer, 'trip'),
    })


@api_view(['GET'])
def package_quote(request):
    """Estimate reward, courier comparison and delivery days for a route."""
    query = PackageQuoteSerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    params = query.validated_data

    quote = services.get_package_quote(params['weight'], params['origin_id'], params['destination_id'])
    return Response({
        'estimated_reward': quote.estimated_reward,
        'traditional_cost': quote.traditional_cost,
        'savings': quote.savings,
        'estimated_days': quote.estimated_days,
    })
