from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from services.disputes import (
    add_dispute_timeline_entry,
    get_dispute,
    list_user_disputes,
    make_offer,
    resolve_dispute,
)
from services.match_management import report_issue
from .serializers import (
    DisputeCreateSerializer,
    DisputeSerializer,
    DisputeTimelineEntrySerializer,
    OfferSerializer,
    ResolveSerializer,
    TimelineEntryCreateSerializer,
)


@api_view(['GET', 'POST'])
def dispute_list(request):
    """
    GET:  Disputes the current user is part of (all of them for support staff).
    POST: Report an issue on a match, opening a dispute.
    """
    if request.method == 'POST':
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        dispute = report_issue(
            request.user,
            data['match_id'],
            data['reason'],
            data['description'],
            preferred_outcome=data['preferred_outcome'],
            evidence=data['evidence'],
        )
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)

    disputes = list_user_disputes(request.user)
    return Response(DisputeSerializer(disputes, many=True).data)


@api_view(['GET'])
def dispute_detail(request, dispute_id):
    dispute = get_dispute(request.user, dispute_id)
    return Response(DisputeSerializer(dispute).data)


@api_view(['POST'])
def dispute_timeline(request, dispute_id):
    """Append a comment, evidence or (validated) status change."""
    serializer = TimelineEntryCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    entry = add_dispute_timeline_entry(
        dispute_id,
        request.user,
        message=data.get('message', ''),
        entry_type=data['type'],
        payload=data.get('payload'),
        status=data.get('status'),
    )
    return Response(DisputeTimelineEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
def dispute_offer(request, dispute_id):
    """Support proposes a settlement."""
    serializer = OfferSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    entry = make_offer(
        dispute_id,
        request.user,
        serializer.validated_data['message'],
        serializer.validated_data['offer'],
    )
    return Response(DisputeTimelineEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
def dispute_resolve(request, dispute_id):
    serializer = ResolveSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    dispute = resolve_dispute(
        dispute_id,
        request.user,
        serializer.validated_data['escrow_outcome'],
        serializer.validated_data.get('message', ''),
    )
    return Response(DisputeSerializer(dispute).data)
