import hmac
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from services.match_management import (
    accept_match_request,
    confirm_payment_from_webhook,
    create_match_request,
    decline_match_request,
    get_match,
    get_match_request,
    list_user_match_requests,
    list_user_matches,
    pay_match_request,
    record_payment_failure,
    update_match_tracking,
)
from .serializers import (
    MatchRequestCreateSerializer,
    MatchRequestSerializer,
    MatchSerializer,
    PaymentSerializer,
    PaymentWebhookSerializer,
    TrackingUpdateSerializer,
)

logger = logging.getLogger(__name__)


# ==================== Match Request APIs ====================

@api_view(['GET', 'POST'])
def match_request_list(request):
    """
    GET:  Requests the current user sends or receives (?role=sender|traveler, ?status=).
    POST: Propose a trip/package match.
    """
    if request.method == 'POST':
        serializer = MatchRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        match_request = create_match_request(
            request.user,
            data['trip_id'],
            data['parcel_id'],
            reward=data.get('reward'),
            message=data.get('message', ''),
        )
        return Response(MatchRequestSerializer(match_request).data, status=status.HTTP_201_CREATED)

    requests = list_user_match_requests(
        request.user,
        role=request.query_params.get('role'),
        status=request.query_params.get('status'),
    )
    return Response(MatchRequestSerializer(requests, many=True).data)


@api_view(['GET'])
def match_request_detail(request, request_id):
    match_request = get_match_request(request.user, request_id)
    return Response(MatchRequestSerializer(match_request).data)


@api_view(['POST'])
def accept_request(request, request_id):
    match_request = accept_match_request(request.user, request_id)
    return Response({
        'message': 'Match request accepted. Waiting for payment.',
        'match_request': MatchRequestSerializer(match_request).data,
    })


@api_view(['POST'])
def decline_request(request, request_id):
    match_request = decline_match_request(request.user, request_id)
    return Response({
        'message': 'Match request declined.',
        'match_request': MatchRequestSerializer(match_request).data,
    })


@api_view(['POST'])
def pay_request(request, request_id):
    """Sender pays; the reward is held in escrow and the match is created."""
    serializer = PaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    result = pay_match_request(
        request.user,
        request_id,
        payment_reference=serializer.validated_data.get('payment_reference') or None,
    )
    return Response(
        {
            'message': result.message,
            'match_request': MatchRequestSerializer(result.match_request).data,
            'match': MatchSerializer(result.match, context={'request': request}).data,
        },
        status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
    )


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def payment_webhook(request):
    """
    Payment provider callback. Authenticated with a shared secret in the
    X-Webhook-Secret header when PAYMENT_WEBHOOK_SECRET is configured.
    """
    secret = getattr(settings, 'PAYMENT_WEBHOOK_SECRET', '')
    if secret:
        supplied = request.headers.get('X-Webhook-Secret', '')
        if not hmac.compare_digest(secret.encode(), supplied.encode()):
            return Response({'success': False, 'error': 'invalid_signature'}, status=status.HTTP_403_FORBIDDEN)

    serializer = PaymentWebhookSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    event = serializer.validated_data

    if event['type'] == 'payment_intent.succeeded':
        result = confirm_payment_from_webhook(event['match_request_id'], event['payment_reference'])
        logger.info(
            "Webhook payment succeeded for match request %s (new match: %s)",
            result.match_request.id, result.created,
        )
        return Response({'received': True, 'match_id': result.match.id})

    record_payment_failure(event['match_request_id'], event['payment_reference'])
    logger.info("Webhook payment failed for match request %s", event['match_request_id'])
    return Response({'received': True})


# ==================== Match APIs ====================

@api_view(['GET'])
def match_list(request):
    matches = list_user_matches(request.user, status=request.query_params.get('status'))
    return Response(MatchSerializer(matches, many=True, context={'request': request}).data)


@api_view(['GET'])
def match_detail(request, match_id):
    match = get_match(request.user, match_id)
    return Response(MatchSerializer(match, context={'request': request}).data)


@api_view(['PATCH'])
def match_tracking(request, match_id):
    """Advance tracking one step: picked_up -> in_transit -> delivered."""
    serializer = TrackingUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = dict(serializer.validated_data)

    match = update_match_tracking(request.user, match_id, data.pop('tracking_step'), data)
    return Response({
        'message': f"Tracking updated to {match.tracking_step}",
        'match': MatchSerializer(match, context={'request': request}).data,
    })
