"""Django admin for match requests and matches"""

from django.contrib import admin
from .models import MatchRequest, Match


@admin.register(MatchRequest)
class MatchRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'trip', 'parcel', 'sender', 'traveler', 'proposed_by', 'status',
                    'payment_status', 'escrow_status', 'expires_at']
    list_filter = ['status', 'payment_status', 'escrow_status']
    search_fields = ['sender__username', 'traveler__username', 'payment_reference']
    readonly_fields = ['version', 'created_at', 'accepted_at', 'declined_at', 'paid_at']
    date_hierarchy = 'created_at'


@admin.register(Match)
class MatchAdmin(admin.ModelAdmin):
    list_display = ('id', 'match_request', 'sender', 'traveler', 'status', 'tracking_step', 'delivered_at')
    list_filter = ('status', 'tracking_step')
    search_fields = ('sender__username', 'traveler__username')
    readonly_fields = ('pickup_code', 'delivery_code', 'picked_up_at', 'in_transit_at', 'delivered_at')
