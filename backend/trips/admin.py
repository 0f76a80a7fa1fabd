from django.contrib import admin
from .models import Trip


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    list_display = ['id', 'traveler', 'origin', 'destination', 'departure_date', 'space_available', 'status', 'views']
    list_filter = ['status', 'departure_date']
    search_fields = ['traveler__username', 'airline', 'flight_number']
    readonly_fields = ['views', 'created_at', 'updated_at']
    date_hierarchy = 'departure_date'
