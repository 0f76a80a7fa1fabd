from django.contrib import admin

from .models import Location


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "city", "country_code", "airport_code", "type", "latitude", "longitude"]
    list_filter = ["type", "country_code"]
    search_fields = ["name", "city", "airport_code"]

    def has_change_permission(self, request, obj=None):
        # Locations are immutable once created
        return obj is None
