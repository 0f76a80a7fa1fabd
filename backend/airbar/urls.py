from django.contrib import admin
from django.urls import path, include

from matches.urls import request_urlpatterns as match_request_urlpatterns
from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint
    path('api/auth/', include('accounts.urls')),

    # Marketplace listings
    path('api/locations/', include('locations.urls')),
    path('api/trips/', include('trips.urls')),
    path('api/parcels/', include('parcels.urls')),

    # Matching, payment and delivery
    path('api/match-requests/', include((match_request_urlpatterns, 'match_requests'))),
    path('api/matches/', include('matches.urls')),
    path('api/disputes/', include('disputes.urls')),
]
