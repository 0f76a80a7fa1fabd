from django.urls import path

from . import views

app_name = "locations"

urlpatterns = [
    path("", views.LocationListView.as_view(), name="location-list"),
    path("nearby/", views.NearbyLocationsView.as_view(), name="nearby"),
    path("airports/", views.AirportListView.as_view(), name="airports"),
    path("popular-routes/", views.PopularRoutesView.as_view(), name="popular-routes"),
    path("routes/<int:origin_id>/<int:destination_id>/stats/", views.RouteStatsView.as_view(), name="route-stats"),
    path("<int:location_id>/", views.LocationDetailView.as_view(), name="location-detail"),
]
