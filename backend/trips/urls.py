from django.urls import path
from . import views

app_name = 'trips'

urlpatterns = [
    path('', views.trip_list, name='trip-list'),
    path('mine/', views.my_trips, name='my-trips'),
    path('<int:trip_id>/', views.trip_detail, name='trip-detail'),
    path('<int:trip_id>/cancel/', views.cancel_trip, name='cancel-trip'),
    path('<int:trip_id>/complete/', views.complete_trip, name='complete-trip'),
    path('<int:trip_id>/matches/', views.trip_matches, name='trip-matches'),
]
