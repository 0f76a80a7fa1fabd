from django.urls import path
from . import views

app_name = 'disputes'

urlpatterns = [
    path('', views.dispute_list, name='dispute-list'),
    path('<int:dispute_id>/', views.dispute_detail, name='dispute-detail'),
    path('<int:dispute_id>/timeline/', views.dispute_timeline, name='dispute-timeline'),
    path('<int:dispute_id>/offer/', views.dispute_offer, name='dispute-offer'),
    path('<int:dispute_id>/resolve/', views.dispute_resolve, name='dispute-resolve'),
]
