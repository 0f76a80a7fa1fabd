from django.urls import path
from . import views

app_name = 'matches'

# Mounted at /api/match-requests/
request_urlpatterns = [
    path('', views.match_request_list, name='match-request-list'),
    path('webhooks/payment/', views.payment_webhook, name='payment-webhook'),
    path('<int:request_id>/', views.match_request_detail, name='match-request-detail'),
    path('<int:request_id>/accept/', views.accept_request, name='accept-match-request'),
    path('<int:request_id>/decline/', views.decline_request, name='decline-match-request'),
    path('<int:request_id>/pay/', views.pay_request, name='pay-match-request'),
]

# Mounted at /api/matches/
urlpatterns = [
    path('', views.match_list, name='match-list'),
    path('<int:match_id>/', views.match_detail, name='match-detail'),
    path('<int:match_id>/tracking/', views.match_tracking, name='match-tracking'),
]
