from django.urls import path
from . import views

app_name = 'parcels'

urlpatterns = [
    path('', views.package_list, name='package-list'),
    path('mine/', views.my_packages, name='my-packages'),
    path('quote/', views.package_quote, name='package-quote'),
    path('<int:package_id>/', views.package_detail, name='package-detail'),
    path('<int:package_id>/cancel/', views.cancel_package, name='cancel-package'),
    path('<int:package_id>/matches/', views.package_matches, name='package-matches'),
]
