from django.contrib import admin
from .models import Package


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['id', 'sender', 'origin', 'destination', 'weight', 'category', 'estimated_reward', 'status', 'expires_at']
    list_filter = ['status', 'category', 'urgent', 'fragile']
    search_fields = ['sender__username', 'description', 'receiver_name']
    readonly_fields = ['estimated_reward', 'traditional_cost', 'savings', 'views', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'
