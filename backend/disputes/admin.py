from django.contrib import admin
from .models import Dispute, DisputeTimelineEntry


class DisputeTimelineInline(admin.TabularInline):
    model = DisputeTimelineEntry
    extra = 0
    can_delete = False
    readonly_fields = ['sequence', 'timestamp', 'actor', 'actor_role', 'type', 'message', 'payload',
                       'from_status', 'to_status']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ['id', 'match', 'opened_by', 'status', 'reason', 'first_reply_due', 'resolution_due',
                    'first_reply_breached', 'resolution_breached']
    list_filter = ['status', 'reason', 'first_reply_breached', 'resolution_breached']
    search_fields = ['sender__username', 'traveler__username', 'description']
    readonly_fields = ['first_reply_due', 'resolution_due', 'first_replied_at', 'created_at', 'resolved_at']
    inlines = [DisputeTimelineInline]
