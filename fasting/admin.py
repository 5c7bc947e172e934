from django.contrib import admin
from .models import FastingSession, ScheduledNotification


@admin.register(FastingSession)
class FastingSessionAdmin(admin.ModelAdmin):
    list_display = [
        'start',
        'end',
        'duration_display',
        'goal_hours',
        'source'
    ]
    list_filter = ['source']
    search_fields = ['session_id']
    date_hierarchy = 'start'
    readonly_fields = ['session_id', 'created_at', 'updated_at', 'duration_display', 'duration_hours']

    fieldsets = (
        ('Fasting Details', {
            'fields': ('start', 'end', 'goal_hours', 'eating_window')
        }),
        ('Source Information', {
            'fields': ('source', 'session_id')
        }),
        ('Calculated Fields', {
            'fields': ('duration_display', 'duration_hours'),
            'classes': ('collapse',)
        }),
        ('Audit Information', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def duration_display(self, obj):
        """Display duration in human-readable format"""
        if obj.duration:
            total_seconds = int(obj.duration.total_seconds())
            hours = total_seconds // 3600
            minutes = (total_seconds % 3600) // 60
            return f"{hours}h {minutes}m"
        return "In progress"
    duration_display.short_description = 'Duration'


@admin.register(ScheduledNotification)
class ScheduledNotificationAdmin(admin.ModelAdmin):
    list_display = ['session_id', 'kind', 'fire_at', 'created_at']
    list_filter = ['kind']
    search_fields = ['session_id']
    ordering = ['fire_at']
