from django.contrib import admin
from .models import AuditEvent, SiteOption

@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'level', 'message_key', 'username', 'ip_address']
    list_filter = ['level', 'message_key']
    search_fields = ['username', 'ip_address', 'message']
    readonly_fields = ['level', 'message_key', 'message', 'context', 'ip_address', 'username', 'created_at']

@admin.register(SiteOption)
class SiteOptionAdmin(admin.ModelAdmin):
    list_display = ['name', 'updated_at']
    search_fields = ['name']
