from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, AuditLog


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'name', 'role', 'spam_score', 'is_banned', 'is_active', 'date_joined']
    list_filter = ['role', 'is_banned', 'is_active', 'is_staff', 'date_joined']
    search_fields = ['email', 'name', 'username']
    ordering = ['email']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Platform', {'fields': ('name', 'phone', 'role')}),
        ('Q&A reputation', {'fields': ('spam_score', 'message_count', 'answered_count', 'is_banned', 'last_message_at')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Platform', {'fields': ('email', 'name', 'role')}),
    )


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'model_name', 'object_id', 'object_name', 'ip_address', 'created_at']
    list_filter = ['action', 'model_name', 'created_at']
    search_fields = ['user__email', 'model_name', 'object_id', 'object_reference']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'model_name', 'object_id', 'object_name', 'object_reference', 'changes', 'ip_address', 'created_at']
