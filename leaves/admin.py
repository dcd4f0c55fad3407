from django.contrib import admin
from .models import Leave, NotifiedChannel, Team, TeamMember


class NotifiedChannelInline(admin.TabularInline):
    model = NotifiedChannel
    extra = 0


class TeamMemberInline(admin.TabularInline):
    model = TeamMember
    extra = 0


@admin.register(Leave)
class LeaveAdmin(admin.ModelAdmin):
    list_display = ['user_name', 'leave_type', 'start_date', 'end_date', 'is_full_day', 'channel_name', 'status', 'created_at']
    list_filter = ['status', 'leave_type', 'is_full_day']
    search_fields = ['user_name', 'user_id', 'channel_name', 'reason']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [NotifiedChannelInline]


@admin.register(Team)
class TeamAdmin(admin.ModelAdmin):
    list_display = ['team_name', 'channel_name', 'channel_id', 'is_active', 'scheduler_enabled', 'created_at']
    list_filter = ['is_active', 'scheduler_enabled']
    search_fields = ['team_name', 'channel_name', 'channel_id']
    inlines = [TeamMemberInline]
