from django.db import models
from django.db.models import Q
from django.utils import timezone

from .entities import (
    DEFAULT_EMAIL, DEFAULT_END_TIME, DEFAULT_START_TIME, MAX_REASON_LENGTH,
    ChannelRef, LeaveEntity, TeamEntity, TeamMember as TeamMemberEntity,
)


class Leave(models.Model):
    LEAVE_TYPES = [
        ('vacation', 'Vacation'),
        ('wellness', 'Wellness Day'),
        ('sick', 'Sick Leave'),
        ('personal', 'Personal'),
        ('other', 'Other'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    user_id = models.CharField(max_length=50, db_index=True)
    user_name = models.CharField(max_length=150)
    user_email = models.CharField(max_length=254, default=DEFAULT_EMAIL)
    leave_type = models.CharField(max_length=20, choices=LEAVE_TYPES)
    start_date = models.DateField(db_index=True)
    end_date = models.DateField(db_index=True)
    is_full_day = models.BooleanField(default=True)
    start_time = models.CharField(max_length=5, default=DEFAULT_START_TIME)
    end_time = models.CharField(max_length=5, default=DEFAULT_END_TIME)
    reason = models.TextField(max_length=MAX_REASON_LENGTH, blank=True, default='')
    channel_id = models.CharField(max_length=50, db_index=True)
    channel_name = models.CharField(max_length=150)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    approved_by = models.CharField(max_length=50, null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['start_date', 'start_time', 'user_name']
        indexes = [
            models.Index(fields=['start_date', 'end_date', 'channel_id'], name='leave_range_channel_idx'),
            models.Index(fields=['user_id', 'start_date'], name='leave_user_start_idx'),
        ]
        constraints = [
            # "other" partial-day leaves are unique by time window, checked at intake
            models.UniqueConstraint(
                fields=['user_id', 'start_date', 'end_date', 'channel_id', 'leave_type'],
                condition=~Q(leave_type='other', is_full_day=False),
                name='unique_leave_per_user_range_channel_type',
            ),
        ]

    def __str__(self):
        return f"{self.user_name}'s {self.get_leave_type_display()} ({self.start_date} to {self.end_date})"

    def to_entity(self):
        return LeaveEntity(
            id=str(self.pk),
            user_id=self.user_id,
            user_name=self.user_name,
            user_email=self.user_email,
            leave_type=self.leave_type,
            start_date=self.start_date,
            end_date=self.end_date,
            is_full_day=self.is_full_day,
            start_time=self.start_time,
            end_time=self.end_time,
            reason=self.reason,
            channel_id=self.channel_id,
            channel_name=self.channel_name,
            notified_channels=[
                ChannelRef(channel.channel_id, channel.channel_name)
                for channel in self.notified_channels.all()
            ],
            status=self.status,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class NotifiedChannel(models.Model):
    leave = models.ForeignKey(Leave, on_delete=models.CASCADE, related_name='notified_channels')
    channel_id = models.CharField(max_length=50, db_index=True)
    channel_name = models.CharField(max_length=150, blank=True, default='')
    position = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ['position']
        constraints = [
            models.UniqueConstraint(fields=['leave', 'channel_id'], name='unique_notified_channel_per_leave'),
        ]

    def __str__(self):
        return f"#{self.channel_name or self.channel_id}"


class Team(models.Model):
    channel_id = models.CharField(max_length=50, unique=True)
    channel_name = models.CharField(max_length=150)
    team_name = models.CharField(max_length=150)
    is_active = models.BooleanField(default=True)
    scheduler_enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['channel_id', 'is_active'], name='team_channel_active_idx'),
        ]

    def __str__(self):
        return self.team_name

    def to_entity(self):
        return TeamEntity(
            channel_id=self.channel_id,
            channel_name=self.channel_name,
            team_name=self.team_name,
            is_active=self.is_active,
            scheduler_enabled=self.scheduler_enabled,
            members=[member.to_entity() for member in self.members.all()],
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TeamMember(models.Model):
    ROLE_CHOICES = [
        ('member', 'Member'),
        ('admin', 'Admin'),
    ]

    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name='members')
    user_id = models.CharField(max_length=50, db_index=True)
    user_name = models.CharField(max_length=150)
    user_email = models.CharField(max_length=254, null=True, blank=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='member')
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['added_at', 'id']
        constraints = [
            models.UniqueConstraint(fields=['team', 'user_id'], name='unique_member_per_team'),
        ]

    def __str__(self):
        return f"{self.user_name} - {self.role}"

    def to_entity(self):
        return TeamMemberEntity(
            user_id=self.user_id,
            user_name=self.user_name,
            user_email=self.user_email,
            role=self.role,
            added_at=self.added_at,
        )
