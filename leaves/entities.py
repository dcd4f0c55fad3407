from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import List, Optional

LEAVE_TYPES = ('vacation', 'wellness', 'sick', 'personal', 'other')
LEAVE_STATUSES = ('pending', 'approved', 'rejected')
ACTIVE_STATUSES = ('pending', 'approved')
MEMBER_ROLES = ('member', 'admin')

DEFAULT_EMAIL = 'not-provided@example.com'
DEFAULT_START_TIME = '09:00'
DEFAULT_END_TIME = '17:00'
MAX_REASON_LENGTH = 500
MAX_NOTIFIED_CHANNELS = 3


@dataclass(frozen=True)
class ChannelRef:
    channel_id: str
    channel_name: str = ''


@dataclass
class LeaveEntity:
    user_id: str
    user_name: str
    leave_type: str
    start_date: date
    end_date: date
    channel_id: str
    channel_name: str = ''
    user_email: str = DEFAULT_EMAIL
    is_full_day: bool = True
    start_time: str = DEFAULT_START_TIME
    end_time: str = DEFAULT_END_TIME
    reason: str = ''
    notified_channels: List[ChannelRef] = field(default_factory=list)
    status: str = 'pending'
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_multi_day(self):
        return self.start_date != self.end_date

    @property
    def is_partial_other(self):
        return self.leave_type == 'other' and not self.is_full_day

    def overlaps(self, start, end):
        """True when [start_date, end_date] intersects [start, end]"""
        return self.start_date <= end and self.end_date >= start

    def is_visible_in(self, channel_id):
        if self.channel_id == channel_id:
            return True
        return any(ref.channel_id == channel_id for ref in self.notified_channels)

    def unique_key(self):
        return (self.user_id, self.start_date, self.end_date, self.channel_id, self.leave_type)

    def copy(self, **changes):
        return replace(self, **changes)


@dataclass
class TeamMember:
    user_id: str
    user_name: str
    user_email: Optional[str] = None
    role: str = 'member'
    added_at: Optional[datetime] = None


@dataclass
class TeamEntity:
    channel_id: str
    channel_name: str
    team_name: str
    is_active: bool = True
    scheduler_enabled: bool = True
    members: List[TeamMember] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_member(self, user_id):
        return next((member for member in self.members if member.user_id == user_id), None)

    def is_member(self, user_id):
        return self.get_member(user_id) is not None

    def is_admin(self, user_id):
        member = self.get_member(user_id)
        return member is not None and member.role == 'admin'
