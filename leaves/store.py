import itertools
import logging
import threading
from dataclasses import replace

from django.utils import timezone

from .entities import TeamEntity, TeamMember
from .exceptions import DuplicateKeyError, LeaveNotFoundError

logger = logging.getLogger(__name__)

MUTABLE_LEAVE_FIELDS = {
    'start_date', 'end_date', 'status', 'approved_by', 'approved_at',
}


def _sort_key(leave):
    return (leave.start_date, leave.start_time, leave.user_name or '', str(leave.id))


class LeaveStore:
    """
    Persistence contract for leaves and channel rosters.

    Implementations must enforce the compound uniqueness rule on insert and
    update: one leave per (user_id, start_date, end_date, channel_id,
    leave_type), except "other" partial-day leaves, which are checked by
    time window in intake instead.
    """

    def get(self, leave_id):
        raise NotImplementedError

    def find_overlapping(self, start, end, user_id=None, channel_id=None, leave_type=None, status_in=None):
        raise NotImplementedError

    def find_by_channel(self, channel_id, start, end, status_in=None):
        raise NotImplementedError

    def find_by_user(self, user_id, start=None):
        raise NotImplementedError

    def insert(self, leave):
        raise NotImplementedError

    def update(self, leave_id, **patch):
        raise NotImplementedError

    def delete(self, leave_id):
        raise NotImplementedError

    def get_team(self, channel_id):
        raise NotImplementedError

    def list_active_teams(self, scheduler_only=True):
        raise NotImplementedError

    def ensure_team(self, channel_id, channel_name, team_name=None):
        raise NotImplementedError

    def upsert_team_member(self, channel_id, member, channel_name=None):
        raise NotImplementedError

    def remove_team_member(self, channel_id, user_id):
        raise NotImplementedError

    def set_team_flags(self, channel_id, is_active=None, scheduler_enabled=None):
        raise NotImplementedError

    def set_member_role(self, channel_id, user_id, role):
        raise NotImplementedError


def enforces_unique_key(leave):
    return not leave.is_partial_other


def _copy_team(team):
    if team is None:
        return None
    return replace(team, members=[replace(member) for member in team.members])


class InMemoryLeaveStore(LeaveStore):
    """Reference store kept in process memory"""

    def __init__(self):
        self._leaves = {}
        self._teams = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _check_unique(self, candidate, exclude_id=None):
        if not enforces_unique_key(candidate):
            return
        for existing in self._leaves.values():
            if existing.id == exclude_id or not enforces_unique_key(existing):
                continue
            if existing.unique_key() == candidate.unique_key():
                raise DuplicateKeyError(f"Duplicate leave for key {candidate.unique_key()}")

    def get(self, leave_id):
        with self._lock:
            leave = self._leaves.get(str(leave_id))
            return leave.copy() if leave else None

    def find_overlapping(self, start, end, user_id=None, channel_id=None, leave_type=None, status_in=None):
        with self._lock:
            matches = [
                leave.copy() for leave in self._leaves.values()
                if leave.overlaps(start, end)
                and (user_id is None or leave.user_id == user_id)
                and (channel_id is None or leave.channel_id == channel_id)
                and (leave_type is None or leave.leave_type == leave_type)
                and (status_in is None or leave.status in status_in)
            ]
        return sorted(matches, key=_sort_key)

    def find_by_channel(self, channel_id, start, end, status_in=None):
        with self._lock:
            matches = [
                leave.copy() for leave in self._leaves.values()
                if leave.is_visible_in(channel_id)
                and leave.overlaps(start, end)
                and (status_in is None or leave.status in status_in)
            ]
        return sorted(matches, key=_sort_key)

    def find_by_user(self, user_id, start=None):
        with self._lock:
            matches = [
                leave.copy() for leave in self._leaves.values()
                if leave.user_id == user_id and (start is None or leave.end_date >= start)
            ]
        return sorted(matches, key=_sort_key)

    def insert(self, leave):
        now = timezone.now()
        with self._lock:
            self._check_unique(leave)
            stored = leave.copy(
                id=str(next(self._ids)),
                notified_channels=list(leave.notified_channels),
                created_at=leave.created_at or now,
                updated_at=now,
            )
            self._leaves[stored.id] = stored
            return stored.copy()

    def update(self, leave_id, **patch):
        unknown = set(patch) - MUTABLE_LEAVE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update leave fields: {', '.join(sorted(unknown))}")
        with self._lock:
            existing = self._leaves.get(str(leave_id))
            if existing is None:
                raise LeaveNotFoundError()
            updated = existing.copy(updated_at=timezone.now(), **patch)
            self._check_unique(updated, exclude_id=existing.id)
            self._leaves[existing.id] = updated
            return updated.copy()

    def delete(self, leave_id):
        with self._lock:
            if self._leaves.pop(str(leave_id), None) is None:
                raise LeaveNotFoundError()

    def get_team(self, channel_id):
        with self._lock:
            return _copy_team(self._teams.get(channel_id))

    def list_active_teams(self, scheduler_only=True):
        with self._lock:
            return [
                _copy_team(team) for team in self._teams.values()
                if team.is_active and (team.scheduler_enabled or not scheduler_only)
            ]

    def ensure_team(self, channel_id, channel_name, team_name=None):
        with self._lock:
            return _copy_team(self._ensure_team(channel_id, channel_name, team_name))

    def _ensure_team(self, channel_id, channel_name, team_name=None):
        team = self._teams.get(channel_id)
        if team is None:
            now = timezone.now()
            team = TeamEntity(
                channel_id=channel_id,
                channel_name=channel_name or 'Unknown Channel',
                team_name=team_name or channel_name or 'Team',
                created_at=now,
                updated_at=now,
            )
            self._teams[channel_id] = team
            logger.info(f"Created team for channel {channel_id}")
        return team

    def upsert_team_member(self, channel_id, member, channel_name=None):
        with self._lock:
            team = self._ensure_team(channel_id, channel_name)
            if team.is_member(member.user_id):
                return _copy_team(team)
            team.members.append(TeamMember(
                user_id=member.user_id,
                user_name=member.user_name,
                user_email=member.user_email,
                role=member.role,
                added_at=member.added_at or timezone.now(),
            ))
            team.updated_at = timezone.now()
            return _copy_team(team)

    def remove_team_member(self, channel_id, user_id):
        with self._lock:
            team = self._teams.get(channel_id)
            if team is None:
                return None
            team.members = [member for member in team.members if member.user_id != user_id]
            team.updated_at = timezone.now()
            return _copy_team(team)

    def set_team_flags(self, channel_id, is_active=None, scheduler_enabled=None):
        with self._lock:
            team = self._teams.get(channel_id)
            if team is None:
                return None
            if is_active is not None:
                team.is_active = is_active
            if scheduler_enabled is not None:
                team.scheduler_enabled = scheduler_enabled
            team.updated_at = timezone.now()
            return _copy_team(team)

    def set_member_role(self, channel_id, user_id, role):
        with self._lock:
            team = self._teams.get(channel_id)
            member = team.get_member(user_id) if team else None
            if member is None:
                return None
            member.role = role
            team.updated_at = timezone.now()
            return _copy_team(team)
