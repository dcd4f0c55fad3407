import logging
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import DuplicateKeyError, LeaveNotFoundError, StoreError
from .models import Leave, NotifiedChannel, Team, TeamMember
from .store import MUTABLE_LEAVE_FIELDS, LeaveStore

logger = logging.getLogger(__name__)


@contextmanager
def _db_errors(action):
    try:
        yield
    except IntegrityError as e:
        logger.warning(f"Constraint violated while trying to {action}: {e}")
        raise DuplicateKeyError(f"Duplicate leave ({action})") from e
    except DatabaseError as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise StoreError() from e


class DjangoLeaveStore(LeaveStore):
    """LeaveStore backed by the Django ORM"""

    def _leaves(self):
        return Leave.objects.prefetch_related('notified_channels')

    def get(self, leave_id):
        with _db_errors('load leave'):
            try:
                return self._leaves().get(pk=leave_id).to_entity()
            except (Leave.DoesNotExist, ValueError):
                return None

    def find_overlapping(self, start, end, user_id=None, channel_id=None, leave_type=None, status_in=None):
        leaves = self._leaves().filter(start_date__lte=end, end_date__gte=start)
        if user_id is not None:
            leaves = leaves.filter(user_id=user_id)
        if channel_id is not None:
            leaves = leaves.filter(channel_id=channel_id)
        if leave_type is not None:
            leaves = leaves.filter(leave_type=leave_type)
        if status_in is not None:
            leaves = leaves.filter(status__in=list(status_in))
        with _db_errors('find overlapping leaves'):
            return [leave.to_entity() for leave in leaves]

    def find_by_channel(self, channel_id, start, end, status_in=None):
        leaves = self._leaves().filter(
            Q(channel_id=channel_id) | Q(notified_channels__channel_id=channel_id),
            start_date__lte=end,
            end_date__gte=start,
        )
        if status_in is not None:
            leaves = leaves.filter(status__in=list(status_in))
        with _db_errors('find channel leaves'):
            return [leave.to_entity() for leave in leaves.distinct()]

    def find_by_user(self, user_id, start=None):
        leaves = self._leaves().filter(user_id=user_id)
        if start is not None:
            leaves = leaves.filter(end_date__gte=start)
        with _db_errors('find user leaves'):
            return [leave.to_entity() for leave in leaves]

    def insert(self, leave):
        with _db_errors('save leave'):
            with transaction.atomic():
                record = Leave.objects.create(
                    user_id=leave.user_id,
                    user_name=leave.user_name,
                    user_email=leave.user_email,
                    leave_type=leave.leave_type,
                    start_date=leave.start_date,
                    end_date=leave.end_date,
                    is_full_day=leave.is_full_day,
                    start_time=leave.start_time,
                    end_time=leave.end_time,
                    reason=leave.reason,
                    channel_id=leave.channel_id,
                    channel_name=leave.channel_name,
                    status=leave.status,
                    approved_by=leave.approved_by,
                    approved_at=leave.approved_at,
                    created_at=leave.created_at or timezone.now(),
                )
                NotifiedChannel.objects.bulk_create([
                    NotifiedChannel(
                        leave=record,
                        channel_id=channel.channel_id,
                        channel_name=channel.channel_name,
                        position=position,
                    )
                    for position, channel in enumerate(leave.notified_channels)
                ])
        logger.info(f"Saved leave {record.pk} for {leave.user_id} in {leave.channel_id}")
        return self.get(record.pk)

    def update(self, leave_id, **patch):
        unknown = set(patch) - MUTABLE_LEAVE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update leave fields: {', '.join(sorted(unknown))}")
        with _db_errors('update leave'):
            with transaction.atomic():
                try:
                    record = Leave.objects.select_for_update().get(pk=leave_id)
                except (Leave.DoesNotExist, ValueError):
                    raise LeaveNotFoundError()
                for field, value in patch.items():
                    setattr(record, field, value)
                record.save()
        return self.get(record.pk)

    def delete(self, leave_id):
        with _db_errors('delete leave'):
            try:
                deleted, _ = Leave.objects.filter(pk=leave_id).delete()
            except ValueError:
                deleted = 0
        if not deleted:
            raise LeaveNotFoundError()
        logger.info(f"Deleted leave {leave_id}")

    def get_team(self, channel_id):
        with _db_errors('load team'):
            team = Team.objects.prefetch_related('members').filter(channel_id=channel_id).first()
            return team.to_entity() if team else None

    def list_active_teams(self, scheduler_only=True):
        teams = Team.objects.prefetch_related('members').filter(is_active=True)
        if scheduler_only:
            teams = teams.filter(scheduler_enabled=True)
        with _db_errors('list teams'):
            return [team.to_entity() for team in teams.order_by('id')]

    def _ensure_team(self, channel_id, channel_name, team_name=None):
        team, created = Team.objects.get_or_create(
            channel_id=channel_id,
            defaults={
                'channel_name': channel_name or 'Unknown Channel',
                'team_name': team_name or channel_name or 'Team',
            },
        )
        if created:
            logger.info(f"Created team for channel {channel_id}")
        return team

    def ensure_team(self, channel_id, channel_name, team_name=None):
        with _db_errors('create team'):
            return self._ensure_team(channel_id, channel_name, team_name).to_entity()

    def upsert_team_member(self, channel_id, member, channel_name=None):
        with _db_errors('add team member'):
            with transaction.atomic():
                team = self._ensure_team(channel_id, channel_name)
                _, created = TeamMember.objects.get_or_create(
                    team=team,
                    user_id=member.user_id,
                    defaults={
                        'user_name': member.user_name,
                        'user_email': member.user_email,
                        'role': member.role,
                        'added_at': member.added_at or timezone.now(),
                    },
                )
                if created:
                    team.save(update_fields=['updated_at'])
                    logger.info(f"Added {member.user_id} to team {channel_id}")
            return team.to_entity()

    def remove_team_member(self, channel_id, user_id):
        with _db_errors('remove team member'):
            team = Team.objects.filter(channel_id=channel_id).first()
            if team is None:
                return None
            TeamMember.objects.filter(team=team, user_id=user_id).delete()
            return team.to_entity()

    def set_team_flags(self, channel_id, is_active=None, scheduler_enabled=None):
        with _db_errors('update team'):
            team = Team.objects.filter(channel_id=channel_id).first()
            if team is None:
                return None
            if is_active is not None:
                team.is_active = is_active
            if scheduler_enabled is not None:
                team.scheduler_enabled = scheduler_enabled
            team.save()
            return team.to_entity()

    def set_member_role(self, channel_id, user_id, role):
        with _db_errors('update member role'):
            updated = TeamMember.objects.filter(team__channel_id=channel_id, user_id=user_id).update(role=role)
            if not updated:
                return None
            return self.get_team(channel_id)
