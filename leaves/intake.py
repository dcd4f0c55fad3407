"""
Leave intake: validate a submitted leave request and store it.

WORKFLOW OVERVIEW:
1. Validate the typed form fields in the order a user fills the form
   (first failure wins)
2. Check every selected channel is one the bot can post into
3. Reject duplicates (same type overlapping, or an intersecting time
   window for "other" partial-day leaves)
4. Save the leave
5. Enrol the user into the origin team and every notified team
   (best effort, never blocks the save)
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .calendar_utils import get_calendar, parse_time
from .entities import (
    ACTIVE_STATUSES, DEFAULT_EMAIL, DEFAULT_END_TIME, DEFAULT_START_TIME,
    LEAVE_STATUSES, LEAVE_TYPES, MAX_NOTIFIED_CHANNELS, MAX_REASON_LENGTH,
    ChannelRef, LeaveEntity, TeamMember,
)
from .exceptions import (
    DateFormatError, DuplicateKeyError, DuplicateLeaveError, ExternalServiceError,
    LeaveBotError, LeaveNotFoundError, LeaveValidationError, NotLeaveOwnerError,
)

logger = logging.getLogger(__name__)

HORIZON_MONTHS = 3

LEAVE_TYPE_LABELS = {
    'vacation': 'Vacation',
    'wellness': 'Wellness Day',
    'sick': 'Sick Leave',
    'personal': 'Personal',
    'other': 'Other',
}


@dataclass
class LeaveSubmission:
    """Already-extracted form fields for one leave request"""

    user_id: str
    channel_id: str
    channel_name: str = ''
    leave_type: Optional[str] = None
    is_full_day: bool = True
    start_date: object = None
    end_date: object = None
    start_time: Optional[str] = DEFAULT_START_TIME
    end_time: Optional[str] = DEFAULT_END_TIME
    reason: Optional[str] = ''
    notify_channels: List[ChannelRef] = field(default_factory=list)
    user_name: Optional[str] = None
    user_email: Optional[str] = None


def windows_intersect(first_start, first_end, second_start, second_end):
    """Half-open [start, end) minute windows; touching windows do not intersect"""
    return first_start < second_end and second_start < first_end


def _dedupe_channels(channels):
    seen = set()
    unique = []
    for channel in channels or []:
        if isinstance(channel, str):
            channel = ChannelRef(channel)
        elif not isinstance(channel, ChannelRef):
            channel = ChannelRef(*channel)
        if not channel.channel_id or channel.channel_id in seen:
            continue
        seen.add(channel.channel_id)
        unique.append(channel)
    return unique


class LeaveIntake:
    def __init__(self, store, messenger, identity=None, calendar=None):
        self.store = store
        self.messenger = messenger
        self.identity = identity
        self.calendar = calendar or get_calendar()

    # Field rules

    def _parse_dates(self, start_value, end_value):
        if not start_value:
            raise LeaveValidationError('start_date', 'Please select a start date.')
        if not end_value:
            raise LeaveValidationError('end_date', 'Please select an end date.')
        try:
            start_date = self.calendar.to_date(start_value)
        except DateFormatError:
            raise LeaveValidationError('start_date', 'Invalid start date. Please try again.')
        try:
            end_date = self.calendar.to_date(end_value)
        except DateFormatError:
            raise LeaveValidationError('end_date', 'Invalid end date. Please try again.')
        return start_date, end_date

    def _check_date_window(self, start_date, end_date, today):
        if start_date < today:
            raise LeaveValidationError(
                'start_date', 'Start date cannot be in the past. Please select today or a future date.'
            )
        if end_date < start_date:
            raise LeaveValidationError(
                'end_date',
                'End date cannot be before start date. Please select a date on or after the start date.',
            )

    def _check_horizon(self, start_date, today):
        horizon = self.calendar.add_months(today, HORIZON_MONTHS)
        if start_date > horizon:
            raise LeaveValidationError(
                'start_date',
                f"Leaves can only be booked up to {HORIZON_MONTHS} months ahead "
                f"(until {self.calendar.format_date(horizon)}).",
            )

    def _check_partial_day(self, start_date, end_date, start_time, end_time):
        if start_date != end_date:
            raise LeaveValidationError('end_date', 'A partial day leave must start and end on the same day.')
        try:
            start_minutes = parse_time(start_time)
        except DateFormatError:
            raise LeaveValidationError('start_time', 'Please select a valid start time.')
        try:
            end_minutes = parse_time(end_time)
        except DateFormatError:
            raise LeaveValidationError('end_time', 'Please select a valid end time.')
        if end_minutes <= start_minutes:
            raise LeaveValidationError('end_time', 'End time must be after start time.')
        return start_minutes, end_minutes

    def _check_channels(self, channels):
        if not channels:
            raise LeaveValidationError('notify_channels', 'Please select at least one channel to notify.')
        if len(channels) > MAX_NOTIFIED_CHANNELS:
            raise LeaveValidationError(
                'notify_channels', f"You can notify at most {MAX_NOTIFIED_CHANNELS} channels."
            )

        unavailable = []
        for channel in channels:
            try:
                can_post = self.messenger.can_post(channel.channel_id)
            except LeaveBotError as e:
                logger.warning(f"Could not check channel {channel.channel_id}: {e}")
                can_post = False
            if not can_post:
                unavailable.append(channel)

        if unavailable:
            names = ', '.join(f"#{channel.channel_name or channel.channel_id}" for channel in unavailable)
            raise LeaveValidationError(
                'notify_channels',
                f"I can't post in {names}. Please invite the app to "
                f"{'that channel' if len(unavailable) == 1 else 'those channels'} or pick different ones.",
            )

    def _check_duplicates(self, candidate, start_minutes=None, end_minutes=None):
        if candidate.is_partial_other:
            existing = self.store.find_overlapping(
                candidate.start_date, candidate.start_date,
                user_id=candidate.user_id,
                channel_id=candidate.channel_id,
                leave_type='other',
                status_in=ACTIVE_STATUSES,
            )
            for leave in existing:
                if leave.is_full_day or leave.start_date != candidate.start_date:
                    continue
                if windows_intersect(start_minutes, end_minutes, parse_time(leave.start_time), parse_time(leave.end_time)):
                    raise DuplicateLeaveError(
                        'start_time',
                        f"You already have time off between {leave.start_time} and {leave.end_time} on "
                        f"{self.calendar.format_date(leave.start_date)}. Please choose a time window that "
                        f"doesn't overlap.",
                    )
            return

        existing = self.store.find_overlapping(
            candidate.start_date, candidate.end_date,
            user_id=candidate.user_id,
            channel_id=candidate.channel_id,
            leave_type=candidate.leave_type,
            status_in=ACTIVE_STATUSES,
        )
        existing = [leave for leave in existing if not leave.is_partial_other]
        if existing:
            raise self._duplicate_error(candidate)

    def _duplicate_error(self, candidate):
        label = LEAVE_TYPE_LABELS.get(candidate.leave_type, candidate.leave_type)
        if candidate.start_date == candidate.end_date:
            dates = self.calendar.format_date(candidate.start_date)
        else:
            dates = f"{self.calendar.format_date(candidate.start_date)} - {self.calendar.format_date(candidate.end_date)}"
        return DuplicateLeaveError(
            'leave_type',
            f"You already have a {label} leave booked for {dates} in this channel. "
            f"You can still book a different leave type for the same dates.",
        )

    def _resolve_identity(self, submission):
        name, email = submission.user_name, submission.user_email
        if (not name or not email) and self.identity is not None:
            try:
                resolved_name, resolved_email = self.identity.resolve(submission.user_id)
                name = name or resolved_name
                email = email or resolved_email
            except Exception as e:
                logger.warning(f"Could not resolve user {submission.user_id}: {e}")
        return name or submission.user_id, email or DEFAULT_EMAIL

    # Operations

    def validate(self, submission, now=None):
        """Run every intake rule and return the leave that would be stored"""
        today = self.calendar.today(now)

        if submission.leave_type not in LEAVE_TYPES:
            raise LeaveValidationError('leave_type', 'Please select a valid leave type.')

        start_date, end_date = self._parse_dates(submission.start_date, submission.end_date)
        self._check_date_window(start_date, end_date, today)

        is_full_day = bool(submission.is_full_day)
        if not is_full_day and submission.leave_type != 'other':
            raise LeaveValidationError(
                'is_full_day',
                'Only "Other" leave type can be partial day. Please select "Full Day" for other leave types.',
            )

        reason = (submission.reason or '').strip()
        if submission.leave_type == 'other' and not reason:
            raise LeaveValidationError('reason', 'Reason is required for "Other" leave type. Please provide a reason.')
        if len(reason) > MAX_REASON_LENGTH:
            raise LeaveValidationError('reason', f"Reason must be {MAX_REASON_LENGTH} characters or fewer.")

        start_minutes = end_minutes = None
        start_time, end_time = DEFAULT_START_TIME, DEFAULT_END_TIME
        if not is_full_day:
            start_minutes, end_minutes = self._check_partial_day(
                start_date, end_date, submission.start_time, submission.end_time
            )
            start_time = self.calendar.format_time(submission.start_time)
            end_time = self.calendar.format_time(submission.end_time)

        self._check_horizon(start_date, today)

        channels = _dedupe_channels(submission.notify_channels)
        self._check_channels(channels)

        candidate = LeaveEntity(
            user_id=submission.user_id,
            user_name=submission.user_name or submission.user_id,
            user_email=submission.user_email or DEFAULT_EMAIL,
            leave_type=submission.leave_type,
            start_date=start_date,
            end_date=end_date,
            is_full_day=is_full_day,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            channel_id=submission.channel_id,
            channel_name=submission.channel_name or 'Unknown Channel',
            notified_channels=[channel for channel in channels if channel.channel_id != submission.channel_id],
        )
        self._check_duplicates(candidate, start_minutes, end_minutes)
        return candidate

    def submit(self, submission, now=None):
        """Validate and store a leave request, then auto-enrol the submitter"""
        try:
            candidate = self.validate(submission, now=now)
            user_name, user_email = self._resolve_identity(submission)
            candidate = candidate.copy(user_name=user_name, user_email=user_email)
            try:
                leave = self.store.insert(candidate)
            except DuplicateKeyError:
                raise self._duplicate_error(candidate)
        except LeaveBotError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error saving leave for {submission.user_id}: {e}")
            raise ExternalServiceError() from e

        logger.info(
            f"Leave {leave.id} saved: {leave.user_id} {leave.leave_type} "
            f"{leave.start_date} to {leave.end_date} in {leave.channel_id}"
        )
        self.enroll_user(leave)
        return leave

    def enroll_user(self, leave):
        """Make sure the submitter is a member of every team that sees this leave"""
        member = TeamMember(user_id=leave.user_id, user_name=leave.user_name, user_email=leave.user_email)
        channels = [ChannelRef(leave.channel_id, leave.channel_name)] + list(leave.notified_channels)
        enrolled = []
        for channel in channels:
            try:
                self.store.upsert_team_member(channel.channel_id, member, channel_name=channel.channel_name)
                enrolled.append(channel.channel_id)
            except Exception as e:
                logger.error(f"Error auto-adding {leave.user_id} to team {channel.channel_id}: {e}")
        return enrolled

    def _get_owned(self, leave_id, acting_user_id, allow_admin=False):
        leave = self.store.get(leave_id)
        if leave is None:
            raise LeaveNotFoundError()
        if leave.user_id == acting_user_id:
            return leave
        if allow_admin:
            team = self.store.get_team(leave.channel_id)
            if team is not None and team.is_admin(acting_user_id):
                return leave
        logger.warning(f"{acting_user_id} tried to manage leave {leave_id} owned by {leave.user_id}")
        raise NotLeaveOwnerError()

    def edit_dates(self, leave_id, acting_user_id, start_date, end_date, now=None):
        """Move an existing leave; every other field stays as it was created"""
        try:
            leave = self._get_owned(leave_id, acting_user_id)
            today = self.calendar.today(now)
            new_start, new_end = self._parse_dates(start_date, end_date)
            self._check_date_window(new_start, new_end, today)
            if not leave.is_full_day and new_start != new_end:
                raise LeaveValidationError('end_date', 'A partial day leave must start and end on the same day.')
            self._check_horizon(new_start, today)
            try:
                updated = self.store.update(leave_id, start_date=new_start, end_date=new_end)
            except DuplicateKeyError:
                raise self._duplicate_error(leave.copy(start_date=new_start, end_date=new_end))
        except LeaveBotError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error editing leave {leave_id}: {e}")
            raise ExternalServiceError() from e
        logger.info(f"Leave {leave_id} moved to {new_start} - {new_end} by {acting_user_id}")
        return updated

    def delete(self, leave_id, acting_user_id):
        try:
            leave = self._get_owned(leave_id, acting_user_id, allow_admin=True)
            self.store.delete(leave_id)
        except LeaveBotError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error deleting leave {leave_id}: {e}")
            raise ExternalServiceError() from e
        logger.info(f"Leave {leave_id} deleted by {acting_user_id}")
        return leave

    def set_status(self, leave_id, status, approver_id, now=None):
        """Approve, reject or reset a leave on behalf of an approver"""
        if status not in LEAVE_STATUSES:
            raise LeaveValidationError('status', 'Invalid status')
        if status == 'pending':
            patch = {'status': status, 'approved_by': None, 'approved_at': None}
        else:
            patch = {'status': status, 'approved_by': approver_id, 'approved_at': self.calendar.current_date(now)}
        try:
            updated = self.store.update(leave_id, **patch)
        except LeaveBotError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error updating status of leave {leave_id}: {e}")
            raise ExternalServiceError() from e
        logger.info(f"Leave {leave_id} marked {status} by {approver_id}")
        return updated


def leave_type_label(leave_type):
    return LEAVE_TYPE_LABELS.get(leave_type, str(leave_type).title())