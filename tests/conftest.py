from datetime import date, datetime
from unittest import mock

import pytest

from leaves.calendar_utils import WorkingCalendar
from leaves.entities import ChannelRef, LeaveEntity
from leaves.intake import LeaveIntake, LeaveSubmission
from leaves.store import InMemoryLeaveStore


NSW_2025 = {
    2025: [
        '2025-01-01', '2025-01-27', '2025-04-18', '2025-04-21', '2025-04-25',
        '2025-06-09', '2025-10-06', '2025-12-25', '2025-12-26',
    ],
}


@pytest.fixture()
def calendar():
    return WorkingCalendar('Australia/Sydney', holidays=NSW_2025)


@pytest.fixture()
def now():
    """Monday 20 October 2025, 09:00 in Sydney"""
    return datetime(2025, 10, 20, 9, 0)


@pytest.fixture()
def store():
    return InMemoryLeaveStore()


@pytest.fixture()
def messenger():
    messenger = mock.Mock()
    messenger.can_post.return_value = True
    return messenger


@pytest.fixture()
def identity():
    identity = mock.Mock()
    identity.resolve.return_value = ('Alex Smith', 'alex@example.com')
    return identity


@pytest.fixture()
def intake(store, messenger, identity, calendar):
    return LeaveIntake(store, messenger, identity=identity, calendar=calendar)


@pytest.fixture()
def make_submission():
    def _make(**overrides):
        fields = dict(
            user_id='U001',
            user_name='Alex Smith',
            channel_id='C001',
            channel_name='team-a',
            leave_type='vacation',
            is_full_day=True,
            start_date='2025-10-21',
            end_date='2025-10-21',
            reason='',
            notify_channels=[ChannelRef('C001', 'team-a')],
        )
        fields.update(overrides)
        return LeaveSubmission(**fields)
    return _make


@pytest.fixture()
def make_leave():
    counter = iter(range(1, 1000))

    def _make(**overrides):
        fields = dict(
            user_id='U001',
            user_name='Alex Smith',
            leave_type='vacation',
            start_date=date(2025, 10, 20),
            end_date=date(2025, 10, 20),
            channel_id='C001',
            channel_name='team-a',
        )
        fields.update(overrides)
        fields.setdefault('id', str(next(counter)))
        return LeaveEntity(**fields)
    return _make


class InlineThread:
    """Runs a background target as soon as it is started"""

    def __init__(self, target=None, name=None, args=(), kwargs=None, daemon=None):
        self.target = target
        self.args = args
        self.kwargs = kwargs or {}
        self.daemon = daemon

    def start(self):
        self.target(*self.args, **self.kwargs)


@pytest.fixture()
def inline_threads():
    with mock.patch('threading.Thread', InlineThread):
        yield


@pytest.fixture()
def slack_store(store):
    """In-memory store wired into every Slack handler module"""
    targets = [
        'leaves.command_handlers.get_store',
        'leaves.team_utils.get_store',
        'leaves.block_action_handlers.get_store',
    ]
    patchers = [mock.patch(target, return_value=store) for target in targets]
    for patcher in patchers:
        patcher.start()
    yield store
    for patcher in patchers:
        patcher.stop()


@pytest.fixture()
def slack_messenger(messenger):
    targets = [
        'leaves.command_handlers.get_messenger',
        'leaves.team_utils.get_messenger',
        'leaves.block_action_handlers.get_messenger',
        'leaves.modal_handlers.get_messenger',
        'leaves.views.get_messenger',
    ]
    patchers = [mock.patch(target, return_value=messenger) for target in targets]
    for patcher in patchers:
        patcher.start()
    yield messenger
    for patcher in patchers:
        patcher.stop()


@pytest.fixture()
def slack_intake(store, messenger, identity, slack_calendar):
    intake = LeaveIntake(store, messenger, identity=identity, calendar=slack_calendar)
    with mock.patch('leaves.modal_handlers.get_intake', return_value=intake), \
            mock.patch('leaves.block_action_handlers.get_intake', return_value=intake):
        yield intake


class PinnedCalendar(WorkingCalendar):
    """Calendar whose "now" is fixed when none is passed in"""

    def __init__(self, pinned, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.pinned = pinned

    def current_date(self, now=None):
        return super().current_date(self.pinned if now is None else now)


@pytest.fixture()
def slack_calendar(now):
    calendar = PinnedCalendar(now, 'Australia/Sydney', holidays=NSW_2025)
    with mock.patch('leaves.command_handlers.get_calendar', return_value=calendar), \
            mock.patch('leaves.block_action_handlers.get_calendar', return_value=calendar), \
            mock.patch('leaves.modal_handlers.get_calendar', return_value=calendar):
        yield calendar
