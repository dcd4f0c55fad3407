import threading
from datetime import date, datetime
from unittest import mock

import pytest

from leaves.dispatch import FAILED, FALLBACK_TEXT, SENT, SKIPPED, DailyDigestDispatcher
from leaves.entities import ChannelRef
from leaves.exceptions import ExternalServiceError, NotInChannelError


@pytest.fixture()
def dispatcher(store, messenger, calendar):
    return DailyDigestDispatcher(store, messenger, calendar=calendar)


def add_team(store, channel_id, name, **flags):
    store.ensure_team(channel_id, name)
    if flags:
        store.set_team_flags(channel_id, **flags)


def sent_texts(messenger, channel_id):
    for call in messenger.send.call_args_list:
        if call.args[0] == channel_id:
            return [section.text for section in call.args[1]]
    return None


def test_posts_digest_to_each_enabled_team(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a')
    add_team(store, 'C002', 'team-b')

    outcomes = dispatcher.run_once(now)

    assert [(outcome.channel_id, outcome.status) for outcome in outcomes] == [('C001', SENT), ('C002', SENT)]
    assert messenger.send.call_count == 2
    assert messenger.send.call_args.kwargs['text'] == "🌅 Good Morning! Today's Team Availability"


def test_disabled_and_inactive_teams_are_skipped(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a', scheduler_enabled=False)
    add_team(store, 'C002', 'team-b', is_active=False)

    assert dispatcher.run_once(now) == []
    messenger.send.assert_not_called()


def test_digest_includes_leaves_notified_into_channel(dispatcher, store, messenger, make_leave, now):
    add_team(store, 'C003', 'team-c')
    add_team(store, 'C004', 'team-d')
    store.insert(make_leave(
        id=None, user_name='Avery', channel_id='C003', channel_name='team-c',
        notified_channels=[ChannelRef('C004', 'team-d')],
    ))

    dispatcher.run_once(now)

    assert '🏖️ *Avery* - Vacationing' in sent_texts(messenger, 'C003')
    assert '🏖️ *Avery* - Vacationing' in sent_texts(messenger, 'C004')


def test_rejected_leaves_are_not_announced(dispatcher, store, messenger, make_leave, now):
    add_team(store, 'C001', 'team-a')
    store.insert(make_leave(id=None, user_name='Avery', status='rejected'))

    dispatcher.run_once(now)

    assert not any('Avery' in text for text in sent_texts(messenger, 'C001'))


def test_running_twice_builds_the_same_digest(dispatcher, store, make_leave, now):
    add_team(store, 'C001', 'team-a')
    store.insert(make_leave(id=None, user_name='Avery'))
    store.insert(make_leave(id=None, user_name='Blair', start_date=date(2025, 10, 22), end_date=date(2025, 10, 22)))

    first = dispatcher.run_once(now)
    second = dispatcher.run_once(now)

    assert first[0].sections == second[0].sections


def test_not_in_channel_is_skipped_without_fallback(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a')
    add_team(store, 'C002', 'team-b')
    messenger.send.side_effect = [NotInChannelError('C001'), None]

    outcomes = dispatcher.run_once(now)

    assert [outcome.status for outcome in outcomes] == [SKIPPED, SENT]
    messenger.send_text.assert_not_called()


def test_failure_sends_fallback_and_continues(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a')
    add_team(store, 'C002', 'team-b')
    messenger.send.side_effect = [ExternalServiceError(), None]

    outcomes = dispatcher.run_once(now)

    assert [outcome.status for outcome in outcomes] == [FAILED, SENT]
    assert not outcomes[0].ok
    messenger.send_text.assert_called_once_with('C001', FALLBACK_TEXT)


def test_fallback_failure_is_swallowed(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a')
    messenger.send.side_effect = ExternalServiceError()
    messenger.send_text.side_effect = ExternalServiceError()

    outcomes = dispatcher.run_once(now)

    assert outcomes[0].status == FAILED


def test_store_failure_for_one_channel_is_contained(dispatcher, store, messenger, now):
    add_team(store, 'C001', 'team-a')
    add_team(store, 'C002', 'team-b')
    real_find = store.find_by_channel

    def find_by_channel(channel_id, *args, **kwargs):
        if channel_id == 'C001':
            raise ExternalServiceError()
        return real_find(channel_id, *args, **kwargs)

    with mock.patch.object(store, 'find_by_channel', side_effect=find_by_channel):
        outcomes = dispatcher.run_once(now)

    assert [outcome.status for outcome in outcomes] == [FAILED, SENT]


def test_team_listing_failure_returns_no_outcomes(dispatcher, store, messenger, now):
    with mock.patch.object(store, 'list_active_teams', side_effect=ExternalServiceError()):
        assert dispatcher.run_once(now) == []
    messenger.send.assert_not_called()


def test_fallback_can_be_turned_off(store, messenger, calendar, now):
    dispatcher = DailyDigestDispatcher(store, messenger, calendar=calendar, send_fallback=False)
    messenger.send.side_effect = ExternalServiceError()

    outcome = dispatcher.run_for_channel(now, 'C001')

    assert outcome.status == FAILED
    messenger.send_text.assert_not_called()


def test_slow_channel_times_out(store, messenger, calendar, now):
    release = threading.Event()
    messenger.send.side_effect = lambda *args, **kwargs: release.wait(5)
    dispatcher = DailyDigestDispatcher(store, messenger, calendar=calendar, channel_timeout=0.05)

    with mock.patch('leaves.dispatch.connections'):
        outcome = dispatcher.run_for_channel(now, 'C001')
        release.set()

    assert outcome.status == FAILED
    assert outcome.error == 'timeout'
    messenger.send_text.assert_called_once_with('C001', FALLBACK_TEXT)


def test_fetch_window_covers_upcoming_working_days(dispatcher, store, now):
    with mock.patch.object(store, 'find_by_channel', return_value=[]) as find:
        dispatcher.fetch_channel_leaves(now, 'C001')
    find.assert_called_once_with('C001', date(2025, 10, 20), date(2025, 10, 23), status_in=('pending', 'approved'))


def test_timed_out_channel_never_posts_late(store, messenger, calendar, now):
    release = threading.Event()
    finished = threading.Event()

    def slow_find(*args, **kwargs):
        release.wait(5)
        return []

    dispatcher = DailyDigestDispatcher(store, messenger, calendar=calendar, channel_timeout=0.05)
    with mock.patch.object(store, 'find_by_channel', side_effect=slow_find), \
            mock.patch('leaves.dispatch.connections') as connections:
        connections.close_all.side_effect = lambda: finished.set()
        outcome = dispatcher.run_for_channel(now, 'C001')
        release.set()
        assert finished.wait(5)

    assert outcome.status == FAILED
    messenger.send.assert_not_called()
    messenger.send_text.assert_called_once_with('C001', FALLBACK_TEXT)


def test_invalid_now_is_reported_as_a_failure(dispatcher, messenger):
    outcome = dispatcher.run_for_channel('2025-10-20', 'C001')

    assert outcome.status == FAILED
    messenger.send.assert_not_called()


def test_multi_day_leave_reaches_origin_and_notified_channels(store, messenger, calendar, intake, make_submission):
    submitted = intake.submit(
        make_submission(
            channel_id='C003', channel_name='team-c',
            start_date='2026-01-15', end_date='2026-01-17',
            notify_channels=[ChannelRef('C003', 'team-c'), ChannelRef('C004', 'team-d')],
        ),
        now=datetime(2026, 1, 10, 9, 0),
    )
    assert submitted.channel_id == 'C003'
    assert submitted.notified_channels == [ChannelRef('C004', 'team-d')]

    dispatcher = DailyDigestDispatcher(store, messenger, calendar=calendar)
    morning = datetime(2026, 1, 15, 9, 0)
    line = '🏖️ *Alex Smith* - Vacationing (15/01/2026 - 17/01/2026)'
    for channel_id in ('C003', 'C004'):
        texts = [section.text for section in dispatcher.build_digest(morning, channel_id)]
        assert line in texts
