import json
from datetime import date
from unittest import mock
from urllib.parse import urlencode

import pytest

from leaves.command_handlers import NOT_IN_CHANNEL_TEXT
from leaves.dispatch import ChannelOutcome, SENT, SKIPPED
from leaves.entities import TeamMember

URL = '/slack/events/'


@pytest.fixture(autouse=True)
def unsigned(settings):
    settings.SLACK_SIGNING_SECRET = None


def post_form(client, **data):
    return client.post(URL, data=urlencode(data), content_type='application/x-www-form-urlencoded')


def command(client, name, text='', user_id='U001', channel_id='C001', **extra):
    return post_form(
        client, command=name, text=text, user_id=user_id, user_name='alex',
        channel_id=channel_id, channel_name='team-a', trigger_id='T123', **extra
    )


def post_json(client, body):
    return client.post(URL, data=json.dumps(body), content_type='application/json')


def test_get_is_rejected(client):
    assert client.get(URL).status_code == 405


def test_bad_signature_is_rejected(client, settings):
    settings.SLACK_SIGNING_SECRET = 'secret'
    response = command(client, '/my-leaves')
    assert response.status_code == 403


def test_url_verification(client):
    response = post_json(client, {'type': 'url_verification', 'challenge': 'abc123'})
    assert response.json() == {'challenge': 'abc123'}


def test_unknown_command(client):
    assert command(client, '/dance').json() == {'text': 'Unknown command /dance'}


def test_request_leave_opens_modal(client, slack_messenger, slack_calendar):
    response = command(client, '/request-leave')

    assert response.status_code == 200
    trigger_id, view = slack_messenger.open_view.call_args.args
    assert trigger_id == 'T123'
    assert json.loads(view['private_metadata'])['channel_id'] == 'C001'


def test_leaves_today_lists_channel_leaves(client, slack_store, slack_calendar, make_leave):
    slack_store.insert(make_leave(id=None, user_name='Avery'))
    slack_store.insert(make_leave(id=None, user_id='U002', user_name='Blair', channel_id='C009'))

    body = command(client, '/leaves-today').json()

    assert body['text'] == '1 leave(s) on 20/10/2025'
    details = [block['text']['text'] for block in body['blocks'] if block['type'] == 'section']
    assert len(details) == 1
    assert details[0].startswith('🏖️ *Avery* - Vacationing')


def test_leaves_today_filters_by_name_and_date(client, slack_store, slack_calendar, make_leave):
    slack_store.insert(make_leave(id=None, user_name='Avery', start_date=date(2025, 10, 23), end_date=date(2025, 10, 23)))
    slack_store.insert(make_leave(id=None, user_id='U002', user_name='Blair', start_date=date(2025, 10, 23), end_date=date(2025, 10, 23)))

    body = command(client, '/leaves-today', text='blair 23/10/2025').json()

    assert body['text'] == '1 leave(s) on 23/10/2025'
    assert '📅 Leaves for 23/10/2025 for blair' in json.dumps(body['blocks'], ensure_ascii=False)


def test_leaves_today_nobody_away(client, slack_store, slack_calendar):
    body = command(client, '/leaves-today', text='2025-10-22').json()
    assert body['text'] == 'No leaves scheduled for 22/10/2025! 🎉'


def test_leaves_today_limits_lookback(client, slack_store, slack_calendar):
    body = command(client, '/leaves-today', text='2025-09-19').json()
    assert 'more than 30 days in the past' in body['text']


def test_leaves_today_allows_thirty_days_back(client, slack_store, slack_calendar):
    body = command(client, '/leaves-today', text='2025-09-20').json()
    assert body['text'] == 'No leaves scheduled for 20/09/2025! 🎉'


def test_leaves_today_invalid_date(client, slack_store, slack_calendar):
    body = command(client, '/leaves-today', text='31/02/2025').json()
    assert body['text'].startswith("❌ Invalid date '31/02/2025'")


def test_admins_see_approval_buttons(client, slack_store, slack_calendar, make_leave):
    slack_store.insert(make_leave(id=None, user_id='U002', user_name='Blair'))
    slack_store.upsert_team_member('C001', TeamMember('U001', 'Alex Smith', role='admin'), channel_name='team-a')

    body = command(client, '/leaves-today').json()

    action_ids = [
        element['action_id']
        for block in body['blocks'] if block['type'] == 'actions'
        for element in block['elements']
    ]
    assert action_ids == ['approve_leave', 'reject_leave']


def test_my_leaves_lists_upcoming_with_delete(client, slack_store, slack_calendar, make_leave):
    slack_store.insert(make_leave(id=None, start_date=date(2025, 10, 1), end_date=date(2025, 10, 2)))
    kept = slack_store.insert(make_leave(id=None, start_date=date(2025, 10, 27), end_date=date(2025, 10, 27)))

    body = command(client, '/my-leaves').json()

    assert body['text'] == 'You have 1 upcoming leave(s)'
    buttons = [block['accessory'] for block in body['blocks'] if 'accessory' in block]
    assert [(button['action_id'], button['value']) for button in buttons] == [('delete_leave', kept.id)]


def test_my_leaves_empty(client, slack_store, slack_calendar):
    body = command(client, '/my-leaves').json()
    assert "don't have any upcoming leaves" in body['text']


def test_leave_scheduler_toggle(client, slack_store):
    body = command(client, '/leave-scheduler', text='off').json()

    assert body['response_type'] == 'in_channel'
    assert 'turned the daily leave summary *off*' in body['text']
    assert slack_store.get_team('C001').scheduler_enabled is False
    assert slack_store.list_active_teams() == []

    command(client, '/leave-scheduler', text='ON')
    assert slack_store.get_team('C001').scheduler_enabled is True


def test_leave_scheduler_reports_state(client, slack_store):
    body = command(client, '/leave-scheduler').json()
    assert 'is *on*' in body['text']


def test_leave_scheduler_admin_only_once_team_has_admin(client, slack_store):
    slack_store.upsert_team_member('C001', TeamMember('U900', 'Boss', role='admin'), channel_name='team-a')

    body = command(client, '/leave-scheduler', text='off').json()

    assert 'Only team admins' in body['text']
    assert slack_store.get_team('C001').scheduler_enabled is True


def test_send_reminder_not_in_channel(client, slack_messenger, slack_store, inline_threads):
    with mock.patch('leaves.command_handlers.DailyDigestDispatcher') as dispatcher_class:
        dispatcher_class.return_value.run_for_channel.return_value = ChannelOutcome('C001', SKIPPED)
        body = command(client, '/send-reminder').json()

    assert body['text'].startswith('⏳')
    assert dispatcher_class.call_args.kwargs['send_fallback'] is False
    slack_messenger.post_ephemeral.assert_called_once_with(
        'C001', 'U001', NOT_IN_CHANNEL_TEXT.format(channel_id='C001')
    )


def test_send_reminder_success_is_quiet(client, slack_messenger, slack_store, inline_threads):
    with mock.patch('leaves.command_handlers.DailyDigestDispatcher') as dispatcher_class:
        dispatcher_class.return_value.run_for_channel.return_value = ChannelOutcome('C001', SENT)
        command(client, '/send-reminder')

    slack_messenger.post_ephemeral.assert_not_called()


def test_bot_joining_channel_activates_team(client, slack_store, slack_messenger, inline_threads):
    slack_messenger.channel_name.return_value = 'team-a'
    body = {
        'type': 'event_callback',
        'authorizations': [{'user_id': 'U0BOT', 'is_bot': True}],
        'event': {'type': 'member_joined_channel', 'user': 'U0BOT', 'channel': 'C001'},
    }

    assert post_json(client, body).json() == {'status': 'ok'}
    team = slack_store.get_team('C001')
    assert team.channel_name == 'team-a'
    assert team.is_active
    slack_messenger.send_text.assert_called_once()


def test_other_user_joining_is_ignored(client, slack_store, slack_messenger, inline_threads):
    body = {
        'type': 'event_callback',
        'authorizations': [{'user_id': 'U0BOT', 'is_bot': True}],
        'event': {'type': 'member_joined_channel', 'user': 'U001', 'channel': 'C001'},
    }
    post_json(client, body)
    assert slack_store.get_team('C001') is None


def test_bot_removed_deactivates_team(client, slack_store, slack_messenger, inline_threads):
    slack_store.ensure_team('C001', 'team-a')
    body = {
        'type': 'event_callback',
        'authorizations': [{'user_id': 'U0BOT', 'is_bot': True}],
        'event': {'type': 'member_left_channel', 'user': 'U0BOT', 'channel': 'C001'},
    }
    post_json(client, body)
    assert slack_store.get_team('C001').is_active is False


def test_app_mention_replies_with_help(client, slack_messenger, inline_threads):
    post_json(client, {'type': 'event_callback', 'event': {'type': 'app_mention', 'channel': 'C001'}})
    channel_id, text = slack_messenger.send_text.call_args.args
    assert channel_id == 'C001'
    assert '/request-leave' in text
