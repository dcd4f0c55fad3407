from unittest import mock

import pytest

from leaves.block_action_handlers import handle_block_actions
from leaves.entities import TeamMember


@pytest.fixture()
def webhook():
    with mock.patch('leaves.block_action_handlers.WebhookClient') as client_class:
        client_class.return_value.send.return_value = mock.Mock(status_code=200, body='ok')
        yield client_class


def action_payload(action_id, value, user_id='U001'):
    return {
        'type': 'block_actions',
        'user': {'id': user_id},
        'channel': {'id': 'C001'},
        'response_url': 'https://hooks.slack.test/actions/1',
        'actions': [{'action_id': action_id, 'value': value}],
    }


def sent_text(webhook):
    return webhook.return_value.send.call_args.kwargs['text']


def test_owner_deletes_leave(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave, webhook):
    leave = slack_store.insert(make_leave(id=None))

    handle_block_actions(action_payload('delete_leave', leave.id))

    assert slack_store.get(leave.id) is None
    webhook.assert_called_once_with('https://hooks.slack.test/actions/1')
    assert sent_text(webhook) == '🗑️ Deleted your Vacation leave for 20/10/2025.'
    assert webhook.return_value.send.call_args.kwargs['replace_original'] is True


def test_other_user_cannot_delete(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave, webhook):
    leave = slack_store.insert(make_leave(id=None))

    handle_block_actions(action_payload('delete_leave', leave.id, user_id='U002'))

    assert slack_store.get(leave.id) is not None
    assert sent_text(webhook).startswith('❌')


def test_deleting_twice(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave, webhook):
    leave = slack_store.insert(make_leave(id=None))
    handle_block_actions(action_payload('delete_leave', leave.id))
    handle_block_actions(action_payload('delete_leave', leave.id))
    assert sent_text(webhook) == '❌ This leave has already been removed.'


def test_admin_approves_leave(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave, webhook):
    leave = slack_store.insert(make_leave(id=None, user_id='U002', user_name='Blair'))
    slack_store.upsert_team_member('C001', TeamMember('U001', 'Alex Smith', role='admin'), channel_name='team-a')

    handle_block_actions(action_payload('approve_leave', leave.id))

    stored = slack_store.get(leave.id)
    assert stored.status == 'approved'
    assert stored.approved_by == 'U001'
    assert stored.approved_at is not None
    assert sent_text(webhook) == "✅ Blair's Vacation leave was approved."
    channel_id, user_id, text = slack_messenger.post_ephemeral.call_args.args
    assert (channel_id, user_id) == ('C001', 'U002')
    assert 'was approved by <@U001>' in text


def test_non_admin_cannot_reject(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave, webhook):
    leave = slack_store.insert(make_leave(id=None, user_id='U002', user_name='Blair'))

    handle_block_actions(action_payload('reject_leave', leave.id))

    assert slack_store.get(leave.id).status == 'pending'
    assert sent_text(webhook) == '❌ Only team admins can approve or reject leaves.'


def test_ephemeral_answer_without_response_url(slack_store, slack_messenger, slack_intake, slack_calendar, make_leave):
    payload = action_payload('delete_leave', '999')
    del payload['response_url']

    handle_block_actions(payload)

    slack_messenger.post_ephemeral.assert_called_once_with('C001', 'U001', '❌ This leave has already been removed.')


def test_unknown_action_is_acknowledged(slack_store, slack_messenger):
    response = handle_block_actions(action_payload('something_else', 'x'))
    assert response.status_code == 200
