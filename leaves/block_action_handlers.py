from django.http import JsonResponse
from slack_sdk.webhook import WebhookClient
from .calendar_utils import get_calendar
from .exceptions import LeaveBotError
from .intake import leave_type_label
from .services import get_intake, get_messenger, get_store
import logging

logger = logging.getLogger(__name__)

STATUS_ACTIONS = {
    'approve_leave': 'approved',
    'reject_leave': 'rejected',
}


def handle_block_actions(payload):
    """
    Main handler for button clicks in the bot's messages

    - delete_leave: owner (or an admin of the leave's team) removes a leave
    - approve_leave / reject_leave: a team admin records a decision
    """
    try:
        action = payload['actions'][0]
        action_id = action['action_id']

        if action_id == 'delete_leave':
            return handle_delete_leave(payload, action)
        elif action_id in STATUS_ACTIONS:
            return handle_status_action(payload, action, STATUS_ACTIONS[action_id])
        return JsonResponse({'status': 'ok'})

    except Exception as e:
        logger.error(f"Error handling block actions: {e}")
        return JsonResponse({'text': 'Sorry, something went wrong. Please try again.'}, status=200)


def respond(payload, text, replace_original=False):
    """Answer a button click in place (works for ephemeral messages too)"""
    response_url = payload.get('response_url')
    if response_url:
        response = WebhookClient(response_url).send(
            text=text,
            response_type='ephemeral',
            replace_original=replace_original,
        )
        if response.status_code != 200:
            logger.error(f"Error responding to action: {response.status_code} {response.body}")
        return
    channel_id = (payload.get('channel') or {}).get('id')
    user_id = payload['user']['id']
    get_messenger().post_ephemeral(channel_id or user_id, user_id, text)


def handle_delete_leave(payload, action):
    user_id = payload['user']['id']
    leave_id = action.get('value')
    try:
        leave = get_intake().delete(leave_id, user_id)
    except LeaveBotError as e:
        respond(payload, f"❌ {e.message}")
        return JsonResponse({'status': 'ok'})

    calendar = get_calendar()
    respond(
        payload,
        f"🗑️ Deleted your {leave_type_label(leave.leave_type)} leave for "
        f"{calendar.format_date(leave.start_date)}"
        + (f" - {calendar.format_date(leave.end_date)}" if leave.is_multi_day else "")
        + ".",
        replace_original=True,
    )
    return JsonResponse({'status': 'ok'})


def handle_status_action(payload, action, status):
    approver_id = payload['user']['id']
    leave_id = action.get('value')
    store = get_store()

    leave = store.get(leave_id)
    if leave is None:
        respond(payload, "❌ This leave has already been removed.")
        return JsonResponse({'status': 'ok'})

    team = store.get_team(leave.channel_id)
    if team is None or not team.is_admin(approver_id):
        respond(payload, "❌ Only team admins can approve or reject leaves.")
        return JsonResponse({'status': 'ok'})

    try:
        leave = get_intake().set_status(leave_id, status, approver_id)
    except LeaveBotError as e:
        respond(payload, f"❌ {e.message}")
        return JsonResponse({'status': 'ok'})

    icon = '✅' if status == 'approved' else '❌'
    respond(payload, f"{icon} {leave.user_name}'s {leave_type_label(leave.leave_type)} leave was {status}.")
    try:
        get_messenger().post_ephemeral(
            leave.channel_id, leave.user_id,
            f"{icon} Your {leave_type_label(leave.leave_type)} leave for "
            f"{get_calendar().format_date(leave.start_date)} was {status} by <@{approver_id}>."
        )
    except LeaveBotError as e:
        logger.warning(f"Could not notify {leave.user_id} about status change: {e}")
    return JsonResponse({'status': 'ok'})
