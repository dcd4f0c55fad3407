from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from slack_sdk.signature import SignatureVerifier
import json
import logging
import threading

from .block_action_handlers import handle_block_actions
from .command_handlers import (
    handle_request_leave, handle_send_reminder, handle_leaves_today, handle_my_leaves
)
from .exceptions import LeaveBotError
from .modal_handlers import LEAVE_REQUEST_CALLBACK, handle_leave_request_modal_submission
from .services import get_messenger
from .slack_utils import get_bot_user_id
from .team_utils import (
    handle_join_team, handle_leave_team, handle_view_team, handle_leave_scheduler,
    handle_admin_role, handle_member_joined_channel, handle_member_left_channel, deactivate_channel_team
)

logger = logging.getLogger(__name__)

COMMAND_HANDLERS = {
    '/request-leave': handle_request_leave,
    '/send-reminder': handle_send_reminder,
    '/leaves-today': handle_leaves_today,
    '/my-leaves': handle_my_leaves,
    '/leave-scheduler': handle_leave_scheduler,
    '/join-team': handle_join_team,
    '/leave-team': handle_leave_team,
    '/view-team': handle_view_team,
    '/admin-role': handle_admin_role,
}

HELP_TEXT = (
    "*Leave Notifications Bot Commands* 📋\n\n"
    "• `/request-leave` - Open the leave request form\n"
    "• `/leaves-today [name] [date]` - See who is away\n"
    "• `/my-leaves` - Your upcoming leaves\n"
    "• `/send-reminder` - Post today's summary now\n"
    "• `/leave-scheduler on|off` - Daily summary for this channel\n"
    "• `/join-team`, `/leave-team`, `/view-team`, `/admin-role @user` - Channel team"
)


def verify_slack_request(request):
    """Check the Slack signature; skipped when no signing secret is configured"""
    signing_secret = settings.SLACK_SIGNING_SECRET
    if not signing_secret:
        return True
    verifier = SignatureVerifier(signing_secret)
    return verifier.is_valid_request(request.body, dict(request.headers))


@csrf_exempt
def slack_events(request):
    logger.info(f"Received request method: {request.method}")

    if request.method != "POST":
        return JsonResponse({'error': 'Invalid request method'}, status=405)

    if not verify_slack_request(request):
        logger.warning("Rejected request with an invalid Slack signature")
        return JsonResponse({'error': 'Invalid signature'}, status=403)

    try:
        content_type = request.headers.get('Content-Type', '')

        # Slash commands and interactions
        if content_type.startswith('application/x-www-form-urlencoded'):
            command = request.POST.get('command')
            if command:
                handler = COMMAND_HANDLERS.get(command)
                if handler is None:
                    return JsonResponse({'text': f'Unknown command {command}'})
                logger.info(f"Command {command} from {request.POST.get('user_id')} in {request.POST.get('channel_id')}")
                return handler(request)

            if request.POST.get('payload'):
                payload = json.loads(request.POST.get('payload'))
                logger.info(f"Interaction payload type: {payload.get('type')}")

                if payload.get('type') == 'view_submission':
                    return handle_modal_submission(payload)
                elif payload.get('type') == 'block_actions':
                    return handle_block_actions(payload)

        # Events API
        elif content_type.startswith('application/json'):
            body = json.loads(request.body.decode('utf-8'))

            if body.get('type') == 'url_verification':
                return JsonResponse({'challenge': body['challenge']})
            if body.get('type') == 'event_callback':
                return handle_event(body)

        return JsonResponse({'status': 'ok'})

    except Exception as e:
        logger.error(f"Error processing request: {e}")
        return JsonResponse({'text': 'Sorry, something went wrong. Please try again.'}, status=200)


def handle_modal_submission(payload):
    """Route modal submissions to appropriate handlers"""
    callback_id = payload.get('view', {}).get('callback_id')
    if callback_id == LEAVE_REQUEST_CALLBACK:
        return handle_leave_request_modal_submission(payload)
    return JsonResponse({})


def handle_event(body):
    """Events are acknowledged at once and handled in the background"""
    event = body.get('event') or {}
    event_type = event.get('type')
    logger.info(f"Event {event_type} in {event.get('channel')}")

    def process_event_background():
        try:
            if event_type == 'member_joined_channel':
                handle_member_joined_channel(event, get_bot_user_id(body))
            elif event_type == 'member_left_channel':
                handle_member_left_channel(event, get_bot_user_id(body))
            elif event_type == 'channel_left':
                deactivate_channel_team(event.get('channel'))
            elif event_type == 'app_mention':
                get_messenger().send_text(event.get('channel'), HELP_TEXT)
        except LeaveBotError as e:
            logger.error(f"Error handling {event_type} event: {e}")
        except Exception as e:
            logger.error(f"Unexpected error handling {event_type} event: {e}")

    if event_type in ('member_joined_channel', 'member_left_channel', 'channel_left', 'app_mention'):
        thread = threading.Thread(target=process_event_background)
        thread.daemon = True
        thread.start()

    return JsonResponse({'status': 'ok'})
