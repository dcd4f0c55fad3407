from django.http import JsonResponse
from .calendar_utils import get_calendar
from .entities import ChannelRef, DEFAULT_END_TIME, DEFAULT_START_TIME, MAX_NOTIFIED_CHANNELS, MAX_REASON_LENGTH
from .exceptions import LeaveBotError, LeaveValidationError
from .intake import LeaveSubmission, leave_type_label
from .services import get_intake, get_messenger
import json
import logging
import threading

logger = logging.getLogger(__name__)

LEAVE_REQUEST_CALLBACK = 'leave_request_modal'

# Form blocks in the order a user fills them; Slack shows errors keyed by block_id
FORM_BLOCKS = (
    'leave_type', 'is_full_day', 'start_date', 'end_date',
    'start_time', 'end_time', 'reason', 'notify_channels',
)


def _plain(text):
    return {"type": "plain_text", "text": text, "emoji": True}


def _option(text, value):
    return {"text": _plain(text), "value": value}


def build_leave_request_modal(user_id, channel_id, channel_name='', user_name='', user_email='', today=None):
    """Leave request form; metadata carries the submitter and the origin channel"""
    today = today or get_calendar().today()
    today_str = today.strftime('%Y-%m-%d')
    full_day_option = _option("Full Day", "true")

    return {
        "type": "modal",
        "callback_id": LEAVE_REQUEST_CALLBACK,
        "title": _plain("Request Leave"),
        "submit": _plain("Submit"),
        "close": _plain("Cancel"),
        "private_metadata": json.dumps({
            "user_id": user_id,
            "user_name": user_name,
            "user_email": user_email,
            "channel_id": channel_id,
            "channel_name": channel_name or 'Unknown Channel',
        }),
        "blocks": [
            {
                "type": "input",
                "block_id": "leave_type",
                "label": _plain("Leave Type"),
                "element": {
                    "type": "static_select",
                    "action_id": "leave_type_select",
                    "placeholder": _plain("Select leave type"),
                    "options": [
                        _option(f"🏖️ {leave_type_label('vacation')}", "vacation"),
                        _option(f"🧘 {leave_type_label('wellness')}", "wellness"),
                        _option(f"🤒 {leave_type_label('sick')}", "sick"),
                        _option(f"👤 {leave_type_label('personal')}", "personal"),
                        _option(f"📝 {leave_type_label('other')}", "other"),
                    ]
                }
            },
            {
                "type": "input",
                "block_id": "is_full_day",
                "label": _plain("Duration"),
                "element": {
                    "type": "radio_buttons",
                    "action_id": "is_full_day_select",
                    "options": [
                        full_day_option,
                        _option("Partial Day (Only for Other leave type)", "false"),
                    ],
                    "initial_option": full_day_option
                }
            },
            {
                "type": "input",
                "block_id": "start_date",
                "label": _plain("Start Date"),
                "element": {
                    "type": "datepicker",
                    "action_id": "start_date_select",
                    "initial_date": today_str,
                    "placeholder": _plain("Select start date")
                }
            },
            {
                "type": "input",
                "block_id": "end_date",
                "label": _plain("End Date"),
                "element": {
                    "type": "datepicker",
                    "action_id": "end_date_select",
                    "initial_date": today_str,
                    "placeholder": _plain("Select end date")
                }
            },
            {
                "type": "input",
                "block_id": "start_time",
                "label": _plain("Start Time (Partial Day only)"),
                "element": {
                    "type": "timepicker",
                    "action_id": "start_time_select",
                    "initial_time": DEFAULT_START_TIME,
                    "placeholder": _plain("Select start time")
                },
                "optional": True
            },
            {
                "type": "input",
                "block_id": "end_time",
                "label": _plain("End Time (Partial Day only)"),
                "element": {
                    "type": "timepicker",
                    "action_id": "end_time_select",
                    "initial_time": DEFAULT_END_TIME,
                    "placeholder": _plain("Select end time")
                },
                "optional": True
            },
            {
                "type": "input",
                "block_id": "reason",
                "label": _plain("Reason (Required for Other leave type)"),
                "element": {
                    "type": "plain_text_input",
                    "action_id": "reason_input",
                    "multiline": True,
                    "max_length": MAX_REASON_LENGTH,
                    "placeholder": _plain("Please provide a reason for your leave...")
                },
                "optional": True
            },
            {
                "type": "input",
                "block_id": "notify_channels",
                "label": _plain(f"Channels to notify (up to {MAX_NOTIFIED_CHANNELS})"),
                "element": {
                    "type": "multi_conversations_select",
                    "action_id": "notify_channels_select",
                    "max_selected_items": MAX_NOTIFIED_CHANNELS,
                    "default_to_current_conversation": True,
                    "filter": {"include": ["public", "private"], "exclude_bot_users": True},
                    "placeholder": _plain("Select channels")
                }
            }
        ]
    }


def first_action_value(values, block_id):
    """
    The state of the first element in a form block.

    Slack keys each block's state by action_id, which can change between
    form versions, so the positionally-first key is used instead of a name.
    """
    block = values.get(block_id) or {}
    for action_id in block:
        return block[action_id] or {}
    return {}


def _channel_names(channel_ids, origin_id, origin_name):
    messenger = get_messenger()
    refs = []
    for channel_id in channel_ids:
        if channel_id == origin_id:
            refs.append(ChannelRef(channel_id, origin_name))
        else:
            refs.append(ChannelRef(channel_id, messenger.channel_name(channel_id)))
    return refs


def extract_leave_submission(payload, resolve_names=True):
    """Typed LeaveSubmission from a leave_request_modal view_submission payload"""
    view = payload['view']
    values = view['state']['values']
    metadata = json.loads(view.get('private_metadata') or '{}')

    leave_type = (first_action_value(values, 'leave_type').get('selected_option') or {}).get('value')
    duration = (first_action_value(values, 'is_full_day').get('selected_option') or {}).get('value', 'true')
    channel_ids = first_action_value(values, 'notify_channels').get('selected_conversations') or []

    channel_id = metadata.get('channel_id') or payload.get('user', {}).get('id')
    channel_name = metadata.get('channel_name') or 'Unknown Channel'
    if resolve_names:
        channels = _channel_names(channel_ids, channel_id, channel_name)
    else:
        channels = [ChannelRef(value) for value in channel_ids]

    return LeaveSubmission(
        user_id=metadata.get('user_id') or payload['user']['id'],
        user_name=metadata.get('user_name') or payload.get('user', {}).get('name'),
        user_email=metadata.get('user_email') or None,
        channel_id=channel_id,
        channel_name=channel_name,
        leave_type=leave_type,
        is_full_day=duration != 'false',
        start_date=first_action_value(values, 'start_date').get('selected_date'),
        end_date=first_action_value(values, 'end_date').get('selected_date'),
        start_time=first_action_value(values, 'start_time').get('selected_time') or DEFAULT_START_TIME,
        end_time=first_action_value(values, 'end_time').get('selected_time') or DEFAULT_END_TIME,
        reason=first_action_value(values, 'reason').get('value') or '',
        notify_channels=channels,
    )


def validation_errors_response(error):
    block_id = error.field if error.field in FORM_BLOCKS else 'leave_type'
    return JsonResponse({
        "response_action": "errors",
        "errors": {block_id: error.message}
    })


def _confirmation_text(leave):
    calendar = get_calendar()
    if leave.is_multi_day:
        dates = f"{calendar.format_date(leave.start_date)} - {calendar.format_date(leave.end_date)}"
    else:
        dates = calendar.format_date(leave.start_date)
    duration = 'Full Day' if leave.is_full_day else f"{leave.start_time} - {leave.end_time}"
    channels = ', '.join(f"<#{channel.channel_id}>" for channel in leave.notified_channels) or 'None'
    return (
        f"✅ *Leave Request Submitted*\n\n"
        f"*Type:* {leave_type_label(leave.leave_type)}\n"
        f"*Dates:* {dates}\n"
        f"*Duration:* {duration}\n"
        f"*Also visible in:* {channels}"
        + (f"\n*Reason:* {leave.reason}" if leave.reason else "")
    )


def handle_leave_request_modal_submission(payload):
    """
    Handle leave request modal submission

    WORKFLOW OVERVIEW:
    1. Extract typed fields from the view state
    2. Validate and save through LeaveIntake (errors go back onto the form)
    3. Close the modal and confirm to the user in the background
    """
    try:
        submission = extract_leave_submission(payload)
        leave = get_intake().submit(submission)
    except LeaveValidationError as e:
        logger.info(f"Leave request from {payload.get('user', {}).get('id')} rejected: {e.field} - {e.message}")
        return validation_errors_response(e)
    except LeaveBotError as e:
        logger.error(f"Error processing leave request: {e}")
        return JsonResponse({
            "response_action": "errors",
            "errors": {"leave_type": e.message}
        })
    except Exception as e:
        logger.error(f"Error processing leave request: {e}")
        return JsonResponse({
            "response_action": "errors",
            "errors": {"leave_type": 'Sorry, there was an error processing your leave request. Please try again.'}
        })

    def send_confirmation_background():
        """Background function to confirm the saved leave to the user"""
        try:
            get_messenger().post_ephemeral(leave.channel_id, leave.user_id, _confirmation_text(leave))
        except Exception as e:
            logger.error(f"Could not send leave confirmation to {leave.user_id}: {e}")

    thread = threading.Thread(target=send_confirmation_background)
    thread.daemon = True
    thread.start()

    return JsonResponse({"response_action": "clear"})
