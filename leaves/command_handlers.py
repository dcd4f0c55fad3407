from django.http import JsonResponse
from .calendar_utils import get_calendar
from .digest import leave_icon
from .dispatch import SENT, SKIPPED, DailyDigestDispatcher
from .entities import ACTIVE_STATUSES
from .exceptions import LeaveBotError
from .intake import leave_type_label
from .modal_handlers import build_leave_request_modal
from .services import get_messenger, get_store
from datetime import datetime, timedelta
import logging
import re
import threading

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = 30

LEAVES_TODAY_USAGE = (
    "💡 *Usage:* `/leaves-today [name] [date]`\n"
    "Examples:\n"
    "• `/leaves-today` - All leaves today\n"
    "• `/leaves-today alex` - Alex's leaves today\n"
    "• `/leaves-today 23/07/2025` - All leaves on 23rd July\n"
    "• `/leaves-today alex 2025-07-23` - Alex's leaves on 23rd July"
)

NOT_IN_CHANNEL_TEXT = (
    "❌ I can't post to <#{channel_id}> because I'm not a member of that channel.\n\n"
    "To fix this:\n"
    "1. Invite me to the channel by typing: `/invite @Leave Notifications`\n"
    "2. Or use the command in a channel where I'm already a member"
)

TYPE_LABELS = {
    'vacation': 'Vacationing',
    'wellness': 'Wellness Day',
    'sick': 'Sick Leave',
    'personal': 'Personal Leave',
    'other': 'Other Leave',
}


def _in_background(target, name):
    thread = threading.Thread(target=target, name=name)
    thread.daemon = True
    thread.start()
    return thread


def handle_request_leave(request):
    """Open the leave request modal for the calling user"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        channel_name = request.POST.get('channel_name', '')
        trigger_id = request.POST.get('trigger_id')

        view = build_leave_request_modal(
            user_id=user_id,
            channel_id=channel_id,
            channel_name=channel_name,
            user_name=request.POST.get('user_name', ''),
        )
        get_messenger().open_view(trigger_id, view)
        logger.info(f"Opened leave request modal for {user_id} in {channel_id}")
        return JsonResponse({}, status=200)

    except Exception as e:
        logger.error(f"Error opening leave modal: {e}")
        return JsonResponse({
            'response_type': 'ephemeral',
            'text': 'Sorry, there was an error opening the leave request form. Please try again.'
        })


def handle_send_reminder(request):
    """Post today's digest to the current channel right now"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        logger.info(f"Manual reminder requested for channel {channel_id} by {user_id}")

        def send_reminder_background():
            """Background function to build and post the digest"""
            messenger = get_messenger()
            dispatcher = DailyDigestDispatcher(
                store=get_store(),
                messenger=messenger,
                calendar=get_calendar(),
                send_fallback=False,
            )
            outcome = dispatcher.run_for_channel(None, channel_id)
            if outcome.status == SENT:
                return
            if outcome.status == SKIPPED:
                text = NOT_IN_CHANNEL_TEXT.format(channel_id=channel_id)
            else:
                text = '❌ Sorry, there was an error sending the reminder. Please try again.'
            try:
                messenger.post_ephemeral(channel_id, user_id, text)
            except LeaveBotError as e:
                logger.error(f"Could not tell {user_id} about the failed reminder: {e}")

        _in_background(send_reminder_background, 'send-reminder')
        return JsonResponse({'response_type': 'ephemeral', 'text': '⏳ Sending today\'s leave summary...'})

    except Exception as e:
        logger.error(f"Error sending reminder: {e}")
        return JsonResponse({'text': '❌ Sorry, there was an error sending the reminder. Please try again.'}, status=200)


def parse_leaves_today_args(text, calendar):
    """(target date or None, name filter or None) from `/leaves-today` text"""
    target_date = None
    target_user = None
    for arg in (text or '').split():
        if re.match(r'^\d{1,2}/\d{1,2}/\d{4}$', arg):
            try:
                target_date = datetime.strptime(arg, '%d/%m/%Y').date()
            except ValueError:
                raise LeaveBotError(f"❌ Invalid date '{arg}'. Please use DD/MM/YYYY or YYYY-MM-DD.")
        elif re.match(r'^\d{4}-\d{2}-\d{2}$', arg):
            try:
                target_date = calendar.to_date(arg)
            except ValueError:
                raise LeaveBotError(f"❌ Invalid date '{arg}'. Please use DD/MM/YYYY or YYYY-MM-DD.")
        elif target_user is None:
            target_user = arg.lstrip('@').lower()
    return target_date, target_user


def format_leave_detail(leave, calendar):
    start = calendar.format_date(leave.start_date)
    dates = f"{start} to {calendar.format_date(leave.end_date)}" if leave.is_multi_day else start
    duration = 'Full Day' if leave.is_full_day else f"{leave.start_time} - {leave.end_time}"
    text = (
        f"{leave_icon(leave.leave_type)} *{leave.user_name}* - {TYPE_LABELS.get(leave.leave_type, 'Other Leave')}\n"
        f"📅 {dates}\n"
        f"⏰ {duration}"
    )
    if not leave.is_full_day and leave.reason:
        text += f"\n💬 {leave.reason}"
    return text


def approval_actions(leave):
    return {
        "type": "actions",
        "block_id": f"leave_status_{leave.id}",
        "elements": [
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "Approve", "emoji": True},
                "style": "primary",
                "action_id": "approve_leave",
                "value": str(leave.id)
            },
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "Reject", "emoji": True},
                "style": "danger",
                "action_id": "reject_leave",
                "value": str(leave.id)
            }
        ]
    }


def build_leaves_for_date_blocks(leaves, target_date, target_user, calendar, can_approve=False, channel_id=None):
    user_str = f" for {target_user}" if target_user else ''
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"📅 Leaves for {calendar.format_date(target_date)}{user_str}", "emoji": True}
        },
        {"type": "divider"},
    ]
    for leave in leaves:
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": format_leave_detail(leave, calendar)}
        })
        if can_approve and leave.status == 'pending' and leave.channel_id == channel_id:
            blocks.append(approval_actions(leave))
    blocks.append({
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": LEAVES_TODAY_USAGE}]
    })
    return blocks


def handle_leaves_today(request):
    """List leaves in this channel on a date (today by default)"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        text = request.POST.get('text', '').strip()
        calendar = get_calendar()
        today = calendar.today()

        try:
            target_date, target_user = parse_leaves_today_args(text, calendar)
        except LeaveBotError as e:
            return JsonResponse({'response_type': 'ephemeral', 'text': e.message})

        target_date = target_date or today
        if target_date < today - timedelta(days=LOOKBACK_DAYS):
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': f'❌ Error: Cannot view leaves more than {LOOKBACK_DAYS} days in the past. Please select a more recent date.'
            })

        store = get_store()
        leaves = store.find_by_channel(channel_id, target_date, target_date, status_in=ACTIVE_STATUSES)
        if target_user:
            leaves = [
                leave for leave in leaves
                if target_user in (leave.user_name or '').lower() or target_user in leave.user_id.lower()
            ]

        if not leaves:
            user_str = f" for {target_user}" if target_user else ''
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': f"No leaves scheduled for {calendar.format_date(target_date)}{user_str}! 🎉"
            })

        team = store.get_team(channel_id)
        return JsonResponse({
            'response_type': 'ephemeral',
            'text': f"{len(leaves)} leave(s) on {calendar.format_date(target_date)}",
            'blocks': build_leaves_for_date_blocks(
                leaves, target_date, target_user, calendar,
                can_approve=team is not None and team.is_admin(user_id),
                channel_id=channel_id,
            )
        })

    except Exception as e:
        logger.error(f"Error fetching leaves: {e}")
        return JsonResponse({'response_type': 'ephemeral', 'text': 'Sorry, there was an error fetching the leaves.'})


def build_my_leaves_blocks(leaves, calendar):
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "📋 Your Upcoming Leaves", "emoji": True}
        },
        {"type": "divider"},
    ]
    for leave in leaves:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"{format_leave_detail(leave, calendar)}\n📍 <#{leave.channel_id}> · {leave.status.title()}"
            },
            "accessory": {
                "type": "button",
                "text": {"type": "plain_text", "text": "Delete", "emoji": True},
                "style": "danger",
                "action_id": "delete_leave",
                "value": str(leave.id),
                "confirm": {
                    "title": {"type": "plain_text", "text": "Delete leave?"},
                    "text": {"type": "mrkdwn", "text": f"Remove your {leave_type_label(leave.leave_type)} leave?"},
                    "confirm": {"type": "plain_text", "text": "Delete"},
                    "deny": {"type": "plain_text", "text": "Cancel"}
                }
            }
        })
    return blocks


def handle_my_leaves(request):
    """Show the caller's current and future leaves with a delete button each"""
    try:
        user_id = request.POST.get('user_id')
        calendar = get_calendar()
        leaves = get_store().find_by_user(user_id, start=calendar.today())

        if not leaves:
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': "You don't have any upcoming leaves. Use `/request-leave` to add one."
            })

        return JsonResponse({
            'response_type': 'ephemeral',
            'text': f"You have {len(leaves)} upcoming leave(s)",
            'blocks': build_my_leaves_blocks(leaves, calendar)
        })

    except Exception as e:
        logger.error(f"Error fetching leaves for user: {e}")
        return JsonResponse({'response_type': 'ephemeral', 'text': 'Sorry, there was an error fetching your leaves.'})
