from django.http import JsonResponse
from .entities import TeamMember
from .exceptions import LeaveBotError
from .services import get_messenger, get_store
from .slack_utils import SlackIdentitySource
import logging
import re
import threading

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Welcome to the channel! 🎉\n\n"
    "You can use the Leave Notifications bot here. Type `/request-leave` to submit a leave request "
    "or `/leaves-today` to see today's schedule."
)


def ensure_channel_team(channel_id, channel_name=None, store=None):
    """Create the team for a channel the first time the app sees it"""
    store = store or get_store()
    return store.ensure_team(channel_id, channel_name or 'Unknown Channel', team_name=channel_name or 'Team')


def _resolve_member(user_id, user_name=None):
    name, email = user_name, None
    try:
        resolved_name, email = SlackIdentitySource().resolve(user_id)
        name = name or resolved_name
    except LeaveBotError as e:
        logger.warning(f"Could not resolve {user_id}, joining with Slack id only: {e}")
    return TeamMember(user_id=user_id, user_name=name or user_id, user_email=email)


def format_team_summary(team):
    admins = [f"<@{member.user_id}>" for member in team.members if member.role == 'admin']
    members = [f"<@{member.user_id}>" for member in team.members]
    return (
        f"👥 *Team: {team.team_name}* (<#{team.channel_id}>)\n\n"
        f"*Team Admins:*\n{', '.join(admins) or 'None'}\n\n"
        f"*Team Members:*\n{', '.join(members) or 'None yet'}\n\n"
        f"*Daily summary:* {'On' if team.scheduler_enabled else 'Off'}"
    )


def handle_join_team(request):
    """Join the team for the current channel"""
    try:
        user_id = request.POST.get('user_id')
        user_name = request.POST.get('user_name')
        channel_id = request.POST.get('channel_id')
        channel_name = request.POST.get('channel_name')

        def join_team_background():
            """Background function to join team"""
            messenger = get_messenger()
            try:
                store = get_store()
                team = store.get_team(channel_id)
                if team is not None and team.is_member(user_id):
                    messenger.post_ephemeral(channel_id, user_id, f'ℹ️ You are already a member of team "{team.team_name}".')
                    return
                team = store.upsert_team_member(channel_id, _resolve_member(user_id, user_name), channel_name=channel_name)
                logger.info(f"Added {user_id} to team {channel_id}")
                messenger.post_ephemeral(
                    channel_id, user_id,
                    f'✅ Successfully joined team "{team.team_name}"! Your leaves will show up in this channel\'s daily summary.'
                )
            except Exception as e:
                logger.error(f"Background error joining team: {e}")
                try:
                    messenger.post_ephemeral(channel_id, user_id, '❌ Error joining team. Please try again.')
                except LeaveBotError:
                    logger.error(f"Could not tell {user_id} about the failed join")

        thread = threading.Thread(target=join_team_background)
        thread.daemon = True
        thread.start()

        return JsonResponse({'response_type': 'ephemeral', 'text': '⏳ Processing request to join this channel\'s team...'})

    except Exception as e:
        logger.error(f"Error joining team: {e}")
        return JsonResponse({'text': 'Error joining team. Please try again.'}, status=200)


def handle_leave_team(request):
    """Leave the team for the current channel"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        store = get_store()

        team = store.get_team(channel_id)
        if team is None or not team.is_member(user_id):
            return JsonResponse({'response_type': 'ephemeral', 'text': 'ℹ️ You are not a member of this channel\'s team.'})

        admins = [member for member in team.members if member.role == 'admin']
        if team.is_admin(user_id) and len(admins) == 1 and len(team.members) > 1:
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': f'❌ You cannot leave team "{team.team_name}" as you are the only admin.'
            })

        store.remove_team_member(channel_id, user_id)
        logger.info(f"Removed {user_id} from team {channel_id}")
        return JsonResponse({'response_type': 'ephemeral', 'text': f'✅ You have left team "{team.team_name}".'})

    except Exception as e:
        logger.error(f"Error leaving team: {e}")
        return JsonResponse({'text': 'Error leaving team. Please try again.'}, status=200)


def handle_view_team(request):
    """Show the current channel's team"""
    try:
        channel_id = request.POST.get('channel_id')
        team = get_store().get_team(channel_id)
        if team is None:
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': 'ℹ️ This channel has no team yet. Use `/join-team` or `/request-leave` to start one.'
            })
        return JsonResponse({'response_type': 'ephemeral', 'text': format_team_summary(team)})

    except Exception as e:
        logger.error(f"Error viewing team: {e}")
        return JsonResponse({'text': 'Error viewing team. Please try again.'}, status=200)


def handle_leave_scheduler(request):
    """Turn the daily summary for this channel on or off: /leave-scheduler on|off"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        channel_name = request.POST.get('channel_name')
        text = request.POST.get('text', '').strip().lower()
        store = get_store()

        if text not in ('on', 'off'):
            team = store.get_team(channel_id)
            state = 'on' if team is None or team.scheduler_enabled else 'off'
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': f'The daily summary for this channel is *{state}*. Format: /leave-scheduler on|off'
            })

        team = store.get_team(channel_id) or ensure_channel_team(channel_id, channel_name, store=store)
        if any(member.role == 'admin' for member in team.members) and not team.is_admin(user_id):
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': '❌ Only team admins can change the daily summary for this channel.'
            })

        enabled = text == 'on'
        store.set_team_flags(channel_id, scheduler_enabled=enabled)
        logger.info(f"Daily summary for {channel_id} turned {text} by {user_id}")
        return JsonResponse({
            'response_type': 'in_channel',
            'text': f"{'✅' if enabled else '⏸️'} <@{user_id}> turned the daily leave summary *{text}* for this channel."
        })

    except Exception as e:
        logger.error(f"Error toggling scheduler: {e}")
        return JsonResponse({'text': 'Error updating the daily summary setting. Please try again.'}, status=200)


def parse_user_mention(text):
    """Slack user id from `<@U123|name>`, `<@U123>` or a bare id"""
    match = re.search(r'<@([A-Z0-9]+)(?:\|[^>]*)?>', text or '')
    if match:
        return match.group(1)
    value = (text or '').strip().lstrip('@')
    return value if re.match(r'^[UW][A-Z0-9]+$', value) else None


def handle_admin_role(request):
    """Make a member of this channel's team an admin: /admin-role @user"""
    try:
        user_id = request.POST.get('user_id')
        channel_id = request.POST.get('channel_id')
        target_id = parse_user_mention(request.POST.get('text', ''))
        if not target_id:
            return JsonResponse({'response_type': 'ephemeral', 'text': 'Please mention a user. Format: /admin-role @user'})

        store = get_store()
        team = store.get_team(channel_id)
        if team is None or not team.is_member(target_id):
            return JsonResponse({
                'response_type': 'ephemeral',
                'text': f'❌ <@{target_id}> is not a member of this channel\'s team. They can join with `/join-team`.'
            })

        has_admin = any(member.role == 'admin' for member in team.members)
        # the first admin of a team can be any member
        if has_admin and not team.is_admin(user_id):
            return JsonResponse({'response_type': 'ephemeral', 'text': '❌ Only team admins can assign admin roles.'})

        store.set_member_role(channel_id, target_id, 'admin')
        logger.info(f"{user_id} made {target_id} an admin of team {channel_id}")
        return JsonResponse({'response_type': 'ephemeral', 'text': f'✅ <@{target_id}> is now an admin of team "{team.team_name}".'})

    except Exception as e:
        logger.error(f"Error assigning admin role: {e}")
        return JsonResponse({'text': 'Error assigning admin role. Please try again.'}, status=200)


def handle_member_joined_channel(event, bot_user_id=None):
    """Create and activate the channel's team when the app is added to it"""
    channel_id = event.get('channel')
    if not channel_id or not bot_user_id or event.get('user') != bot_user_id:
        return None

    messenger = get_messenger()
    store = get_store()
    team = ensure_channel_team(channel_id, messenger.channel_name(channel_id), store=store)
    team = store.set_team_flags(channel_id, is_active=True) or team
    logger.info(f"App added to channel {channel_id}, team {team.team_name} is active")
    try:
        messenger.send_text(channel_id, WELCOME_TEXT)
    except LeaveBotError as e:
        logger.error(f"Could not welcome channel {channel_id}: {e}")
    return team


def handle_member_left_channel(event, bot_user_id=None):
    """Stop sending summaries to a channel the app was removed from"""
    channel_id = event.get('channel')
    if not channel_id or not bot_user_id or event.get('user') != bot_user_id:
        return None
    return deactivate_channel_team(channel_id)


def deactivate_channel_team(channel_id):
    team = get_store().set_team_flags(channel_id, is_active=False)
    logger.info(f"App removed from channel {channel_id}, team deactivated")
    return team
