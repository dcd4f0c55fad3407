from slack_sdk.web.client import WebClient
from slack_sdk.errors import SlackApiError
from django.conf import settings
import logging

from .entities import DEFAULT_EMAIL
from .exceptions import ExternalServiceError, NotInChannelError

logger = logging.getLogger(__name__)

slack_client = WebClient(
    token=settings.SLACK_BOT_TOKEN,
    timeout=settings.SLACK_TIMEOUT
)


def slack_error_code(error):
    """The `error` field of a failed Slack API response"""
    response = getattr(error, 'response', None)
    if response is None:
        return None
    try:
        return response.get('error')
    except AttributeError:
        return None


def render_blocks(sections):
    """Turn digest sections into Block Kit blocks"""
    blocks = []
    for section in sections:
        if section.kind == 'header':
            blocks.append({
                "type": "header",
                "text": {"type": "plain_text", "text": section.text, "emoji": True}
            })
        elif section.kind == 'context':
            blocks.append({
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": section.text}]
            })
        elif section.kind == 'divider':
            blocks.append({"type": "divider"})
        else:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": section.text}
            })
    return blocks


class SlackMessenger:
    """Posts to Slack channels on behalf of the bot"""

    def __init__(self, client=None):
        self.client = client or slack_client

    def can_post(self, channel_id):
        """True when the bot is a member of the channel (or it is a DM)"""
        try:
            response = self.client.conversations_info(channel=channel_id)
        except SlackApiError as e:
            code = slack_error_code(e)
            if code in ('channel_not_found', 'not_in_channel', 'missing_scope'):
                logger.warning(f"Cannot post in channel {channel_id}: {code}")
                return False
            logger.error(f"Error checking channel {channel_id}: {e}")
            raise ExternalServiceError() from e
        channel = response['channel']
        return bool(channel.get('is_member') or channel.get('is_im'))

    def channel_name(self, channel_id):
        try:
            response = self.client.conversations_info(channel=channel_id)
            return response['channel'].get('name') or channel_id
        except SlackApiError as e:
            logger.warning(f"Could not load channel name for {channel_id}: {e}")
            return channel_id

    def _post(self, channel_id, **kwargs):
        try:
            return self.client.chat_postMessage(channel=channel_id, **kwargs)
        except SlackApiError as e:
            if slack_error_code(e) == 'not_in_channel':
                raise NotInChannelError(channel_id) from e
            logger.error(f"Error sending message to channel {channel_id}: {e}")
            raise ExternalServiceError() from e

    def send(self, channel_id, sections, text=None):
        return self._post(
            channel_id,
            blocks=render_blocks(sections),
            text=text or "Leave notification"
        )

    def send_text(self, channel_id, text):
        return self._post(channel_id, text=text)

    def post_ephemeral(self, channel_id, user_id, text, blocks=None):
        try:
            return self.client.chat_postEphemeral(
                channel=channel_id,
                user=user_id,
                text=text,
                blocks=blocks
            )
        except SlackApiError as e:
            logger.warning(f"Ephemeral message to {user_id} in {channel_id} failed, falling back to DM: {e}")
            try:
                return self.client.chat_postMessage(channel=user_id, text=text, blocks=blocks)
            except SlackApiError as dm_error:
                logger.error(f"Error sending DM to user {user_id}: {dm_error}")
                raise ExternalServiceError() from dm_error

    def open_view(self, trigger_id, view):
        try:
            return self.client.views_open(trigger_id=trigger_id, view=view)
        except SlackApiError as e:
            logger.error(f"Error opening modal: {e}")
            raise ExternalServiceError() from e


class SlackIdentitySource:
    """Looks up display name and email for a Slack user"""

    def __init__(self, client=None):
        self.client = client or slack_client

    def resolve(self, user_id):
        try:
            user_info = self.client.users_info(user=user_id)
        except SlackApiError as e:
            logger.warning(f"Could not get Slack user info for {user_id}: {e}")
            raise ExternalServiceError() from e
        user = user_info['user']
        profile = user.get('profile', {})
        name = profile.get('real_name') or profile.get('display_name') or user.get('name') or user_id
        email = profile.get('email') or DEFAULT_EMAIL
        return name, email


def get_bot_user_id(body=None):
    """The app's own user id, from the event's authorizations or auth.test"""
    for authorization in (body or {}).get('authorizations') or []:
        if authorization.get('is_bot') and authorization.get('user_id'):
            return authorization['user_id']
    try:
        return slack_client.auth_test()['user_id']
    except SlackApiError as e:
        logger.error(f"Could not look up the bot user id: {e}")
        return None
