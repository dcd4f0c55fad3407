"""Process-wide collaborators used by the Slack handlers and management commands"""
from functools import lru_cache

from django.conf import settings

from .calendar_utils import get_calendar
from .db_store import DjangoLeaveStore
from .dispatch import DailyDigestDispatcher
from .intake import LeaveIntake
from .slack_utils import SlackIdentitySource, SlackMessenger


@lru_cache
def get_store():
    return DjangoLeaveStore()


@lru_cache
def get_messenger():
    return SlackMessenger()


@lru_cache
def get_intake():
    return LeaveIntake(
        store=get_store(),
        messenger=get_messenger(),
        identity=SlackIdentitySource(),
        calendar=get_calendar(),
    )


@lru_cache
def get_dispatcher():
    return DailyDigestDispatcher(
        store=get_store(),
        messenger=get_messenger(),
        calendar=get_calendar(),
        channel_timeout=settings.DIGEST_CHANNEL_TIMEOUT or None,
    )
