import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import connections

from .calendar_utils import get_calendar
from .digest import compose_daily_digest, digest_fallback_text, lookahead_end
from .entities import ACTIVE_STATUSES
from .exceptions import NotInChannelError

logger = logging.getLogger(__name__)

FALLBACK_TEXT = '⚠️ Daily leave notification failed. Please try the `/send-reminder` command manually.'

SENT = 'sent'
SKIPPED = 'skipped'
FAILED = 'failed'


@dataclass
class ChannelOutcome:
    channel_id: str
    status: str
    sections: List = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self):
        return self.status != FAILED


class DailyDigestDispatcher:
    """
    Posts the daily digest to every channel whose team has the scheduler on.

    Channels are processed one after the other. A failure in one channel is
    logged, reported to that channel with a fallback notice and never stops
    the loop.
    """

    def __init__(self, store, messenger, calendar=None, channel_timeout=None, send_fallback=True):
        self.store = store
        self.messenger = messenger
        self.calendar = calendar or get_calendar()
        self.channel_timeout = channel_timeout
        self.send_fallback = send_fallback

    def fetch_channel_leaves(self, now, channel_id):
        today = self.calendar.today(now)
        end = max(today, lookahead_end(now, self.calendar))
        return self.store.find_by_channel(channel_id, today, end, status_in=ACTIVE_STATUSES)

    def build_digest(self, now, channel_id):
        leaves = self.fetch_channel_leaves(now, channel_id)
        logger.info(f"Found {len(leaves)} leaves for channel {channel_id}")
        return compose_daily_digest(now, leaves, calendar=self.calendar)

    def _deliver(self, now, channel_id, cancelled=None):
        sections = self.build_digest(now, channel_id)
        if cancelled is not None and cancelled.is_set():
            logger.warning(f"Digest for channel {channel_id} was built after its timeout, not sending it")
            return None
        self.messenger.send(channel_id, sections, text=digest_fallback_text(sections))
        return sections

    def _deliver_in_worker(self, now, channel_id, cancelled):
        try:
            return self._deliver(now, channel_id, cancelled)
        finally:
            connections.close_all()

    def _deliver_with_timeout(self, now, channel_id):
        if self.channel_timeout is None:
            return self._deliver(now, channel_id)
        cancelled = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"digest-{channel_id}")
        try:
            future = executor.submit(self._deliver_in_worker, now, channel_id, cancelled)
            return future.result(timeout=self.channel_timeout)
        except FutureTimeoutError:
            # a worker still building the digest must not post it later
            cancelled.set()
            raise
        finally:
            executor.shutdown(wait=False)

    def _notify_failure(self, channel_id):
        if not self.send_fallback:
            return
        try:
            self.messenger.send_text(channel_id, FALLBACK_TEXT)
        except Exception as e:
            logger.error(f"Could not send error message to channel {channel_id}: {e}")

    def run_for_channel(self, now, channel_id):
        """Compose and post the digest for one channel; never raises"""
        try:
            now = self.calendar.current_date(now)
            sections = self._deliver_with_timeout(now, channel_id)
        except NotInChannelError:
            logger.warning(f"App is not a member of channel {channel_id}. Skipping daily notification.")
            return ChannelOutcome(channel_id, SKIPPED, error='not_in_channel')
        except FutureTimeoutError:
            logger.error(f"Daily notification for channel {channel_id} timed out after {self.channel_timeout}s")
            self._notify_failure(channel_id)
            return ChannelOutcome(channel_id, FAILED, error='timeout')
        except Exception as e:
            logger.error(f"Error sending daily notification to channel {channel_id}: {e}")
            self._notify_failure(channel_id)
            return ChannelOutcome(channel_id, FAILED, error=str(e))
        logger.info(f"Daily notification sent to channel {channel_id}")
        return ChannelOutcome(channel_id, SENT, sections=sections)

    def run_once(self, now=None):
        """One scheduler tick over every enabled team"""
        now = self.calendar.current_date(now)
        try:
            teams = self.store.list_active_teams(scheduler_only=True)
        except Exception as e:
            logger.error(f"Error loading teams for daily notifications: {e}")
            return []

        logger.info(f"Starting daily notifications for {len(teams)} teams")
        outcomes = []
        for team in teams:
            logger.info(f"Processing team {team.team_name} ({team.channel_id})")
            outcomes.append(self.run_for_channel(now, team.channel_id))

        sent = sum(1 for outcome in outcomes if outcome.status == SENT)
        failed = sum(1 for outcome in outcomes if outcome.status == FAILED)
        logger.info(f"Daily notifications done: {sent} sent, {failed} failed, {len(outcomes) - sent - failed} skipped")
        return outcomes
