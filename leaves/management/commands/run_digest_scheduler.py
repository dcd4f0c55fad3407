import logging

from django.conf import settings
from django.core.management.base import BaseCommand

from leaves.scheduler import build_scheduler
from leaves.services import get_dispatcher

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Run the daily leave digest scheduler in the foreground'

    def handle(self, *args, **options):
        if not settings.DIGEST_SCHEDULER_ENABLED:
            self.stdout.write('DIGEST_SCHEDULER_ENABLED is off, nothing to run.')
            return

        scheduler = build_scheduler(
            get_dispatcher(),
            hour=settings.DIGEST_HOUR,
            minute=settings.DIGEST_MINUTE,
            timezone=settings.LEAVE_TIMEZONE,
            blocking=True,
        )
        self.stdout.write(self.style.SUCCESS(
            f"Notification scheduler started ({settings.DIGEST_HOUR:02d}:{settings.DIGEST_MINUTE:02d} {settings.LEAVE_TIMEZONE})"
        ))
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Notification scheduler stopped")
