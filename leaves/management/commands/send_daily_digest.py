from django.core.management.base import BaseCommand

from leaves.dispatch import FAILED
from leaves.services import get_dispatcher


class Command(BaseCommand):
    help = "Post today's leave digest now, to every enabled channel or to one channel"

    def add_arguments(self, parser):
        parser.add_argument('--channel', help='Only post to this channel id')

    def handle(self, *args, **options):
        dispatcher = get_dispatcher()
        channel_id = options.get('channel')
        if channel_id:
            outcomes = [dispatcher.run_for_channel(None, channel_id)]
        else:
            outcomes = dispatcher.run_once()

        for outcome in outcomes:
            line = f"{outcome.channel_id}: {outcome.status}"
            if outcome.error:
                line += f" ({outcome.error})"
            style = self.style.ERROR if outcome.status == FAILED else self.style.SUCCESS
            self.stdout.write(style(line))

        if not outcomes:
            self.stdout.write('No channels have the daily summary enabled.')
