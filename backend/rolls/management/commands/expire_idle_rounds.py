# rolls/management/commands/expire_idle_rounds.py
import logging
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from rolls.defaults import ABANDON_POLICIES
from rolls.engine import RoundEngine
from rolls.exceptions import RoundError, RoundNotIdle, RoundTerminated
from rolls.models import Round

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'End Active rounds nobody has touched for a while, using the abandon policy'

    def add_arguments(self, parser):
        parser.add_argument(
            '--idle-seconds',
            type=int,
            default=None,
            help='Idle time before a round counts as abandoned (default: ROLLS_IDLE_TIMEOUT)'
        )
        parser.add_argument(
            '--policy',
            choices=ABANDON_POLICIES,
            default=None,
            help='Override ROLLS_ABANDON_POLICY for this run'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the rounds without ending them'
        )

    def handle(self, *args, **options):
        idle_seconds = options['idle_seconds']
        if idle_seconds is None:
            idle_seconds = settings.ROLLS_IDLE_TIMEOUT
        policy = options['policy'] or settings.ROLLS_ABANDON_POLICY

        cutoff = timezone.now() - timedelta(seconds=idle_seconds)
        idle = Round.objects.filter(
            status=Round.STATUS_ACTIVE,
            last_action_at__lt=cutoff,
        ).order_by('last_action_at')

        count = idle.count()
        if count == 0:
            self.stdout.write(self.style.SUCCESS('No idle rounds found.'))
            return

        self.stdout.write(f"Found {count} idle round(s), policy: {policy}")
        for rnd in idle:
            self.stdout.write(
                f"  {rnd.id} | user {rnd.user_id} | stake {rnd.stake} | "
                f"{rnd.roll_index}/{rnd.chain_length} rolls | {rnd.running_multiplier}x"
            )

        if options['dry_run']:
            self.stdout.write(self.style.SUCCESS(f'DRY RUN: would end {count} round(s)'))
            return

        engine = RoundEngine()
        ended = 0
        skipped = 0
        failed = 0
        for round_id in idle.values_list('id', flat=True):
            try:
                engine.abandon(round_id, policy=policy, idle_before=cutoff)
                ended += 1
            except (RoundNotIdle, RoundTerminated) as e:
                # the player came back or finished after the query
                skipped += 1
                self.stdout.write(f"  skipped {round_id}: {e}")
            except RoundError as e:
                failed += 1
                logger.error(f"Could not end idle round {round_id}: {e}")
                self.stdout.write(self.style.ERROR(f"Failed to end {round_id}: {e}"))

        self.stdout.write(self.style.SUCCESS(f'Ended {ended} idle round(s)'))
        if skipped:
            self.stdout.write(f'Skipped {skipped} round(s) that were no longer idle')
        if failed:
            self.stdout.write(self.style.ERROR(f'Failed: {failed} round(s)'))
