# rolls/management/commands/settle_pending_rounds.py
from django.core.management.base import BaseCommand

from rolls.engine import RoundEngine
from rolls.exceptions import RoundError
from rolls.models import Round


class Command(BaseCommand):
    help = 'Retry settlement of finished rounds whose payout was never credited'

    def handle(self, *args, **options):
        pending = Round.objects.exclude(status=Round.STATUS_ACTIVE).filter(settled_at__isnull=True)

        if not pending.exists():
            self.stdout.write(self.style.SUCCESS('Nothing to settle.'))
            return

        engine = RoundEngine()
        settled = 0
        for round_id in list(pending.values_list('id', flat=True)):
            try:
                settlement = engine.settle(round_id)
            except RoundError as e:
                self.stdout.write(self.style.ERROR(f"Round {round_id} still unsettled: {e}"))
                continue
            settled += 1
            self.stdout.write(f"  {round_id} | {settlement.end_reason} | net {settlement.net}")

        self.stdout.write(self.style.SUCCESS(f'Settled {settled} round(s)'))
