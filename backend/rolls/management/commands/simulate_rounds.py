# rolls/management/commands/simulate_rounds.py
from decimal import Decimal

from django.core.management.base import BaseCommand, CommandError

from rolls.deriver import CurveConfig, RollDeriver, simulate
from rolls.models import RollSettings


class Command(BaseCommand):
    help = 'Play rounds offline with the current curve and report win rate and average multiplier'

    def add_arguments(self, parser):
        parser.add_argument('--count', type=int, default=10000)
        parser.add_argument('--rolls', type=int, default=None, help='Rolls per round (default: default_chain_length)')
        parser.add_argument('--house-edge', type=Decimal, default=None)
        parser.add_argument('--explosion-skew', type=Decimal, default=None)

    def handle(self, *args, **options):
        cfg = RollSettings.get()
        house_edge = options['house_edge'] if options['house_edge'] is not None else cfg.house_edge
        skew = options['explosion_skew'] if options['explosion_skew'] is not None else cfg.explosion_skew
        try:
            curve = CurveConfig(house_edge=house_edge, explosion_skew=skew)
        except ValueError as e:
            raise CommandError(str(e))

        rolls = options['rolls'] or cfg.default_chain_length
        report = simulate(options['count'], RollDeriver(curve), rolls_per_round=rolls)

        self.stdout.write(f"Won {report.won} out of {report.rounds} rounds")
        self.stdout.write(f"Exploded: {report.exploded}")
        self.stdout.write(f"Winrate: {report.win_rate:.4f}")
        self.stdout.write(f"Average multiplier: {report.average_multiplier:.4f}")
