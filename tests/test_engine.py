"""Tests for the round engine: lifecycle, ledger pairing and settlement."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from conftest import FlakyLedger, ScriptedDeriver, wallet_of
from rolls.engine import RoundEngine, payout_for, to_stake
from rolls.exceptions import (
    ChainExhausted,
    InsufficientFunds,
    InvalidLength,
    InvalidWager,
    RoundInProgress,
    RoundNotFound,
    RoundNotIdle,
    RoundStillActive,
    RoundTerminated,
    SettlementError,
)
from rolls.models import RollRecord, RollSettings, Round
from rolls.verifier import recompute_rolls, verify
from wallets.models import WalletTransaction

pytestmark = pytest.mark.django_db


class TestOpen:
    def test_open_debits_and_commits(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("100"), 3)

        assert rnd.status == Round.STATUS_ACTIVE
        assert rnd.roll_index == 0
        assert rnd.running_multiplier == Decimal("0")
        assert rnd.chain_length == 3
        assert rnd.commitment_length == 4
        assert len(rnd.seed_commitment) == 64

        wallet = wallet_of(player)
        assert wallet.balance == Decimal("9900.00")
        assert wallet.locked_balance == Decimal("100.00")
        assert WalletTransaction.objects.get(reference=f"roll:{rnd.id}:stake").amount == Decimal("100.00")

    def test_default_chain_length_from_settings(self, player, engine) -> None:
        rnd = engine.open(player, "10")
        assert rnd.chain_length == RollSettings.get().default_chain_length

    def test_curve_snapshot(self, player, engine) -> None:
        cfg = RollSettings.get()
        cfg.house_edge = Decimal("0.0500")
        cfg.save()

        rnd = engine.open(player, "10", 3)
        cfg.house_edge = Decimal("0.2500")
        cfg.save()

        rnd.refresh_from_db()
        assert rnd.house_edge == Decimal("0.0500")

    @pytest.mark.parametrize("length", [0, -1, True, 51])
    def test_bad_length_rejected_before_debit(self, player, engine, length) -> None:
        with pytest.raises(InvalidLength):
            engine.open(player, Decimal("100"), length)

        assert wallet_of(player).balance == Decimal("10000.00")
        assert not WalletTransaction.objects.exists()
        assert not Round.objects.exists()

    @pytest.mark.parametrize("wager", [0, -5, "NaN", "Infinity", "abc", "1.001", "0.50", "100000.01", True])
    def test_bad_wager_rejected(self, player, engine, wager) -> None:
        with pytest.raises(InvalidWager):
            engine.open(player, wager, 3)
        assert wallet_of(player).balance == Decimal("10000.00")
        assert not Round.objects.exists()

    def test_insufficient_funds_creates_no_round(self, player, engine) -> None:
        wallet = wallet_of(player)
        wallet.balance = Decimal("20.00")
        wallet.save()

        with pytest.raises(InsufficientFunds):
            engine.open(player, Decimal("50"), 3)

        assert not Round.objects.exists()
        assert wallet_of(player).balance == Decimal("20.00")

    def test_one_active_round_per_player(self, player, other_player, engine) -> None:
        engine.open(player, Decimal("100"), 3)

        with pytest.raises(RoundInProgress):
            engine.open(player, Decimal("100"), 3)

        # the second debit was rolled back with the refused round
        assert wallet_of(player).balance == Decimal("9900.00")
        assert Round.objects.filter(user=player).count() == 1
        assert engine.open(other_player, Decimal("100"), 3).status == Round.STATUS_ACTIVE


class TestScenarios:
    def test_chain_exhausted_cashes_out(self, player, scripted) -> None:
        engine = scripted(["0.5", "0.3", "-0.2"])
        rnd = engine.open(player, Decimal("100"), 3)

        first = engine.step(rnd)
        assert first.new_multiplier == Decimal("0.5")
        assert first.status == Round.STATUS_ACTIVE
        assert not first.terminated

        second = engine.step(rnd)
        assert second.new_multiplier == Decimal("0.8")
        assert second.status == Round.STATUS_ACTIVE

        third = engine.step(rnd)
        assert third.new_multiplier == Decimal("0.6")
        assert third.status == Round.STATUS_CASHED
        assert third.terminated
        assert third.settlement.net == Decimal("60.00")
        assert third.settlement.end_reason == Round.END_EXHAUSTED

        wallet = wallet_of(player)
        assert wallet.balance == Decimal("9960.00")
        assert wallet.locked_balance == Decimal("0.00")

    def test_first_roll_explodes(self, player, scripted) -> None:
        engine = scripted(["-0.1", "0.5", "0.5"])
        rnd = engine.open(player, Decimal("50"), 3)

        outcome = engine.step(rnd)
        assert outcome.new_multiplier == Decimal("-0.1")
        assert outcome.status == Round.STATUS_EXPLODED
        assert outcome.settlement.net == Decimal("0.00")

        with pytest.raises(RoundTerminated):
            engine.step(rnd)
        with pytest.raises(RoundTerminated):
            engine.cash_out(rnd)

        rnd.refresh_from_db()
        assert rnd.roll_index == 1
        assert wallet_of(player).balance == Decimal("9950.00")
        assert wallet_of(player).locked_balance == Decimal("0.00")

    def test_early_cash_out_reveals_seed_for_whole_chain(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("80"), 3)
        outcome = engine.step(rnd)
        # the opening band is strictly positive
        assert outcome.status == Round.STATUS_ACTIVE

        settlement = engine.cash_out(rnd)
        assert settlement.status == Round.STATUS_CASHED
        assert settlement.end_reason == Round.END_CASHOUT
        assert settlement.net == (Decimal("80") * outcome.new_multiplier).quantize(Decimal("0.01"))

        record = settlement.record
        assert record.rolls_served == (outcome.roll,)
        assert verify(record) is True

        # the sealing link behind the commitment is never a roll
        would_have_rolled = record.would_have_rolled()
        assert len(would_have_rolled) == 3
        assert would_have_rolled == recompute_rolls(record.revealed_seed, 4, record.curve)[:3]
        assert would_have_rolled[0] == outcome.roll

    def test_exact_zero_is_not_an_explosion(self, player, scripted) -> None:
        engine = scripted(["0.2", "-0.2", "0.1"])
        rnd = engine.open(player, Decimal("100"), 3)

        engine.step(rnd)
        outcome = engine.step(rnd)
        assert outcome.new_multiplier == Decimal("0")
        assert outcome.status == Round.STATUS_ACTIVE

        settlement = engine.cash_out(rnd)
        assert settlement.status == Round.STATUS_CASHED
        assert settlement.net == Decimal("0.00")

    def test_exhausting_at_zero_is_cashed(self, player, scripted) -> None:
        engine = scripted(["0.2", "-0.2"])
        rnd = engine.open(player, Decimal("100"), 2)

        engine.step(rnd)
        outcome = engine.step(rnd)
        assert outcome.status == Round.STATUS_CASHED
        assert outcome.settlement.end_reason == Round.END_EXHAUSTED
        assert outcome.settlement.net == Decimal("0.00")

    def test_cash_out_before_any_roll(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("100"), 3)
        settlement = engine.cash_out(rnd)
        assert settlement.net == Decimal("0.00")
        assert settlement.record.rolls_served == ()
        assert verify(settlement.record) is True


class TestStepInvariants:
    def test_multiplier_is_running_sum(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 12)

        served = []
        while True:
            outcome = engine.step(rnd)
            served.append(outcome.roll)
            rnd.refresh_from_db()
            assert rnd.roll_index == len(served)
            assert rnd.running_multiplier == sum(served, Decimal("0"))
            assert rnd.rolls_served() == tuple(served)
            if outcome.terminated:
                break

        assert rnd.roll_index <= rnd.chain_length
        if rnd.status == Round.STATUS_EXPLODED:
            assert rnd.running_multiplier < 0
        else:
            assert rnd.roll_index == rnd.chain_length
        assert verify(rnd.verification_record()) is True

    def test_rolls_come_from_the_committed_chain(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 5)
        outcome = engine.step(rnd)
        rnd.refresh_from_db()
        expected = recompute_rolls(rnd.server_seed, rnd.commitment_length, rnd.curve, count=1)
        assert [outcome.roll] == expected

    def test_commitment_never_changes(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 3)
        published = rnd.commitment
        engine.cash_out(rnd)
        rnd.refresh_from_db()
        assert rnd.commitment == published

    def test_chain_exhausted_is_checked(self, player, scripted) -> None:
        engine = scripted(["0.1", "0.1"])
        rnd = engine.open(player, Decimal("10"), 2)
        # force an inconsistent row: Active with every roll used
        Round.objects.filter(pk=rnd.pk).update(roll_index=2)
        with pytest.raises(ChainExhausted):
            engine.step(rnd)

    def test_step_on_someone_elses_round(self, player, other_player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 3)
        with pytest.raises(RoundNotFound):
            engine.step(rnd.pk, user=other_player)
        with pytest.raises(RoundNotFound):
            engine.step("not-a-uuid")

    def test_verification_hidden_while_active(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 3)
        with pytest.raises(RoundStillActive):
            rnd.verification_record()
        with pytest.raises(RoundStillActive):
            engine.settle(rnd)

    def test_roll_history_is_recorded(self, player, scripted) -> None:
        engine = scripted(["0.5", "0.25", "0.1"])
        rnd = engine.open(player, Decimal("10"), 3)
        engine.step(rnd)
        engine.step(rnd)
        records = list(RollRecord.objects.filter(round=rnd).values_list("index", "value", "multiplier_after"))
        assert records == [
            (0, Decimal("0.5"), Decimal("0.5")),
            (1, Decimal("0.25"), Decimal("0.75")),
        ]


class TestSettlement:
    def test_failed_settlement_is_retryable(self, player) -> None:
        engine = RoundEngine(ledger=FlakyLedger(failures=1), deriver=ScriptedDeriver(["0.5", "0.5"]))
        rnd = engine.open(player, Decimal("100"), 2)

        engine.step(rnd)
        outcome = engine.step(rnd)
        assert outcome.terminated
        assert outcome.settlement is None

        rnd.refresh_from_db()
        assert rnd.status == Round.STATUS_CASHED
        assert rnd.settled_at is None
        assert wallet_of(player).locked_balance == Decimal("100.00")

        settlement = engine.settle(rnd)
        assert settlement.net == Decimal("100.00")
        assert settlement.record.rolls_served == (Decimal("0.5"), Decimal("0.5"))

        wallet = wallet_of(player)
        assert wallet.balance == Decimal("10000.00")
        assert wallet.locked_balance == Decimal("0.00")

    def test_settle_is_idempotent(self, player, scripted) -> None:
        engine = scripted(["0.5"])
        rnd = engine.open(player, Decimal("100"), 1)
        engine.step(rnd)

        engine.settle(rnd)
        engine.settle(rnd)

        assert WalletTransaction.objects.filter(reference=f"roll:{rnd.id}:payout").count() == 1
        assert wallet_of(player).balance == Decimal("9950.00")

    def test_cash_out_surfaces_ledger_failure(self, player) -> None:
        engine = RoundEngine(ledger=FlakyLedger(failures=1), deriver=ScriptedDeriver(["0.4"]))
        rnd = engine.open(player, Decimal("100"), 3)
        engine.step(rnd)

        with pytest.raises(SettlementError):
            engine.cash_out(rnd)

        rnd.refresh_from_db()
        assert rnd.status == Round.STATUS_CASHED
        assert rnd.payout_amount == Decimal("40.00")
        assert rnd.settled_at is None

        assert engine.settle(rnd).net == Decimal("40.00")
        assert wallet_of(player).balance == Decimal("9940.00")


class TestAbandon:
    def test_cash_out_policy(self, player, scripted) -> None:
        engine = scripted(["0.7", "0.1"])
        rnd = engine.open(player, Decimal("100"), 2)
        engine.step(rnd)

        settlement = engine.abandon(rnd, policy="cash_out")
        assert settlement.status == Round.STATUS_CASHED
        assert settlement.end_reason == Round.END_ABANDONED
        assert settlement.net == Decimal("70.00")

    def test_forfeit_policy(self, player, scripted) -> None:
        engine = scripted(["0.7", "0.1"])
        rnd = engine.open(player, Decimal("100"), 2)
        engine.step(rnd)

        settlement = engine.abandon(rnd, policy="forfeit")
        assert settlement.status == Round.STATUS_EXPLODED
        assert settlement.end_reason == Round.END_FORFEITED
        assert settlement.net == Decimal("0.00")
        assert wallet_of(player).locked_balance == Decimal("0.00")

    def test_unknown_policy(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 2)
        with pytest.raises(ValueError):
            engine.abandon(rnd, policy="freeze")

    def test_finished_round_cannot_be_abandoned(self, player, engine) -> None:
        rnd = engine.open(player, Decimal("10"), 2)
        engine.cash_out(rnd)
        with pytest.raises(RoundTerminated):
            engine.abandon(rnd)

    def test_recently_played_round_is_not_idle(self, player, scripted) -> None:
        engine = scripted(["0.7", "0.1"])
        rnd = engine.open(player, Decimal("100"), 2)
        cutoff = timezone.now()
        engine.step(rnd)

        with pytest.raises(RoundNotIdle):
            engine.abandon(rnd, policy="forfeit", idle_before=cutoff)

        rnd.refresh_from_db()
        assert rnd.status == Round.STATUS_ACTIVE
        assert wallet_of(player).locked_balance == Decimal("100.00")

    def test_idle_round_before_cutoff_is_abandoned(self, player, scripted) -> None:
        engine = scripted(["0.7", "0.1"])
        rnd = engine.open(player, Decimal("100"), 2)
        engine.step(rnd)
        Round.objects.filter(pk=rnd.pk).update(last_action_at=timezone.now() - timedelta(hours=1))

        cutoff = timezone.now() - timedelta(minutes=5)
        settlement = engine.abandon(rnd, policy="forfeit", idle_before=cutoff)
        assert settlement.end_reason == Round.END_FORFEITED


class TestHelpers:
    def test_to_stake_quantizes(self) -> None:
        assert to_stake("12.5") == Decimal("12.50")
        assert to_stake(3) == Decimal("3.00")

    def test_payout_clamps_and_zeroes_explosions(self) -> None:
        assert payout_for(Round.STATUS_CASHED, Decimal("100"), Decimal("0.6")) == Decimal("60.00")
        assert payout_for(Round.STATUS_CASHED, Decimal("100"), Decimal("-0.1")) == Decimal("0.00")
        assert payout_for(Round.STATUS_EXPLODED, Decimal("100"), Decimal("1.5")) == Decimal("0.00")
