# rolls/engine.py
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from wallets.ledger import InsufficientFunds as LedgerInsufficientFunds
from wallets.ledger import WalletError, WalletLedger

from .defaults import ABANDON_FORFEIT, ABANDON_POLICIES
from .deriver import RollDeriver
from .exceptions import (
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
from .models import RollRecord, RollSettings, Round
from .provably_fair import SEALING_LINKS, create_chain, value_at
from .verifier import VerificationRecord

logger = logging.getLogger(__name__)

D0 = Decimal("0")
MONEY = Decimal("0.01")


@dataclass(frozen=True)
class Settlement:
    round_id: uuid.UUID
    status: str
    end_reason: str
    stake: Decimal
    multiplier: Decimal
    net: Decimal
    record: VerificationRecord

    def to_dict(self) -> dict:
        return {
            "round_id": str(self.round_id),
            "status": self.status,
            "end_reason": self.end_reason,
            "stake": str(self.stake),
            "multiplier": str(self.multiplier),
            "net": str(self.net),
            "verification": self.record.to_dict(),
        }


@dataclass(frozen=True)
class RollOutcome:
    round_id: uuid.UUID
    roll: Decimal
    roll_index: int
    new_multiplier: Decimal
    status: str
    terminated: bool
    settlement: Optional[Settlement] = None

    def to_dict(self) -> dict:
        data = {
            "round_id": str(self.round_id),
            "roll": str(self.roll),
            "roll_index": self.roll_index,
            "new_multiplier": str(self.new_multiplier),
            "status": self.status,
            "terminated": self.terminated,
            "settled": self.settlement is not None,
        }
        if self.settlement is not None:
            data["settlement"] = self.settlement.to_dict()
        return data


def to_stake(wager) -> Decimal:
    """Validate a wager and return it as a two-place Decimal."""
    if isinstance(wager, bool):
        raise InvalidWager("Wager must be a number")
    try:
        amount = Decimal(str(wager))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidWager("Wager must be a number")

    if not amount.is_finite() or amount <= 0:
        raise InvalidWager("Wager must be a positive amount")
    if amount != amount.quantize(MONEY):
        raise InvalidWager("Wager has more than two decimal places")
    return amount.quantize(MONEY)


def payout_for(status: str, stake: Decimal, multiplier: Decimal) -> Decimal:
    if status == Round.STATUS_EXPLODED:
        return Decimal("0.00")
    return (stake * max(multiplier, D0)).quantize(MONEY)


class RoundEngine:
    """
    Owns the round lifecycle: open (commit + debit), step (reveal one roll),
    cash_out, settle and abandon.

    Every mutation runs under a row lock on the round, so calls against the
    same round are queued, never interleaved. The ledger and deriver are
    collaborators; by default each round derives rolls with the curve it
    snapshotted at open.
    """

    def __init__(
        self,
        ledger=None,
        deriver: Optional[RollDeriver] = None,
        entropy_source: Callable[[int], bytes] = secrets.token_bytes,
    ):
        self.ledger = ledger or WalletLedger()
        self.deriver = deriver
        self.entropy_source = entropy_source

    # ===============================
    # OPEN
    # ===============================

    def open(self, user, wager, chain_length: Optional[int] = None) -> Round:
        cfg = RollSettings.get()
        stake = to_stake(wager)

        if stake < cfg.min_wager:
            raise InvalidWager(f"Minimum wager is {cfg.min_wager}")
        if stake > cfg.max_wager:
            raise InvalidWager(f"Maximum wager is {cfg.max_wager}")

        if chain_length is None:
            chain_length = cfg.default_chain_length
        if isinstance(chain_length, bool) or not isinstance(chain_length, int) or chain_length <= 0:
            raise InvalidLength("Chain length must be a positive integer")
        if chain_length > cfg.max_chain_length:
            raise InvalidLength(f"Chain length may not exceed {cfg.max_chain_length}")

        commitment, seed = create_chain(chain_length + SEALING_LINKS, self.entropy_source)
        curve = self.deriver.config if self.deriver is not None else cfg.curve()
        round_id = uuid.uuid4()

        with transaction.atomic():
            try:
                self.ledger.debit(
                    user,
                    stake,
                    reference=f"roll:{round_id}:stake",
                    meta={"reason": "roll_stake", "round_id": str(round_id)},
                )
            except LedgerInsufficientFunds as exc:
                raise InsufficientFunds(str(exc)) from exc

            # Checked under the wallet lock taken by debit
            if Round.objects.filter(user=user, status=Round.STATUS_ACTIVE).exists():
                raise RoundInProgress("Finish the current round first")

            rnd = Round.objects.create(
                id=round_id,
                user=user,
                stake=stake,
                chain_length=chain_length,
                seed_commitment=commitment.seed_commitment,
                commitment_length=commitment.chain_length,
                server_seed=seed,
                house_edge=curve.house_edge,
                explosion_skew=curve.explosion_skew,
            )

        logger.info(f"Opened round {rnd.id} for user {user.pk}: stake={stake} rolls={chain_length}")
        return rnd

    # ===============================
    # STEP
    # ===============================

    def step(self, round_ref, user=None) -> RollOutcome:
        with transaction.atomic():
            rnd = self._locked(round_ref, user)

            if not rnd.is_active:
                raise RoundTerminated("Round is over")
            if rnd.roll_index >= rnd.chain_length:
                raise ChainExhausted("No rolls left in this round")

            index = rnd.roll_index
            link = value_at(rnd.server_seed, index, rnd.commitment_length)
            roll = self._deriver_for(rnd).derive(link, index)

            rnd.running_multiplier = rnd.running_multiplier + roll
            rnd.roll_index = index + 1

            if rnd.running_multiplier < D0:
                self._finish(rnd, Round.STATUS_EXPLODED, Round.END_EXPLODED)
            elif rnd.roll_index == rnd.chain_length:
                self._finish(rnd, Round.STATUS_CASHED, Round.END_EXHAUSTED)

            rnd.version += 1
            rnd.last_action_at = timezone.now()
            rnd.save()

            RollRecord.objects.create(
                round=rnd,
                index=index,
                value=roll,
                multiplier_after=rnd.running_multiplier,
            )

        settlement = None
        if not rnd.is_active:
            logger.info(f"Round {rnd.id} ended ({rnd.end_reason}) at {rnd.running_multiplier}x")
            try:
                settlement = self.settle(rnd.pk)
            except SettlementError:
                logger.exception(f"Settlement of round {rnd.id} failed; left for retry")

        return RollOutcome(
            round_id=rnd.id,
            roll=roll,
            roll_index=rnd.roll_index,
            new_multiplier=rnd.running_multiplier,
            status=rnd.status,
            terminated=not rnd.is_active,
            settlement=settlement,
        )

    # ===============================
    # CASH OUT / ABANDON
    # ===============================

    def cash_out(self, round_ref, user=None) -> Settlement:
        with transaction.atomic():
            rnd = self._locked(round_ref, user)
            if not rnd.is_active:
                raise RoundTerminated("Round is over")

            self._finish(rnd, Round.STATUS_CASHED, Round.END_CASHOUT)
            rnd.version += 1
            rnd.last_action_at = timezone.now()
            rnd.save()

        logger.info(f"Round {rnd.id} cashed out at {rnd.running_multiplier}x")
        return self.settle(rnd.pk)

    def abandon(self, round_ref, policy: Optional[str] = None, idle_before=None) -> Settlement:
        """
        End an Active round whose player went away, per the abandon policy.

        With ``idle_before`` the round is only ended if its last action is
        still older than that instant once the row is locked.
        """
        policy = policy or settings.ROLLS_ABANDON_POLICY
        if policy not in ABANDON_POLICIES:
            raise ValueError(f"Unknown abandon policy {policy!r}")

        with transaction.atomic():
            rnd = self._locked(round_ref)
            if not rnd.is_active:
                raise RoundTerminated("Round is over")
            if idle_before is not None and rnd.last_action_at >= idle_before:
                raise RoundNotIdle("Round was played since it went idle")

            if policy == ABANDON_FORFEIT:
                self._finish(rnd, Round.STATUS_EXPLODED, Round.END_FORFEITED)
            else:
                self._finish(rnd, Round.STATUS_CASHED, Round.END_ABANDONED)
            rnd.version += 1
            rnd.save()

        logger.warning(f"Round {rnd.id} abandoned ({policy}) at {rnd.running_multiplier}x")
        return self.settle(rnd.pk)

    # ===============================
    # SETTLEMENT
    # ===============================

    def settle(self, round_ref, user=None) -> Settlement:
        """
        Credit the payout of a finished round and release its stake.
        Idempotent: settling a settled round just returns its settlement.
        """
        with transaction.atomic():
            rnd = self._locked(round_ref, user)
            if rnd.is_active:
                raise RoundStillActive("Round is still active")

            if not rnd.is_settled:
                try:
                    self.ledger.credit(
                        rnd.user,
                        rnd.payout_amount,
                        reference=f"roll:{rnd.id}:payout",
                        release=rnd.stake,
                        meta={"reason": "roll_payout", "round_id": str(rnd.id), "end_reason": rnd.end_reason},
                    )
                except WalletError as exc:
                    raise SettlementError(str(exc)) from exc

                rnd.settled_at = timezone.now()
                rnd.save(update_fields=["settled_at"])
                logger.info(f"Settled round {rnd.id}: net={rnd.payout_amount}")

        return self.settlement_for(rnd)

    def settlement_for(self, rnd: Round) -> Settlement:
        return Settlement(
            round_id=rnd.id,
            status=rnd.status,
            end_reason=rnd.end_reason,
            stake=rnd.stake,
            multiplier=rnd.running_multiplier,
            net=rnd.payout_amount,
            record=rnd.verification_record(),
        )

    # ===============================
    # HELPERS
    # ===============================

    def _finish(self, rnd: Round, status: str, end_reason: str) -> None:
        rnd.status = status
        rnd.end_reason = end_reason
        rnd.finished_at = timezone.now()
        rnd.payout_amount = payout_for(status, rnd.stake, rnd.running_multiplier)

    def _deriver_for(self, rnd: Round) -> RollDeriver:
        if self.deriver is not None:
            return self.deriver
        return RollDeriver(rnd.curve)

    def _locked(self, round_ref, user=None) -> Round:
        pk = round_ref.pk if isinstance(round_ref, Round) else round_ref
        qs = Round.objects.select_for_update()
        if user is not None:
            qs = qs.filter(user=user)
        try:
            return qs.get(pk=pk)
        except (Round.DoesNotExist, ValidationError):
            raise RoundNotFound("Round not found")
