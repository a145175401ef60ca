"""
Independent fairness check over public data.

Needs nothing but a revealed VerificationRecord: no database, no engine
state. Any mismatch is reported as False, never raised.
"""
from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from .deriver import CurveConfig, RollDeriver
from .exceptions import RoundError
from .provably_fair import Commitment, build_chain


@dataclass(frozen=True)
class VerificationRecord:
    commitment: Commitment
    revealed_seed: str
    rolls_served: Tuple[Decimal, ...]
    curve: CurveConfig = field(default_factory=CurveConfig)
    # Rolls the chain could ever serve; links past it only seal the commitment.
    # None means every link is playable.
    playable_rolls: Optional[int] = None

    @property
    def roll_limit(self) -> int:
        if self.playable_rolls is None:
            return self.commitment.chain_length
        return self.playable_rolls

    def would_have_rolled(self) -> List[Decimal]:
        """Every roll the round could have served, including unserved ones."""
        return recompute_rolls(self.revealed_seed, self.commitment.chain_length, self.curve, count=self.roll_limit)

    def to_dict(self) -> dict:
        data = {
            "commitment": self.commitment.to_dict(),
            "revealed_seed": self.revealed_seed,
            "rolls_served": [str(r) for r in self.rolls_served],
            "curve": self.curve.to_dict(),
        }
        if self.playable_rolls is not None:
            data["playable_rolls"] = self.playable_rolls
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationRecord":
        playable = data.get("playable_rolls")
        return cls(
            commitment=Commitment.from_dict(data["commitment"]),
            revealed_seed=str(data["revealed_seed"]).lower(),
            rolls_served=tuple(Decimal(str(r)) for r in data["rolls_served"]),
            curve=CurveConfig.from_dict(data.get("curve")),
            playable_rolls=None if playable is None else int(playable),
        )


def recompute_rolls(
    seed: str,
    chain_length: int,
    curve: Optional[CurveConfig] = None,
    count: Optional[int] = None,
) -> List[Decimal]:
    """Rolls every link of the chain yields, served or not."""
    deriver = RollDeriver(curve)
    links = build_chain(seed, chain_length)
    if count is not None:
        links = links[:count]
    return [deriver.derive(link, index) for index, link in enumerate(links)]


def verify(record: VerificationRecord, deriver: Optional[RollDeriver] = None) -> bool:
    try:
        commitment = record.commitment
        served = list(record.rolls_served)
        if len(served) > record.roll_limit or record.roll_limit > commitment.chain_length:
            return False

        links = build_chain(record.revealed_seed, commitment.chain_length)
        if not hmac.compare_digest(links[-1], commitment.seed_commitment.lower()):
            return False

        deriver = deriver or RollDeriver(record.curve)
        for index, served_roll in enumerate(served):
            if deriver.derive(links[index], index) != Decimal(served_roll):
                return False
        return True
    except (ValueError, TypeError, ArithmeticError, AttributeError, RoundError):
        return False
