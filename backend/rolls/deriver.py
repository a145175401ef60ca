# rolls/deriver.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, localcontext
from typing import Callable, Optional, Tuple
import secrets

from .provably_fair import create_chain, iter_chain

D0 = Decimal("0")
D1 = Decimal("1")

ROLL_PLACES = Decimal("0.0001")
UNIFORM_BITS = 52
UNIFORM_HEX_CHARS = UNIFORM_BITS // 4


def q4(x: Decimal) -> Decimal:
    value = x.quantize(ROLL_PLACES, rounding=ROUND_HALF_EVEN)
    # no "-0.0000" rolls
    return value.copy_abs() if value.is_zero() else value


@dataclass(frozen=True)
class RollBand:
    low: Decimal
    high: Decimal


DEFAULT_OPENING_BANDS = (
    RollBand(Decimal("0.05"), Decimal("1.20")),
    RollBand(Decimal("-0.20"), Decimal("0.80")),
)


@dataclass(frozen=True)
class CurveConfig:
    """
    Shape of the roll distribution.

    The first rolls draw from ``opening_bands``. Every later roll draws from
    [tail_low, tail_high - tail_decay * k] where k counts rolls past the
    opening, so the upside shrinks the longer a player stays in; the top of
    the band never drops below tail_low.

    ``explosion_skew`` bends the uniform draw toward the low end of the band
    (0 keeps it uniform). ``house_edge`` shaves positive rolls.
    """

    house_edge: Decimal = D0
    explosion_skew: Decimal = D0
    opening_bands: Tuple[RollBand, ...] = DEFAULT_OPENING_BANDS
    tail_low: Decimal = Decimal("-0.30")
    tail_high: Decimal = Decimal("0.30")
    tail_decay: Decimal = Decimal("0.05")

    def __post_init__(self):
        if not D0 <= self.house_edge < D1:
            raise ValueError("house_edge must be in [0, 1)")
        if self.explosion_skew < D0:
            raise ValueError("explosion_skew must be >= 0")
        for band in self.opening_bands:
            if band.low > band.high:
                raise ValueError("roll band low must not exceed high")
        if self.tail_low > self.tail_high:
            raise ValueError("tail_low must not exceed tail_high")

    def to_dict(self) -> dict:
        return {
            "house_edge": str(self.house_edge),
            "explosion_skew": str(self.explosion_skew),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CurveConfig":
        data = data or {}
        return cls(
            house_edge=Decimal(str(data.get("house_edge", "0"))),
            explosion_skew=Decimal(str(data.get("explosion_skew", "0"))),
        )


class RollDeriver:
    """Maps a chain link to a signed multiplier contribution. Pure."""

    def __init__(self, config: Optional[CurveConfig] = None):
        self.config = config or CurveConfig()

    def uniform(self, link: str) -> Decimal:
        """First 52 bits of the link as a value in [0, 1)."""
        n = int(link[:UNIFORM_HEX_CHARS], 16)
        return Decimal(n) / Decimal(2 ** UNIFORM_BITS)

    def band(self, index: int) -> RollBand:
        cfg = self.config
        if index < len(cfg.opening_bands):
            return cfg.opening_bands[index]

        past_opening = index - len(cfg.opening_bands) + 1
        high = max(cfg.tail_high - cfg.tail_decay * past_opening, cfg.tail_low)
        return RollBand(cfg.tail_low, high)

    def derive(self, link: str, index: int = 0) -> Decimal:
        cfg = self.config
        band = self.band(index)

        with localcontext() as ctx:
            ctx.prec = 28
            u = self.uniform(link)
            if cfg.explosion_skew:
                u = u ** (D1 + cfg.explosion_skew)

            value = band.low + u * (band.high - band.low)
            if value > D0:
                value = value * (D1 - cfg.house_edge)

            return q4(value)


@dataclass
class SimulationReport:
    rounds: int = 0
    won: int = 0
    exploded: int = 0
    total_multiplier: Decimal = field(default=D0)

    @property
    def win_rate(self) -> Decimal:
        if not self.rounds:
            return D0
        return Decimal(self.won) / Decimal(self.rounds)

    @property
    def average_multiplier(self) -> Decimal:
        if not self.rounds:
            return D0
        return self.total_multiplier / Decimal(self.rounds)


def simulate(
    count: int,
    deriver: Optional[RollDeriver] = None,
    rolls_per_round: int = 5,
    entropy_source: Callable[[int], bytes] = secrets.token_bytes,
) -> SimulationReport:
    """
    Play ``count`` fresh rounds to the end without cashing out early.
    A round is won when it finishes above 1x, i.e. returns more than the stake.
    """
    deriver = deriver or RollDeriver()
    report = SimulationReport()

    for _ in range(count):
        _, seed = create_chain(rolls_per_round + 1, entropy_source)
        multiplier = D0
        for index, link in enumerate(iter_chain(seed, rolls_per_round)):
            multiplier += deriver.derive(link, index)
            if multiplier < D0:
                report.exploded += 1
                break

        final = max(multiplier, D0)
        report.rounds += 1
        report.total_multiplier += final
        if final > D1:
            report.won += 1

    return report
