# rolls/models.py
from __future__ import annotations

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from .defaults import DEFAULT_SETTINGS
from .deriver import CurveConfig
from .exceptions import RoundStillActive
from .provably_fair import Commitment
from .verifier import VerificationRecord

User = settings.AUTH_USER_MODEL


class RollSettings(models.Model):
    # Singleton row – manage via admin
    house_edge = models.DecimalField(
        max_digits=5, decimal_places=4,
        validators=[MinValueValidator(Decimal("0.0000")), MaxValueValidator(Decimal("0.5000"))],
        default=DEFAULT_SETTINGS["house_edge"],
    )
    explosion_skew = models.DecimalField(
        max_digits=6, decimal_places=4,
        validators=[MinValueValidator(Decimal("0.0000")), MaxValueValidator(Decimal("10.0000"))],
        default=DEFAULT_SETTINGS["explosion_skew"],
    )
    default_chain_length = models.PositiveIntegerField(
        default=DEFAULT_SETTINGS["default_chain_length"],
        validators=[MinValueValidator(1)],
    )
    max_chain_length = models.PositiveIntegerField(
        default=DEFAULT_SETTINGS["max_chain_length"],
        validators=[MinValueValidator(1), MaxValueValidator(1000)],
    )
    min_wager = models.DecimalField(max_digits=14, decimal_places=2, default=DEFAULT_SETTINGS["min_wager"])
    max_wager = models.DecimalField(max_digits=14, decimal_places=2, default=DEFAULT_SETTINGS["max_wager"])

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return "Roll Game Settings"

    @staticmethod
    def get():
        obj, _ = RollSettings.objects.get_or_create(pk=1)
        return obj

    def curve(self) -> CurveConfig:
        return CurveConfig(house_edge=self.house_edge, explosion_skew=self.explosion_skew)


class Round(models.Model):
    STATUS_ACTIVE = "active"
    STATUS_EXPLODED = "exploded"
    STATUS_CASHED = "cashed"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_EXPLODED, "Exploded"),
        (STATUS_CASHED, "Cashed"),
    ]

    END_EXPLODED = "exploded"
    END_CASHOUT = "cashout"
    END_EXHAUSTED = "exhausted"
    END_ABANDONED = "abandoned"
    END_FORFEITED = "forfeited"

    END_REASON_CHOICES = [
        (END_EXPLODED, "Exploded"),
        (END_CASHOUT, "Cashed out by player"),
        (END_EXHAUSTED, "All rolls used"),
        (END_ABANDONED, "Abandoned, cashed out"),
        (END_FORFEITED, "Abandoned, forfeited"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="roll_rounds", db_index=True)

    stake = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    # Rolls this round may consume
    chain_length = models.PositiveIntegerField()

    # Commitment published at open; the chain carries one extra sealing link
    seed_commitment = models.CharField(max_length=64, db_index=True)
    commitment_length = models.PositiveIntegerField()
    server_seed = models.CharField(max_length=64)  # secret until the round ends

    house_edge = models.DecimalField(max_digits=5, decimal_places=4)
    explosion_skew = models.DecimalField(max_digits=6, decimal_places=4)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    end_reason = models.CharField(max_length=16, choices=END_REASON_CHOICES, blank=True, default="")
    roll_index = models.PositiveIntegerField(default=0)
    running_multiplier = models.DecimalField(max_digits=18, decimal_places=4, default=Decimal("0.0000"))
    payout_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    last_action_at = models.DateTimeField(auto_now_add=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"], name="round_user_status_idx"),
            models.Index(fields=["status", "last_action_at"], name="round_status_idle_idx"),
        ]

    def __str__(self):
        return f"Round {self.id} ({self.status} @ {self.running_multiplier}x)"

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    @property
    def commitment(self) -> Commitment:
        return Commitment(seed_commitment=self.seed_commitment, chain_length=self.commitment_length)

    @property
    def curve(self) -> CurveConfig:
        return CurveConfig(house_edge=self.house_edge, explosion_skew=self.explosion_skew)

    def rolls_served(self) -> tuple:
        return tuple(self.rolls.order_by("index").values_list("value", flat=True))

    def verification_record(self) -> VerificationRecord:
        # The seed only leaves the server once the round is over
        if self.is_active:
            raise RoundStillActive("Round is still active")
        return VerificationRecord(
            commitment=self.commitment,
            revealed_seed=self.server_seed,
            rolls_served=self.rolls_served(),
            curve=self.curve,
            playable_rolls=self.chain_length,
        )


class RollRecord(models.Model):
    id = models.BigAutoField(primary_key=True)
    round = models.ForeignKey(Round, on_delete=models.CASCADE, related_name="rolls")
    index = models.PositiveIntegerField()
    value = models.DecimalField(max_digits=10, decimal_places=4)
    multiplier_after = models.DecimalField(max_digits=18, decimal_places=4)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("round", "index")]
        ordering = ["index"]

    def __str__(self):
        return f"Roll {self.index} of {self.round_id}: {self.value}"
