# rolls/serializers.py
from __future__ import annotations
from decimal import Decimal
from rest_framework import serializers
from .models import Round, RollRecord


class OpenRoundIn(serializers.Serializer):
    # Range checks live in the engine so they come back as typed errors
    wager = serializers.DecimalField(max_digits=14, decimal_places=2)
    chain_length = serializers.IntegerField(required=False)


class CommitmentOut(serializers.Serializer):
    seed_commitment = serializers.CharField()
    chain_length = serializers.IntegerField()


class RollRecordOut(serializers.ModelSerializer):
    class Meta:
        model = RollRecord
        fields = ["index", "value", "multiplier_after", "created_at"]


class RoundStateOut(serializers.ModelSerializer):
    round_id = serializers.UUIDField(source="id")
    commitment = serializers.SerializerMethodField()
    rolls = RollRecordOut(many=True, read_only=True)
    settled = serializers.BooleanField(source="is_settled")

    class Meta:
        model = Round
        fields = [
            "round_id",
            "stake",
            "chain_length",
            "commitment",
            "status",
            "end_reason",
            "roll_index",
            "running_multiplier",
            "payout_amount",
            "settled",
            "rolls",
            "created_at",
            "finished_at",
        ]

    def get_commitment(self, obj):
        return CommitmentOut(obj.commitment).data

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # Net payout is not defined until the round ends
        if instance.is_active:
            data["payout_amount"] = None
        return data


class RoundHistoryOut(serializers.ModelSerializer):
    round_id = serializers.UUIDField(source="id")

    class Meta:
        model = Round
        fields = [
            "round_id",
            "stake",
            "status",
            "end_reason",
            "roll_index",
            "running_multiplier",
            "payout_amount",
            "created_at",
        ]


class VerifyIn(serializers.Serializer):
    seed_commitment = serializers.CharField(max_length=64)
    chain_length = serializers.IntegerField(min_value=1, max_value=10000)
    playable_rolls = serializers.IntegerField(min_value=0, max_value=10000, required=False)
    revealed_seed = serializers.CharField(max_length=128)
    rolls_served = serializers.ListField(
        child=serializers.DecimalField(max_digits=10, decimal_places=4),
        allow_empty=True,
    )
    house_edge = serializers.DecimalField(max_digits=5, decimal_places=4, required=False, default=Decimal("0"))
    explosion_skew = serializers.DecimalField(max_digits=6, decimal_places=4, required=False, default=Decimal("0"))
