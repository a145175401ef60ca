# rolls/views.py
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from .abuse import AbuseError, hit_rate_limit, step_rate_limit
from .deriver import CurveConfig
from .engine import RoundEngine
from .exceptions import (
    ChainExhausted,
    InsufficientFunds,
    InvalidLength,
    InvalidWager,
    RoundError,
    RoundInProgress,
    RoundNotFound,
    RoundNotIdle,
    RoundStillActive,
    RoundTerminated,
    SettlementError,
)
from .models import Round
from .provably_fair import Commitment
from .serializers import OpenRoundIn, RoundHistoryOut, RoundStateOut, VerifyIn
from .verifier import VerificationRecord, verify

engine = RoundEngine()

ERROR_STATUS = {
    InvalidWager: status.HTTP_400_BAD_REQUEST,
    InvalidLength: status.HTTP_400_BAD_REQUEST,
    InsufficientFunds: status.HTTP_402_PAYMENT_REQUIRED,
    RoundNotFound: status.HTTP_404_NOT_FOUND,
    RoundInProgress: status.HTTP_409_CONFLICT,
    RoundTerminated: status.HTTP_409_CONFLICT,
    ChainExhausted: status.HTTP_409_CONFLICT,
    RoundStillActive: status.HTTP_409_CONFLICT,
    RoundNotIdle: status.HTTP_409_CONFLICT,
    SettlementError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(exc: RoundError) -> Response:
    return Response(
        {"code": exc.code, "detail": str(exc)},
        status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
    )


def _round_for(request, round_id):
    try:
        return Round.objects.get(id=round_id, user=request.user)
    except Round.DoesNotExist:
        raise RoundNotFound("Round not found")


# =====================================================
# OPEN
# =====================================================

@api_view(["POST"])
@permission_classes([IsAuthenticated])
def open_round(request):
    serializer = OpenRoundIn(data=request.data)
    if not serializer.is_valid():
        if "wager" in serializer.errors:
            exc = InvalidWager("Wager must be a positive amount with at most two decimal places")
        else:
            exc = InvalidLength("Chain length must be a positive integer")
        resp = error_response(exc)
        resp.data["errors"] = serializer.errors
        return resp

    try:
        rnd = engine.open(
            request.user,
            serializer.validated_data["wager"],
            serializer.validated_data.get("chain_length"),
        )
    except RoundError as exc:
        return error_response(exc)

    return Response(RoundStateOut(rnd).data, status=status.HTTP_201_CREATED)


# =====================================================
# STATE / HISTORY
# =====================================================

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def round_state(request, round_id):
    try:
        rnd = _round_for(request, round_id)
    except RoundError as exc:
        return error_response(exc)
    return Response(RoundStateOut(rnd).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def round_history(request):
    rounds = Round.objects.filter(user=request.user).order_by("-created_at")[:50]
    return Response(RoundHistoryOut(rounds, many=True).data)


# =====================================================
# ROLL / CASHOUT / SETTLE
# =====================================================

@api_view(["POST"])
@permission_classes([IsAuthenticated])
def submit_roll(request, round_id):
    try:
        hit_rate_limit(step_rate_limit(request.user.id, round_id))
    except AbuseError as exc:
        return Response({"code": "rate_limited", "detail": str(exc)}, status=status.HTTP_429_TOO_MANY_REQUESTS)

    try:
        outcome = engine.step(round_id, user=request.user)
    except RoundError as exc:
        return error_response(exc)
    return Response(outcome.to_dict())


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def cash_out(request, round_id):
    try:
        settlement = engine.cash_out(round_id, user=request.user)
    except RoundError as exc:
        return error_response(exc)
    return Response(settlement.to_dict())


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def settle(request, round_id):
    try:
        settlement = engine.settle(round_id, user=request.user)
    except RoundError as exc:
        return error_response(exc)
    return Response(settlement.to_dict())


# =====================================================
# VERIFICATION
# =====================================================

@api_view(["GET"])
@permission_classes([IsAuthenticated])
def verification(request, round_id):
    try:
        record = _round_for(request, round_id).verification_record()
    except RoundError as exc:
        return error_response(exc)

    data = record.to_dict()
    data["valid"] = verify(record)
    return Response(data)


@api_view(["POST"])
@permission_classes([AllowAny])
def verify_record(request):
    serializer = VerifyIn(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        record = VerificationRecord(
            commitment=Commitment(data["seed_commitment"].lower(), data["chain_length"]),
            revealed_seed=data["revealed_seed"].lower(),
            rolls_served=tuple(data["rolls_served"]),
            curve=CurveConfig(house_edge=data["house_edge"], explosion_skew=data["explosion_skew"]),
            playable_rolls=data.get("playable_rolls"),
        )
    except ValueError:
        return Response({"valid": False})

    return Response({"valid": verify(record)})
