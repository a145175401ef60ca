from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from rolls.deriver import CurveConfig
from rolls.engine import RoundEngine
from wallets.ledger import WalletError, WalletLedger
from wallets.models import Wallet


class ScriptedDeriver:
    """Serves a fixed roll per index instead of reading the chain link."""

    def __init__(self, rolls):
        self.rolls = [Decimal(r) for r in rolls]
        self.config = CurveConfig()

    def derive(self, link, index=0):
        return self.rolls[index]


class FlakyLedger(WalletLedger):
    """Wallet ledger whose next ``failures`` credits blow up."""

    def __init__(self, failures=1):
        self.failures = failures

    def credit(self, user, amount, reference, release=Decimal("0"), meta=None):
        if self.failures > 0:
            self.failures -= 1
            raise WalletError("ledger unavailable")
        return super().credit(user, amount, reference, release=release, meta=meta)


def counting_entropy():
    state = {"n": 0}

    def source(size):
        state["n"] += 1
        return state["n"].to_bytes(size, "big")

    return source


def wallet_of(user) -> Wallet:
    return Wallet.objects.get(user=user)


@pytest.fixture
def player(django_user_model):
    return django_user_model.objects.create_user(username="player", password="pw")


@pytest.fixture
def other_player(django_user_model):
    return django_user_model.objects.create_user(username="other", password="pw")


@pytest.fixture
def api_client(player):
    client = APIClient()
    client.force_authenticate(user=player)
    return client


@pytest.fixture
def engine():
    return RoundEngine()


@pytest.fixture
def scripted():
    def make(rolls, ledger=None):
        return RoundEngine(ledger=ledger, deriver=ScriptedDeriver(rolls))
    return make
