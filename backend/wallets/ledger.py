"""
Player balance ledger.

Round code never touches Wallet rows directly; it calls ``debit`` when a
stake is accepted and ``credit`` when a round settles. Both take the wallet
row lock, so two requests for the same player are serialized and a stake
can never be spent twice.
"""
import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

D0 = Decimal("0.00")


class WalletError(Exception):
    pass


class InsufficientFunds(WalletError):
    pass


def _get_wallet_for_update(user):
    try:
        return Wallet.objects.select_for_update().get(user=user)
    except Wallet.DoesNotExist:
        raise InsufficientFunds("No wallet for player")


def ensure_wallet(user) -> Wallet:
    wallet, created = Wallet.objects.get_or_create(
        user=user,
        defaults={"balance": Decimal(settings.WALLET_STARTING_BALANCE)},
    )
    if created:
        logger.info(f"Opened wallet for user {user.pk} with {wallet.balance}")
    return wallet


@transaction.atomic
def debit(user, amount: Decimal, reference: str, meta=None) -> WalletTransaction:
    """
    Move ``amount`` from balance into locked_balance.
    Raises InsufficientFunds when the balance cannot cover it.
    """
    if amount <= 0:
        raise WalletError("Invalid debit amount")

    wallet = _get_wallet_for_update(user)

    if wallet.balance < amount:
        raise InsufficientFunds("Insufficient funds")

    wallet.balance -= amount
    wallet.locked_balance += amount
    wallet.save(update_fields=["balance", "locked_balance", "updated_at"])

    return WalletTransaction.objects.create(
        user=user,
        amount=amount,
        tx_type=WalletTransaction.DEBIT,
        reference=reference,
        meta=meta or {},
    )


@transaction.atomic
def credit(user, amount: Decimal, reference: str, release: Decimal = D0, meta=None) -> WalletTransaction:
    """
    Release ``release`` from locked_balance and pay ``amount`` into balance.

    Safe to call again with the same reference: the first transaction
    recorded under it is returned and nothing moves twice.
    """
    if amount < 0 or release < 0:
        raise WalletError("Invalid credit amount")

    wallet = _get_wallet_for_update(user)

    existing = WalletTransaction.objects.filter(reference=reference).first()
    if existing is not None:
        logger.info(f"Credit {reference} already applied, skipping")
        return existing

    wallet.locked_balance = max(wallet.locked_balance - release, D0)
    wallet.balance += amount
    wallet.save(update_fields=["balance", "locked_balance", "updated_at"])

    return WalletTransaction.objects.create(
        user=user,
        amount=amount,
        tx_type=WalletTransaction.CREDIT,
        reference=reference,
        meta=meta or {},
    )


class WalletLedger:
    """Ledger collaborator handed to the round engine."""

    def debit(self, user, amount, reference, meta=None):
        return debit(user, amount, reference, meta=meta)

    def credit(self, user, amount, reference, release=D0, meta=None):
        return credit(user, amount, reference, release=release, meta=meta)
