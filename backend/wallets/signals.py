from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .ledger import ensure_wallet


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_wallet_for_new_user(sender, instance, created, **kwargs):
    if created:
        ensure_wallet(instance)
