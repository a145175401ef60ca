# rolls/admin.py
from django.contrib import admin
from .models import RollSettings, Round, RollRecord

@admin.register(RollSettings)
class RollSettingsAdmin(admin.ModelAdmin):
    list_display = ("id", "house_edge", "explosion_skew", "default_chain_length", "max_chain_length", "min_wager", "max_wager", "updated_at")
    list_editable = ("house_edge", "explosion_skew", "default_chain_length", "max_chain_length", "min_wager", "max_wager")


class RollRecordInline(admin.TabularInline):
    model = RollRecord
    extra = 0
    can_delete = False
    readonly_fields = ("index", "value", "multiplier_after", "created_at")


@admin.register(Round)
class RoundAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "stake", "status", "end_reason", "roll_index", "chain_length", "running_multiplier", "payout_amount", "settled_at", "created_at")
    list_filter = ("status", "end_reason")
    search_fields = ("id", "user__username", "seed_commitment")
    readonly_fields = ("seed_commitment", "commitment_length", "server_seed", "house_edge", "explosion_skew", "created_at", "finished_at", "settled_at")
    inlines = [RollRecordInline]
