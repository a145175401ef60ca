# rolls/defaults.py
from decimal import Decimal

DEFAULT_SETTINGS = {
    "house_edge": Decimal("0.0200"),
    "explosion_skew": Decimal("0.0000"),
    "default_chain_length": 5,
    "max_chain_length": 50,
    "min_wager": Decimal("1.00"),
    "max_wager": Decimal("100000.00"),
}

ABANDON_CASH_OUT = "cash_out"
ABANDON_FORFEIT = "forfeit"
ABANDON_POLICIES = (ABANDON_CASH_OUT, ABANDON_FORFEIT)
