class RoundError(Exception):
    """Base for every rejected round operation."""

    code = "round_error"


class InvalidWager(RoundError):
    code = "invalid_wager"


class InsufficientFunds(RoundError):
    code = "insufficient_funds"


class InvalidLength(RoundError):
    code = "invalid_length"


class IndexOutOfRange(RoundError):
    code = "index_out_of_range"


class RoundNotFound(RoundError):
    code = "round_not_found"


class RoundInProgress(RoundError):
    code = "round_in_progress"


class RoundTerminated(RoundError):
    code = "round_terminated"


class ChainExhausted(RoundError):
    code = "chain_exhausted"


class RoundStillActive(RoundError):
    code = "round_active"


class RoundNotIdle(RoundError):
    code = "round_not_idle"


class SettlementError(RoundError):
    code = "settlement_failed"
