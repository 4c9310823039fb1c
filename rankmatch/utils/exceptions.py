"""Domain exceptions for the escrow and settlement core.

Each error carries a stable snake_case ``code`` the HTTP layer returns as
``detail``; the exception message is the human-readable explanation.
"""


class MatchmakingError(RuntimeError):
    """Base exception for matchmaking, escrow and settlement failures."""

    code = "matchmaking_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ParticipantNotFoundError(MatchmakingError):
    code = "participant_not_found"


class MatchNotFoundError(MatchmakingError):
    code = "match_not_found"


class InsufficientFundsError(MatchmakingError):
    """Available (or locked) balance is below the required fee."""

    code = "insufficient_funds"


class NotReservedError(MatchmakingError):
    """Commit attempted for a fee that was never reserved."""

    code = "not_reserved"


class NothingReservedError(MatchmakingError):
    """Release attempted with no matching reservation."""

    code = "nothing_reserved"


class DuplicateReservationError(MatchmakingError):
    """A pending reservation already exists for this match and participant."""

    code = "duplicate_reservation"


class InvalidTransitionError(MatchmakingError):
    code = "invalid_transition"


class AlreadySettledError(MatchmakingError):
    code = "already_settled"


class InvalidWinnerError(MatchmakingError):
    code = "invalid_winner"


class InvalidStatusError(MatchmakingError):
    code = "invalid_status"


class EligibilityFailedError(MatchmakingError):
    code = "eligibility_failed"


class OperationFailedError(MatchmakingError):
    """Storage-level failure; the unit of work was rolled back."""

    code = "operation_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or "operation failed, state unchanged")
