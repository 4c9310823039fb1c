from rankmatch.services.rank_policy import RankPolicy, RankTier
from rankmatch.services.ledger_service import (
    Eligibility,
    LedgerService,
    ReserveResult,
    CommitResult,
    ReleaseResult,
)
from rankmatch.services.match_service import MatchService
from rankmatch.services.match_history_service import MatchHistoryService
from rankmatch.services.settlement_service import (
    SettlementService,
    SettlementResult,
    SettlementUnit,
    RatingChange,
    compute_win_rate,
    expected_score,
    k_factor,
    new_rating,
)
from rankmatch.services.reservation_monitor import ReservationMonitor, get_reservation_monitor
from rankmatch.services.matchmaking_service import MatchmakingService, CleanupReport, FeeCommitOutcome
from rankmatch.services.player_service import PlayerService, PlayerServiceError

__all__ = [
    "RankPolicy",
    "RankTier",
    "Eligibility",
    "LedgerService",
    "ReserveResult",
    "CommitResult",
    "ReleaseResult",
    "MatchService",
    "MatchHistoryService",
    "SettlementService",
    "SettlementResult",
    "SettlementUnit",
    "RatingChange",
    "compute_win_rate",
    "expected_score",
    "k_factor",
    "new_rating",
    "ReservationMonitor",
    "get_reservation_monitor",
    "MatchmakingService",
    "CleanupReport",
    "FeeCommitOutcome",
    "PlayerService",
    "PlayerServiceError",
]
