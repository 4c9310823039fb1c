"""
Tests for SettlementService - ELO math, statistics and exactly-once settlement.
"""
import uuid

import pytest
from sqlalchemy import select

from rankmatch.models.base import CurrencyType, MatchOutcome, MatchStatus, MatchType, TransactionType
from rankmatch.models.match_history import MatchHistory
from rankmatch.models.transaction import Transaction
from rankmatch.services.match_service import MatchService
from rankmatch.services.settlement_service import (
    SettlementService,
    compute_win_rate,
    expected_score,
    k_factor,
    new_rating,
)
from rankmatch.utils.exceptions import (
    AlreadySettledError,
    InvalidStatusError,
    InvalidTransitionError,
    MatchNotFoundError,
)


async def _ongoing_match(db_session, white, black, match_type=MatchType.RANKED):
    service = MatchService(db_session)
    if match_type == MatchType.RANKED:
        match = await service.create(white.player_id, black.player_id, 4, CurrencyType.GEM)
    else:
        match = await service.create(white.player_id, black.player_id, None, None, MatchType.CASUAL)
    return await service.start(match.match_id)


class TestRatingMath:

    @pytest.mark.parametrize("rating,k", [(0, 32), (999, 32), (1000, 24), (1999, 24), (2000, 16), (2999, 16)])
    def test_k_factor_by_own_rating(self, rating, k):
        assert k_factor(rating) == k

    def test_expected_score_equal_ratings(self):
        assert expected_score(1200, 1200) == 0.5

    def test_equal_ratings_decisive_game(self):
        """1200 vs 1200 with K=24 moves both sides by 12."""
        assert new_rating(1200, 1200, 1) == 1212
        assert new_rating(1200, 1200, 0) == 1188

    def test_different_k_per_side(self):
        """A low-rated winner gains more than a high-rated loser drops."""
        winner_after = new_rating(900, 2100, 1)
        loser_after = new_rating(2100, 900, 0)
        assert winner_after - 900 > 2100 - loser_after

    def test_rating_clamped(self):
        assert new_rating(3000, 3000, 1) == 3000
        assert new_rating(0, 0, 0) == 0

    def test_win_rate(self):
        assert compute_win_rate(3, 5) == 60.0
        assert compute_win_rate(1, 3) == 33.33
        assert compute_win_rate(2, 3) == 66.67
        assert compute_win_rate(0, 0) == 0.0


class TestSettle:

    @pytest.mark.asyncio
    async def test_white_win_updates_ratings_and_counters(self, db_session, player_factory):
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        match = await _ongoing_match(db_session, white, black)

        result = await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN, {"moves": ["e4"]})

        assert result.white.before == 1200
        assert result.white.after == 1212
        assert result.black.after == 1188
        assert result.winner_id == white.player_id
        assert result.rating_changes()["black"] == {"player_id": black.player_id, "before": 1200, "after": 1188}

        await db_session.refresh(white)
        await db_session.refresh(black)
        assert (white.elo, white.win_count, white.lose_count, white.total_matches) == (1212, 1, 0, 1)
        assert (black.elo, black.win_count, black.lose_count, black.total_matches) == (1188, 0, 1, 1)
        assert white.win_rate == 100.0
        assert black.win_rate == 0.0

        await db_session.refresh(match)
        assert match.status == MatchStatus.WIN.value
        assert match.completed_at is not None
        assert (match.white_elo_before, match.white_elo_after) == (1200, 1212)
        assert (match.black_elo_before, match.black_elo_after) == (1200, 1188)

    @pytest.mark.asyncio
    async def test_black_win(self, db_session, player_factory):
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        match = await _ongoing_match(db_session, white, black)

        result = await SettlementService(db_session).settle(match.match_id, "lose")

        assert result.winner_id == black.player_id
        assert result.status == MatchStatus.LOSE
        assert result.black.after == 1212

    @pytest.mark.asyncio
    async def test_draw_keeps_ratings(self, db_session, player_factory):
        white = await player_factory(elo=1300)
        black = await player_factory(elo=1700)
        match = await _ongoing_match(db_session, white, black)

        result = await SettlementService(db_session).settle(match.match_id, MatchOutcome.DRAW)

        assert result.winner_id is None
        await db_session.refresh(white)
        await db_session.refresh(black)
        assert (white.elo, black.elo) == (1300, 1700)
        assert white.total_matches == black.total_matches == 1
        assert white.win_count == black.win_count == 0

    @pytest.mark.asyncio
    async def test_win_rate_after_three_wins_two_losses(self, db_session, player_factory):
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        settlement = SettlementService(db_session)

        for outcome in ("win", "win", "lose", "win", "lose"):
            match = await _ongoing_match(db_session, white, black)
            await settlement.settle(match.match_id, outcome)

        await db_session.refresh(white)
        assert (white.win_count, white.lose_count, white.total_matches) == (3, 2, 5)
        assert white.win_rate == 60.0

    @pytest.mark.asyncio
    async def test_history_entry_written(self, db_session, player_factory):
        white = await player_factory()
        black = await player_factory()
        match = await _ongoing_match(db_session, white, black)
        payload = {"moves": ["e4", "e5"], "game_data": {"clock": 300}}

        result = await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN, payload)

        rows = (await db_session.execute(
            select(MatchHistory).where(MatchHistory.match_id == match.match_id)
        )).scalars().all()
        assert [row.history_id for row in rows] == [result.history_id]
        assert rows[0].content == payload

    @pytest.mark.asyncio
    async def test_casual_match_skips_rating_math(self, db_session, player_factory):
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        match = await _ongoing_match(db_session, white, black, MatchType.CASUAL)

        result = await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN)

        assert result.ranked is False
        await db_session.refresh(white)
        assert (white.elo, white.win_count, white.total_matches) == (1200, 0, 0)
        await db_session.refresh(match)
        assert match.status == MatchStatus.WIN.value
        assert match.white_elo_after is None


class TestExactlyOnce:

    @pytest.mark.asyncio
    async def test_second_settlement_rejected_without_changes(self, db_session, player_factory):
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        match = await _ongoing_match(db_session, white, black)
        match_id = match.match_id
        settlement = SettlementService(db_session)
        await settlement.settle(match_id, MatchOutcome.WIN)

        with pytest.raises(AlreadySettledError):
            await settlement.settle(match_id, MatchOutcome.LOSE)

        await db_session.refresh(white)
        assert (white.elo, white.total_matches) == (1212, 1)
        history = (await db_session.execute(
            select(MatchHistory).where(MatchHistory.match_id == match_id)
        )).scalars().all()
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_invalid_outcome(self, db_session, player_factory):
        white = await player_factory()
        black = await player_factory()
        match = await _ongoing_match(db_session, white, black)

        with pytest.raises(InvalidStatusError):
            await SettlementService(db_session).settle(match.match_id, "forfeit")

    @pytest.mark.asyncio
    async def test_unknown_match(self, db_session):
        with pytest.raises(MatchNotFoundError):
            await SettlementService(db_session).settle(uuid.uuid4(), MatchOutcome.DRAW)

    @pytest.mark.asyncio
    async def test_match_not_started(self, db_session, player_factory):
        white = await player_factory()
        black = await player_factory()
        match = await MatchService(db_session).create(white.player_id, black.player_id, 4, CurrencyType.GEM)

        with pytest.raises(InvalidTransitionError):
            await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN)


    @pytest.mark.asyncio
    async def test_uncommitted_fees_block_settlement(self, db_session, player_factory):
        """A match still holding reserved fees cannot be settled."""
        white = await player_factory(elo=1200)
        black = await player_factory(elo=1200)
        match = await _ongoing_match(db_session, white, black)
        match_id = match.match_id
        match.fee_reserved = True
        await db_session.commit()

        with pytest.raises(InvalidTransitionError):
            await SettlementService(db_session).settle(match_id, MatchOutcome.WIN)

        await db_session.refresh(white)
        assert (white.elo, white.total_matches) == (1200, 0)


class TestPromotion:

    @pytest.mark.asyncio
    async def test_crossing_tier_boundary_grants_reward(self, db_session, player_factory):
        """1495 -> 1507 reaches tier 4 and credits its gem reward."""
        white = await player_factory(elo=1495, gem=100)
        black = await player_factory(elo=1495, gem=100)
        match = await _ongoing_match(db_session, white, black)

        result = await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN)

        assert result.white.after == 1507
        assert [(p.from_level, p.to_level, p.gem_reward) for p in result.promotions] == [(3, 4, 80)]
        await db_session.refresh(white)
        assert white.rank_level == 4
        assert white.gem == 180

        rewards = (await db_session.execute(
            select(Transaction).where(
                Transaction.player_id == white.player_id,
                Transaction.transaction_type == TransactionType.PROMOTION_REWARD.value,
            )
        )).scalars().all()
        assert len(rewards) == 1
        assert rewards[0].amount == 80
        assert rewards[0].status == "completed"

    @pytest.mark.asyncio
    async def test_rank_level_never_drops(self, db_session, player_factory):
        white = await player_factory(elo=1505)
        black = await player_factory(elo=1505)
        match = await _ongoing_match(db_session, white, black)

        await SettlementService(db_session).settle(match.match_id, MatchOutcome.WIN)

        await db_session.refresh(black)
        assert black.elo == 1493
        assert black.rank_level == 4
