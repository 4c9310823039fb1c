"""
API tests for the matchmaking, rooms, player and health endpoints.
"""
import uuid

import pytest


async def _ranked_match(client, auth_headers, white, black) -> str:
    response = await client.post(
        "/matchmaking/create-match",
        json={"opponentId": str(black.player_id)},
        headers=auth_headers(white),
    )
    assert response.status_code == 200, response.text
    return response.json()["match_id"]


async def _started_match(client, auth_headers, white, black) -> str:
    match_id = await _ranked_match(client, auth_headers, white, black)
    for player in (white, black):
        response = await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(player))
        assert response.status_code == 200, response.text
    return match_id


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/matchmaking/rank-status")
        assert response.status_code == 401
        assert response.json()["detail"] == "missing_credentials"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/matchmaking/rank-status", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid_token"

    @pytest.mark.asyncio
    async def test_wrong_scheme(self, client):
        response = await client.get("/matchmaking/rank-status", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401
        assert response.json()["detail"] == "invalid_authorization_header"


class TestRankStatus:

    @pytest.mark.asyncio
    async def test_ineligible_participant(self, client, auth_headers, player_factory):
        player = await player_factory(elo=1600, gem=5)

        response = await client.get("/matchmaking/rank-status", headers=auth_headers(player))

        assert response.status_code == 200
        data = response.json()
        assert data["can_play"] is False
        assert data["required_fee"] == 8
        assert data["tier"] == 4
        assert data["available"]["gem"] == 5
        assert "5 gem available" in data["message"]

    @pytest.mark.asyncio
    async def test_rank_band_unbounded_for_top_tier(self, client, auth_headers, player_factory):
        player = await player_factory(elo=4500)

        response = await client.get("/matchmaking/rank-band", headers=auth_headers(player))

        data = response.json()
        assert data["tier"] == 7
        assert data["min_rating"] == 4001
        assert data["max_rating"] is None

    @pytest.mark.asyncio
    async def test_rank_band_widens_with_wait(self, client, auth_headers, player_factory):
        player = await player_factory(elo=1200)

        response = await client.get(
            "/matchmaking/rank-band", params={"wait_minutes": 2}, headers=auth_headers(player)
        )

        data = response.json()
        assert data["widened_by"] == 1
        assert (data["min_rating"], data["max_rating"]) == (501, 2100)


class TestMatchFlow:

    @pytest.mark.asyncio
    async def test_create_match_reserves_fees(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=20)
        black = await player_factory(elo=1200, gem=20)

        response = await client.post(
            "/matchmaking/create-match",
            json={"opponentId": str(black.player_id)},
            headers=auth_headers(white),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "waiting"
        assert data["match_fee"] == 4
        assert data["fee_reserved"] is True

        profile = (await client.get("/player/profile", headers=auth_headers(black))).json()
        assert profile["balance"]["locked_gem"] == 4
        assert profile["balance"]["available_gem"] == 16

        reserved = (await client.get("/matchmaking/reserved-matches", headers=auth_headers(white))).json()
        assert reserved["total_reserved"] == 1

    @pytest.mark.asyncio
    async def test_create_match_ineligible(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=0)
        black = await player_factory(elo=1200, gem=20)

        response = await client.post(
            "/matchmaking/create-match",
            json={"opponentId": str(black.player_id)},
            headers=auth_headers(white),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "eligibility_failed"

    @pytest.mark.asyncio
    async def test_commit_starts_match(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=20)
        black = await player_factory(elo=1200, gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)

        first = await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(white))
        second = await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(black))

        assert first.json()["match_status"] == "waiting"
        assert first.json()["remaining_balance"] == 16
        assert second.json()["fee_committed"] is True
        assert second.json()["match_status"] == "ongoing"

    @pytest.mark.asyncio
    async def test_start_before_fees_committed(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)

        response = await client.post(f"/matchmaking/start-match/{match_id}", headers=auth_headers(white))

        assert response.status_code == 409
        assert response.json()["detail"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_commit_twice_rejected(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)
        await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(white))

        response = await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(white))

        assert response.status_code == 400
        assert response.json()["detail"] == "not_reserved"

    @pytest.mark.asyncio
    async def test_release_returns_fee(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)

        response = await client.post(f"/matchmaking/release-match/{match_id}", headers=auth_headers(black))

        assert response.status_code == 200
        assert response.json()["remaining_locked"] == 0

    @pytest.mark.asyncio
    async def test_non_participant_forbidden(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        outsider = await player_factory(gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)

        response = await client.post(f"/matchmaking/commit-match/{match_id}", headers=auth_headers(outsider))

        assert response.status_code == 403
        assert response.json()["detail"] == "not_a_participant"

    @pytest.mark.asyncio
    async def test_unknown_match(self, client, auth_headers, player_factory):
        player = await player_factory()

        response = await client.post(f"/matchmaking/commit-match/{uuid.uuid4()}", headers=auth_headers(player))

        assert response.status_code == 404
        assert response.json()["detail"] == "match_not_found"

    @pytest.mark.asyncio
    async def test_fee_status(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        match_id = await _ranked_match(client, auth_headers, white, black)

        response = await client.get(f"/matchmaking/matches/{match_id}/fee-status", headers=auth_headers(white))

        data = response.json()
        assert data["fee_reserved"] is True
        assert len(data["transactions"]) == 2
        assert {row["status"] for row in data["transactions"]} == {"pending"}


class TestMatchResult:

    @pytest.mark.asyncio
    async def test_result_returns_rating_changes(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=20)
        black = await player_factory(elo=1200, gem=20)
        match_id = await _started_match(client, auth_headers, white, black)

        response = await client.post(
            "/matchmaking/match-result",
            json={"matchId": match_id, "winnerId": str(white.player_id), "moves": ["e4", "e5"]},
            headers=auth_headers(black),
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["outcome"] == "win"
        assert data["winner_id"] == str(white.player_id)
        assert data["rating_changes"]["white"] == {"player_id": str(white.player_id), "before": 1200, "after": 1212}
        assert data["rating_changes"]["black"]["after"] == 1188

        profile = (await client.get("/player/profile", headers=auth_headers(white))).json()
        assert profile["elo"] == 1212
        assert profile["win_rate"] == 100.0
        assert profile["balance"]["gem"] == 16

    @pytest.mark.asyncio
    async def test_draw_without_winner(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=20)
        black = await player_factory(elo=1200, gem=20)
        match_id = await _started_match(client, auth_headers, white, black)

        response = await client.post(
            "/matchmaking/match-result", json={"matchId": match_id}, headers=auth_headers(white)
        )

        assert response.json()["outcome"] == "draw"
        assert response.json()["winner_id"] is None

    @pytest.mark.asyncio
    async def test_second_result_conflicts(self, client, auth_headers, player_factory):
        white = await player_factory(elo=1200, gem=20)
        black = await player_factory(elo=1200, gem=20)
        match_id = await _started_match(client, auth_headers, white, black)
        body = {"matchId": match_id, "winnerId": str(black.player_id)}
        await client.post("/matchmaking/match-result", json=body, headers=auth_headers(white))

        response = await client.post("/matchmaking/match-result", json=body, headers=auth_headers(white))

        assert response.status_code == 409
        assert response.json()["detail"] == "already_settled"

    @pytest.mark.asyncio
    async def test_winner_not_in_match(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        match_id = await _started_match(client, auth_headers, white, black)

        response = await client.post(
            "/matchmaking/match-result",
            json={"matchId": match_id, "winnerId": str(uuid.uuid4())},
            headers=auth_headers(white),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "invalid_winner"

    @pytest.mark.asyncio
    async def test_transactions_listed_for_caller(self, client, auth_headers, player_factory):
        white = await player_factory(gem=20)
        black = await player_factory(gem=20)
        await _started_match(client, auth_headers, white, black)

        response = await client.get("/matchmaking/transactions/user", headers=auth_headers(white))

        rows = response.json()["transactions"]
        assert len(rows) == 1
        assert rows[0]["transaction_type"] == "fee_reserve"
        assert rows[0]["status"] == "completed"


class TestRoomsAndHistory:

    @pytest.mark.asyncio
    async def test_room_lifecycle(self, client, auth_headers, player_factory):
        owner = await player_factory()
        guest = await player_factory()

        created = await client.post("/matches/rooms", headers=auth_headers(owner))
        room_id = created.json()["match_id"]
        joined = await client.post(f"/matches/rooms/{room_id}/join", headers=auth_headers(guest))

        assert created.json()["match_type"] == "casual"
        assert joined.json()["black_id"] == str(guest.player_id)

    @pytest.mark.asyncio
    async def test_only_owner_deletes_room(self, client, auth_headers, player_factory):
        owner = await player_factory()
        other = await player_factory()
        room_id = (await client.post("/matches/rooms", headers=auth_headers(owner))).json()["match_id"]

        forbidden = await client.delete(f"/matches/rooms/{room_id}", headers=auth_headers(other))
        deleted = await client.delete(f"/matches/rooms/{room_id}", headers=auth_headers(owner))

        assert forbidden.status_code == 403
        assert forbidden.json()["detail"] == "not_room_owner"
        assert deleted.json() == {"success": True, "match_id": room_id}

    @pytest.mark.asyncio
    async def test_history_saved_and_listed(self, client, auth_headers, player_factory):
        owner = await player_factory()
        room_id = (await client.post("/matches/rooms", headers=auth_headers(owner))).json()["match_id"]

        saved = await client.post(
            f"/matches/{room_id}/history", json={"content": {"move": "e4"}}, headers=auth_headers(owner)
        )
        listed = await client.get(f"/matches/{room_id}/history", headers=auth_headers(owner))

        assert saved.status_code == 200
        entries = listed.json()["entries"]
        assert [entry["content"] for entry in entries] == [{"move": "e4"}]


class TestPlayerAndHealth:

    @pytest.mark.asyncio
    async def test_leaderboard_ordered_by_rating(self, client, auth_headers, player_factory):
        low = await player_factory(elo=900)
        high = await player_factory(elo=2500)

        response = await client.get("/player/leaderboard", headers=auth_headers(low))

        entries = response.json()["entries"]
        assert [entry["player_id"] for entry in entries] == [str(high.player_id), str(low.player_id)]
        assert entries[0]["rank"] == 1

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
