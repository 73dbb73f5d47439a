import asyncio

from sqlmodel import select

from bfstats.models import Tournament, TournamentMatchResult
from tests.conftest import (
    ADMIN_EMAIL,
    AsyncSessionLocal,
    roster_sessions,
    seed_round,
    seed_tournament,
)


def _create_tournament(client, **overrides):
    payload = {"name": "Winter League", "organizer": "BF Vets", "gameMode": "conquest"}
    payload.update(overrides)
    response = client.post("/admin/tournaments", json=payload)
    assert response.status_code == 201
    return response.json()


def test_create_tournament_records_owner(admin_client):
    created = _create_tournament(admin_client)

    assert created["name"] == "Winter League"
    assert created["game"] == "bf1942"
    assert created["teams"] == []

    async def _load():
        async with AsyncSessionLocal() as session:
            return await session.get(Tournament, created["id"])

    assert asyncio.run(_load()).created_by_user_email == ADMIN_EMAIL


def test_teams_and_rosters(admin_client):
    tournament = _create_tournament(admin_client)
    base = f"/admin/tournaments/{tournament['id']}"

    team = admin_client.post(f"{base}/teams", json={"name": " Wolves ", "tag": "[W]"})
    assert team.status_code == 201
    team_id = team.json()["id"]
    assert team.json()["name"] == "Wolves"

    duplicate = admin_client.post(f"{base}/teams", json={"name": "Wolves"})
    assert duplicate.status_code == 400

    added = admin_client.post(f"{base}/teams/{team_id}/players", json={"playerName": "Sniper"})
    assert added.status_code == 201
    assert added.json()["players"] == ["Sniper"]

    # Rosters are unique per tournament regardless of case.
    again = admin_client.post(f"{base}/teams/{team_id}/players", json={"playerName": "sniper "})
    assert again.status_code == 400

    detail = admin_client.get(base).json()
    assert [(t["name"], t["players"]) for t in detail["teams"]] == [("Wolves", ["Sniper"])]


def test_team_in_a_match_cannot_be_deleted(admin_client):
    ids = asyncio.run(seed_tournament())
    base = f"/admin/tournaments/{ids['tournament_id']}"

    blocked = admin_client.delete(f"{base}/teams/{ids['team_a']}")
    spare = admin_client.post(f"{base}/teams", json={"name": "Charlie"}).json()
    removed = admin_client.delete(f"{base}/teams/{spare['id']}")

    assert blocked.status_code == 400
    assert removed.status_code == 204
    assert admin_client.delete(f"{base}/teams/{spare['id']}").status_code == 404


def test_create_match_with_ordered_maps(admin_client):
    ids = asyncio.run(seed_tournament())
    base = f"/admin/tournaments/{ids['tournament_id']}"

    response = admin_client.post(
        f"{base}/matches",
        json={
            "team1Id": ids["team_b"],
            "team2Id": ids["team_a"],
            "scheduledDate": "2025-06-08T20:00:00",
            "mapNames": ["Berlin", "Stalingrad"],
            "week": " Week 2 ",
        },
    )

    assert response.status_code == 201
    match = response.json()
    assert match["week"] == "Week 2"
    assert [(m["mapName"], m["mapOrder"]) for m in match["maps"]] == [("Berlin", 0), ("Stalingrad", 1)]
    assert all(m["matchResult"] is None for m in match["maps"])

    fetched = admin_client.get(f"{base}/matches/{match['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["team1Id"] == ids["team_b"]


def test_create_match_rejects_invalid_teams(admin_client):
    ids = asyncio.run(seed_tournament())
    other = asyncio.run(seed_tournament())
    base = f"/admin/tournaments/{ids['tournament_id']}"
    payload = {"scheduledDate": "2025-06-08T20:00:00"}

    same = admin_client.post(
        f"{base}/matches", json={**payload, "team1Id": ids["team_a"], "team2Id": ids["team_a"]}
    )
    foreign = admin_client.post(
        f"{base}/matches", json={**payload, "team1Id": ids["team_a"], "team2Id": other["team_b"]}
    )

    assert same.status_code == 400
    assert foreign.status_code == 400


def test_match_from_another_tournament_is_not_found(admin_client):
    ids = asyncio.run(seed_tournament())
    other = asyncio.run(seed_tournament())

    response = admin_client.get(f"/admin/tournaments/{other['tournament_id']}/matches/{ids['match_id']}")

    assert response.status_code == 404


async def _results_for_tournament(tournament_id):
    async with AsyncSessionLocal() as session:
        statement = select(TournamentMatchResult).where(
            TournamentMatchResult.tournament_id == tournament_id
        )
        return (await session.exec(statement)).all()


def _link(client, ids, map_key, round_id):
    url = (
        f"/admin/tournaments/{ids['tournament_id']}/matches/{ids['match_id']}"
        f"/maps/{ids[map_key]}"
    )
    response = client.put(url, json={"roundId": round_id, "updateRoundId": True})
    assert response.status_code == 200


def test_deleting_map_removes_its_result(admin_client):
    ids = asyncio.run(seed_tournament())
    asyncio.run(seed_round("r-1", 100, 40, roster_sessions()))
    asyncio.run(seed_round("r-2", 100, 40, roster_sessions()))
    _link(admin_client, ids, "map1", "r-1")
    _link(admin_client, ids, "map2", "r-2")
    base = f"/admin/tournaments/{ids['tournament_id']}"

    response = admin_client.delete(f"{base}/matches/{ids['match_id']}/maps/{ids['map1']}")

    assert response.status_code == 204
    remaining = asyncio.run(_results_for_tournament(ids["tournament_id"]))
    assert [r.map_id for r in remaining] == [ids["map2"]]
    leaderboard = admin_client.get(f"{base}/leaderboard").json()
    assert leaderboard[0]["roundsWon"] == 1


def test_deleting_match_clears_results_and_standings(admin_client):
    ids = asyncio.run(seed_tournament())
    asyncio.run(seed_round("r-1", 100, 40, roster_sessions()))
    _link(admin_client, ids, "map1", "r-1")
    base = f"/admin/tournaments/{ids['tournament_id']}"

    response = admin_client.delete(f"{base}/matches/{ids['match_id']}")

    assert response.status_code == 204
    assert asyncio.run(_results_for_tournament(ids["tournament_id"])) == []
    assert admin_client.get(f"{base}/leaderboard").json() == []
    assert admin_client.get(f"{base}/matches/{ids['match_id']}").status_code == 404


def test_team_referenced_by_a_result_cannot_be_deleted(admin_client):
    ids = asyncio.run(seed_tournament())
    asyncio.run(seed_round("r-pub", 30, 70, [("stranger", 1)]))
    _link(admin_client, ids, "map1", "r-pub")
    base = f"/admin/tournaments/{ids['tournament_id']}"
    charlie = admin_client.post(f"{base}/teams", json={"name": "Charlie"}).json()
    result_id = asyncio.run(_results_for_tournament(ids["tournament_id"]))[0].id

    override = admin_client.put(
        f"{base}/match-results/{result_id}/override-teams",
        json={"team1Id": ids["team_a"], "team2Id": charlie["id"]},
    )
    assert override.status_code == 200

    response = admin_client.delete(f"{base}/teams/{charlie['id']}")

    assert response.status_code == 400
    leaderboard = admin_client.get(f"{base}/leaderboard").json()
    assert [(row["teamId"], row["teamName"]) for row in leaderboard] == [
        (charlie["id"], "Charlie"),
        (ids["team_a"], "Alpha"),
    ]

    # Once the result is gone the team can be removed along with its standings.
    assert admin_client.delete(f"{base}/match-results/{result_id}").status_code == 204
    assert admin_client.delete(f"{base}/teams/{charlie['id']}").status_code == 204
    assert admin_client.get(f"{base}/leaderboard").json() == []
