import asyncio
import os
from datetime import datetime

import pytest
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_EMAIL = "admin@example.com"

async_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)


async def override_get_session():
    async with AsyncSessionLocal() as session:
        yield session


def override_get_session_factory():
    return AsyncSessionLocal


async def override_current_user():
    return {"id": "1", "displayName": "Admin", "email": ADMIN_EMAIL}


async def _create_tables():
    import bfstats.models  # noqa: F401 - registers the tables

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def _drop_tables():
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


@pytest.fixture(autouse=True)
def setup_database():
    from bfstats.main import app
    from bfstats.db.database import get_session, get_session_factory

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    asyncio.run(_create_tables())
    yield
    asyncio.run(_drop_tables())
    app.dependency_overrides.pop(get_session, None)
    app.dependency_overrides.pop(get_session_factory, None)


@pytest.fixture
def admin_client(setup_database):
    from fastapi.testclient import TestClient

    from bfstats.main import app
    from bfstats.auth.dependencies import get_current_user

    app.dependency_overrides[get_current_user] = override_current_user

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.pop(get_current_user, None)


async def seed_tournament(game_mode=None, week="Week 1", owner=ADMIN_EMAIL):
    """Tournament with two rostered teams and one two-map match."""
    from bfstats.models import (
        Tournament,
        TournamentMatch,
        TournamentMatchMap,
        TournamentTeam,
        TournamentTeamPlayer,
    )

    async with AsyncSessionLocal() as session:
        tournament = Tournament(
            name="Summer Cup", game="bf1942", game_mode=game_mode, created_by_user_email=owner
        )
        session.add(tournament)
        await session.flush()

        team_a = TournamentTeam(tournament_id=tournament.id, name="Alpha", tag="[A]")
        team_b = TournamentTeam(tournament_id=tournament.id, name="Bravo", tag="[B]")
        session.add_all([team_a, team_b])
        await session.flush()

        for name in ("alpha1", "alpha2", "alpha3"):
            session.add(TournamentTeamPlayer(tournament_id=tournament.id, team_id=team_a.id, player_name=name))
        for name in ("bravo1", "bravo2", "bravo3"):
            session.add(TournamentTeamPlayer(tournament_id=tournament.id, team_id=team_b.id, player_name=name))

        match = TournamentMatch(
            tournament_id=tournament.id,
            team1_id=team_a.id,
            team2_id=team_b.id,
            scheduled_date=datetime(2025, 6, 1, 20, 0),
            week=week,
        )
        session.add(match)
        await session.flush()

        map1 = TournamentMatchMap(match_id=match.id, map_name="Wake Island", map_order=0)
        map2 = TournamentMatchMap(match_id=match.id, map_name="El Alamein", map_order=1)
        session.add_all([map1, map2])
        await session.commit()

        return {
            "tournament_id": tournament.id,
            "team_a": team_a.id,
            "team_b": team_b.id,
            "match_id": match.id,
            "map1": map1.id,
            "map2": map2.id,
        }


async def seed_round(round_id, tickets1, tickets2, sessions=()):
    """Round with ``sessions`` given as (player name, side) pairs."""
    from bfstats.models import PlayerSession, Round

    async with AsyncSessionLocal() as session:
        session.add(
            Round(
                round_id=round_id,
                map_name="Wake Island",
                tickets1=tickets1,
                tickets2=tickets2,
                team1_label="Axis",
                team2_label="Allies",
            )
        )
        await session.flush()
        for player_name, side in sessions:
            session.add(
                PlayerSession(
                    round_id=round_id,
                    player_name=player_name,
                    current_team=side,
                    current_team_label="Axis" if side == 1 else "Allies",
                )
            )
        await session.commit()


def roster_sessions(team1_side=1):
    """Both full rosters, Alpha on ``team1_side`` and Bravo on the other side."""
    other = 2 if team1_side == 1 else 1
    return [(f"alpha{i}", team1_side) for i in (1, 2, 3)] + [(f"bravo{i}", other) for i in (1, 2, 3)]
