from datetime import datetime
from typing import List, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from bfstats.models import (
    Tournament,
    TournamentMatch,
    TournamentMatchMap,
    TournamentMatchResult,
    TournamentTeam,
    TournamentTeamPlayer,
    TournamentTeamRanking,
)


async def get_owned_tournament_or_404(
    session: AsyncSession, tournament_id: int, user: dict
) -> Tournament:
    statement = select(Tournament).where(
        Tournament.id == tournament_id,
        Tournament.created_by_user_email == user.get("email"),
    )
    result = await session.exec(statement)
    tournament = result.first()
    if tournament is None:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


async def get_match_or_404(
    session: AsyncSession, tournament_id: int, match_id: int
) -> TournamentMatch:
    statement = select(TournamentMatch).where(
        TournamentMatch.id == match_id,
        TournamentMatch.tournament_id == tournament_id,
    )
    result = await session.exec(statement)
    match = result.first()
    if match is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


async def get_match_map_or_404(
    session: AsyncSession, match_id: int, map_id: int
) -> TournamentMatchMap:
    statement = select(TournamentMatchMap).where(
        TournamentMatchMap.id == map_id,
        TournamentMatchMap.match_id == match_id,
    )
    result = await session.exec(statement)
    match_map = result.first()
    if match_map is None:
        raise HTTPException(status_code=404, detail="Map not found")
    return match_map


async def get_team_or_404(
    session: AsyncSession, tournament_id: int, team_id: int
) -> TournamentTeam:
    statement = select(TournamentTeam).where(
        TournamentTeam.id == team_id,
        TournamentTeam.tournament_id == tournament_id,
    )
    result = await session.exec(statement)
    team = result.first()
    if team is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


async def get_teams_for_tournament(
    session: AsyncSession, tournament_id: int
) -> List[TournamentTeam]:
    statement = (
        select(TournamentTeam)
        .where(TournamentTeam.tournament_id == tournament_id)
        .order_by(TournamentTeam.id)
    )
    result = await session.exec(statement)
    return result.all()


async def get_team_roster(session: AsyncSession, team_id: int) -> List[str]:
    statement = select(TournamentTeamPlayer.player_name).where(
        TournamentTeamPlayer.team_id == team_id
    )
    result = await session.exec(statement)
    return list(result.all())


async def get_match_maps(session: AsyncSession, match_id: int) -> List[TournamentMatchMap]:
    statement = (
        select(TournamentMatchMap)
        .where(TournamentMatchMap.match_id == match_id)
        .order_by(TournamentMatchMap.map_order)
    )
    result = await session.exec(statement)
    return result.all()


async def create_tournament(
    session: AsyncSession,
    name: str,
    created_by_user_email: str,
    organizer: str = "",
    game: str = "bf1942",
    game_mode: Optional[str] = None,
) -> Tournament:
    tournament = Tournament(
        name=name,
        organizer=organizer,
        game=game,
        game_mode=game_mode,
        created_by_user_email=created_by_user_email,
    )
    session.add(tournament)
    await session.commit()
    await session.refresh(tournament)
    return tournament


async def create_team(
    session: AsyncSession, tournament_id: int, name: str, tag: Optional[str] = None
) -> TournamentTeam:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Team name is required")

    statement = select(TournamentTeam).where(
        TournamentTeam.tournament_id == tournament_id,
        TournamentTeam.name == name,
    )
    existing = (await session.exec(statement)).first()
    if existing is not None:
        raise HTTPException(
            status_code=400,
            detail=f"A team named '{name}' already exists in this tournament",
        )

    team = TournamentTeam(tournament_id=tournament_id, name=name, tag=tag)
    session.add(team)
    await session.commit()
    await session.refresh(team)
    return team


async def add_team_player(
    session: AsyncSession, team: TournamentTeam, player_name: str
) -> TournamentTeamPlayer:
    player_name = player_name.strip()
    if not player_name:
        raise HTTPException(status_code=400, detail="Player name is required")

    statement = select(TournamentTeamPlayer).where(
        TournamentTeamPlayer.tournament_id == team.tournament_id,
        func.lower(TournamentTeamPlayer.player_name) == player_name.lower(),
    )
    existing = (await session.exec(statement)).first()
    if existing is not None:
        raise HTTPException(
            status_code=400,
            detail=f"Player '{player_name}' is already on a team in this tournament",
        )

    player = TournamentTeamPlayer(
        tournament_id=team.tournament_id,
        team_id=team.id,
        player_name=player_name,
    )
    session.add(player)
    await session.commit()
    await session.refresh(player)
    return player


async def delete_team(session: AsyncSession, team: TournamentTeam) -> None:
    statement = select(TournamentMatch.id).where(
        TournamentMatch.tournament_id == team.tournament_id,
        or_(TournamentMatch.team1_id == team.id, TournamentMatch.team2_id == team.id),
    )
    referenced = (await session.exec(statement)).first()
    if referenced is not None:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a team that is scheduled in a match",
        )

    # Overrides may attribute a result to a team outside the match pairing.
    statement = select(TournamentMatchResult.id).where(
        TournamentMatchResult.tournament_id == team.tournament_id,
        or_(
            TournamentMatchResult.team1_id == team.id,
            TournamentMatchResult.team2_id == team.id,
            TournamentMatchResult.winning_team_id == team.id,
        ),
    )
    if (await session.exec(statement)).first() is not None:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete a team that is referenced by a match result",
        )

    await session.execute(
        delete(TournamentTeamRanking).where(TournamentTeamRanking.team_id == team.id)
    )
    await session.execute(
        delete(TournamentTeamPlayer).where(TournamentTeamPlayer.team_id == team.id)
    )
    await session.delete(team)
    await session.commit()


async def create_match(
    session: AsyncSession,
    tournament_id: int,
    team1_id: int,
    team2_id: int,
    scheduled_date: datetime,
    map_names: Sequence[str] = (),
    week: Optional[str] = None,
    server_guid: Optional[str] = None,
    server_name: Optional[str] = None,
) -> TournamentMatch:
    if team1_id == team2_id:
        raise HTTPException(status_code=400, detail="Team 1 and Team 2 cannot be the same")

    statement = select(TournamentTeam.id).where(
        TournamentTeam.tournament_id == tournament_id,
        TournamentTeam.id.in_([team1_id, team2_id]),
    )
    found = set((await session.exec(statement)).all())
    missing = [team_id for team_id in (team1_id, team2_id) if team_id not in found]
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Teams with IDs {', '.join(str(t) for t in missing)} not found in this tournament",
        )

    match = TournamentMatch(
        tournament_id=tournament_id,
        team1_id=team1_id,
        team2_id=team2_id,
        scheduled_date=scheduled_date,
        week=week.strip() if week and week.strip() else None,
        server_guid=server_guid,
        server_name=server_name,
    )
    session.add(match)
    await session.flush()

    for index, map_name in enumerate(map_names):
        session.add(TournamentMatchMap(match_id=match.id, map_name=map_name, map_order=index))

    await session.commit()
    await session.refresh(match)
    return match


async def delete_match_map(session: AsyncSession, match_map: TournamentMatchMap) -> None:
    # Results are removed explicitly so no orphan is left behind.
    await session.execute(
        delete(TournamentMatchResult).where(TournamentMatchResult.map_id == match_map.id)
    )
    await session.delete(match_map)
    await session.commit()


async def delete_match(session: AsyncSession, match: TournamentMatch) -> None:
    await session.execute(
        delete(TournamentMatchResult).where(TournamentMatchResult.match_id == match.id)
    )
    await session.execute(
        delete(TournamentMatchMap).where(TournamentMatchMap.match_id == match.id)
    )
    await session.delete(match)
    await session.commit()
