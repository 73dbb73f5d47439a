from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from bfstats.auth.dependencies import get_current_user
from bfstats.db.database import get_session, get_session_factory
from bfstats.models import TournamentMatch
from bfstats.services.match_result import (
    TournamentMatchResultResponse,
    build_match_result_responses,
    get_match_result_for_map,
)
from bfstats.services.team_ranking import schedule_ranking_recalculation
from bfstats.services.tournament import (
    add_team_player,
    create_match,
    create_team,
    create_tournament,
    delete_match,
    delete_match_map,
    delete_team,
    get_match_map_or_404,
    get_match_maps,
    get_match_or_404,
    get_owned_tournament_or_404,
    get_team_or_404,
    get_team_roster,
    get_teams_for_tournament,
)

router = APIRouter(
    prefix="/admin/tournaments",
    tags=["Admin Tournament"],
)


class CreateTournamentCommand(SQLModel):
    name: str
    organizer: str = ""
    game: str = "bf1942"
    gameMode: Optional[str] = None


class CreateTeamCommand(SQLModel):
    name: str
    tag: Optional[str] = None


class AddTeamPlayerCommand(SQLModel):
    playerName: str


class CreateMatchCommand(SQLModel):
    team1Id: int
    team2Id: int
    scheduledDate: datetime
    mapNames: List[str] = []
    week: Optional[str] = None
    serverGuid: Optional[str] = None
    serverName: Optional[str] = None


class TournamentTeamResponse(SQLModel):
    id: int
    name: str
    tag: Optional[str] = None
    players: List[str] = []


class TournamentResponse(SQLModel):
    id: int
    name: str
    organizer: str
    game: str
    gameMode: Optional[str] = None
    createdAt: datetime
    teams: List[TournamentTeamResponse] = []


class TournamentMatchMapResponse(SQLModel):
    id: int
    mapName: str
    mapOrder: int
    teamId: Optional[int] = None
    roundId: Optional[str] = None
    matchResult: Optional[TournamentMatchResultResponse] = None


class TournamentMatchResponse(SQLModel):
    id: int
    tournamentId: int
    team1Id: int
    team2Id: int
    scheduledDate: datetime
    week: Optional[str] = None
    serverGuid: Optional[str] = None
    serverName: Optional[str] = None
    maps: List[TournamentMatchMapResponse] = []


async def build_match_response(
    session: AsyncSession, match: TournamentMatch
) -> TournamentMatchResponse:
    maps = []
    for match_map in await get_match_maps(session, match.id):
        maps.append(await build_match_map_response(session, match_map))
    return TournamentMatchResponse(
        id=match.id,
        tournamentId=match.tournament_id,
        team1Id=match.team1_id,
        team2Id=match.team2_id,
        scheduledDate=match.scheduled_date,
        week=match.week,
        serverGuid=match.server_guid,
        serverName=match.server_name,
        maps=maps,
    )


async def build_match_map_response(
    session: AsyncSession, match_map, warning: Optional[str] = None
) -> TournamentMatchMapResponse:
    match_result = await get_match_result_for_map(session, match_map.id)
    result_response = None
    if match_result is not None:
        result_response = (
            await build_match_result_responses(session, [match_result], warning)
        )[0]
    return TournamentMatchMapResponse(
        id=match_map.id,
        mapName=match_map.map_name,
        mapOrder=match_map.map_order,
        teamId=match_map.team_id,
        roundId=match_map.round_id,
        matchResult=result_response,
    )


@router.post("", response_model=TournamentResponse, status_code=201)
async def create_tournament_endpoint(
    command: CreateTournamentCommand,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentResponse:
    tournament = await create_tournament(
        session,
        name=command.name,
        created_by_user_email=user["email"],
        organizer=command.organizer,
        game=command.game,
        game_mode=command.gameMode,
    )
    return TournamentResponse(
        id=tournament.id,
        name=tournament.name,
        organizer=tournament.organizer,
        game=tournament.game,
        gameMode=tournament.game_mode,
        createdAt=tournament.created_at,
    )


@router.get("/{tournamentId}", response_model=TournamentResponse)
async def get_tournament(
    tournamentId: int,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentResponse:
    tournament = await get_owned_tournament_or_404(session, tournamentId, user)
    teams = []
    for team in await get_teams_for_tournament(session, tournamentId):
        teams.append(
            TournamentTeamResponse(
                id=team.id,
                name=team.name,
                tag=team.tag,
                players=await get_team_roster(session, team.id),
            )
        )
    return TournamentResponse(
        id=tournament.id,
        name=tournament.name,
        organizer=tournament.organizer,
        game=tournament.game,
        gameMode=tournament.game_mode,
        createdAt=tournament.created_at,
        teams=teams,
    )


@router.post("/{tournamentId}/teams", response_model=TournamentTeamResponse, status_code=201)
async def create_team_endpoint(
    tournamentId: int,
    command: CreateTeamCommand,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentTeamResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    team = await create_team(session, tournamentId, command.name, command.tag)
    return TournamentTeamResponse(id=team.id, name=team.name, tag=team.tag)


@router.post(
    "/{tournamentId}/teams/{teamId}/players",
    response_model=TournamentTeamResponse,
    status_code=201,
)
async def add_team_player_endpoint(
    tournamentId: int,
    teamId: int,
    command: AddTeamPlayerCommand,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentTeamResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    team = await get_team_or_404(session, tournamentId, teamId)
    await add_team_player(session, team, command.playerName)
    return TournamentTeamResponse(
        id=team.id,
        name=team.name,
        tag=team.tag,
        players=await get_team_roster(session, team.id),
    )


@router.delete("/{tournamentId}/teams/{teamId}", status_code=204)
async def delete_team_endpoint(
    tournamentId: int,
    teamId: int,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await get_owned_tournament_or_404(session, tournamentId, user)
    team = await get_team_or_404(session, tournamentId, teamId)
    await delete_team(session, team)
    return Response(status_code=204)


@router.post("/{tournamentId}/matches", response_model=TournamentMatchResponse, status_code=201)
async def create_match_endpoint(
    tournamentId: int,
    command: CreateMatchCommand,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentMatchResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match = await create_match(
        session,
        tournament_id=tournamentId,
        team1_id=command.team1Id,
        team2_id=command.team2Id,
        scheduled_date=command.scheduledDate,
        map_names=command.mapNames,
        week=command.week,
        server_guid=command.serverGuid,
        server_name=command.serverName,
    )
    return await build_match_response(session, match)


@router.get("/{tournamentId}/matches/{matchId}", response_model=TournamentMatchResponse)
async def get_match(
    tournamentId: int,
    matchId: int,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TournamentMatchResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match = await get_match_or_404(session, tournamentId, matchId)
    return await build_match_response(session, match)


@router.delete("/{tournamentId}/matches/{matchId}", status_code=204)
async def delete_match_endpoint(
    tournamentId: int,
    matchId: int,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> Response:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match = await get_match_or_404(session, tournamentId, matchId)
    await delete_match(session, match)
    schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)
    return Response(status_code=204)


@router.delete("/{tournamentId}/matches/{matchId}/maps/{mapId}", status_code=204)
async def delete_match_map_endpoint(
    tournamentId: int,
    matchId: int,
    mapId: int,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> Response:
    await get_owned_tournament_or_404(session, tournamentId, user)
    await get_match_or_404(session, tournamentId, matchId)
    match_map = await get_match_map_or_404(session, matchId, mapId)
    await delete_match_map(session, match_map)
    schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)
    return Response(status_code=204)
