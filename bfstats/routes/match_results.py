import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from bfstats.auth.dependencies import get_current_user
from bfstats.db.database import get_session, get_session_factory
from bfstats.routes.admin_tournament import (
    TournamentMatchMapResponse,
    build_match_map_response,
)
from bfstats.services.match_result import (
    TournamentMatchResultResponse,
    build_match_result_responses,
    cleanup_orphaned_match_results,
    create_or_update_match_result,
    delete_match_result,
    get_match_result_or_404,
    get_match_results,
    get_round_or_400,
    override_team_mapping,
    unlink_round_from_map,
)
from bfstats.services.team_ranking import (
    TeamRankingResponse,
    get_leaderboard,
    recalculate_rankings_serialized,
    schedule_ranking_recalculation,
)
from bfstats.services.tournament import (
    get_match_map_or_404,
    get_match_or_404,
    get_owned_tournament_or_404,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/tournaments",
    tags=["Admin Tournament Results"],
)


class UpdateMatchMapRequest(SQLModel):
    mapName: Optional[str] = None
    teamId: Optional[int] = None
    roundId: Optional[str] = None
    # roundId is only applied when this is set, so null can mean "unlink"
    updateRoundId: bool = False


class UpdateMatchMapResponse(TournamentMatchMapResponse):
    teamMappingWarning: Optional[str] = None


class OverrideTeamsRequest(SQLModel):
    team1Id: int
    team2Id: int


class UpdateMatchResultRoundRequest(SQLModel):
    roundId: str


class RecalculateRankingsResponse(SQLModel):
    tournamentId: int
    totalRankingsUpdated: int
    updatedAt: datetime


class CleanupOrphanedResultsResponse(SQLModel):
    tournamentId: int
    orphanedResultsRemoved: int
    totalRankingsUpdated: int
    updatedAt: datetime


@router.put(
    "/{tournamentId}/matches/{matchId}/maps/{mapId}",
    response_model=UpdateMatchMapResponse,
)
async def update_match_map(
    tournamentId: int,
    matchId: int,
    mapId: int,
    request: UpdateMatchMapRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> UpdateMatchMapResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match = await get_match_or_404(session, tournamentId, matchId)
    match_map = await get_match_map_or_404(session, matchId, mapId)

    if request.teamId is not None and request.teamId not in (match.team1_id, match.team2_id):
        raise HTTPException(
            status_code=400,
            detail=f"TeamId {request.teamId} is not part of this match's teams",
        )

    map_name = request.mapName.strip() if request.mapName else None
    if map_name is None and request.teamId is None and not request.updateRoundId:
        raise HTTPException(
            status_code=400,
            detail="At least one field (mapName, teamId or roundId) must be updated",
        )

    reconcile_round_id = None
    if request.updateRoundId:
        reconcile_round_id = request.roundId
    elif request.teamId is not None and match_map.round_id:
        # A new side assignment re-attributes the round already linked.
        reconcile_round_id = match_map.round_id

    if reconcile_round_id:
        # Fail before touching the map when the round is unknown.
        await get_round_or_400(session, reconcile_round_id)

    if map_name:
        match_map.map_name = map_name
    if request.teamId is not None:
        match_map.team_id = request.teamId
    session.add(match_map)
    await session.commit()

    warning = None
    if reconcile_round_id:
        _, warning = await create_or_update_match_result(
            session, tournamentId, matchId, mapId, reconcile_round_id
        )
        schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)
    elif request.updateRoundId:
        await unlink_round_from_map(session, match_map)
        schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)

    await session.refresh(match_map)
    map_response = await build_match_map_response(session, match_map, warning)
    return UpdateMatchMapResponse(**map_response.model_dump(), teamMappingWarning=warning)


@router.get(
    "/{tournamentId}/match-results",
    response_model=List[TournamentMatchResultResponse],
)
async def list_match_results(
    tournamentId: int,
    week: Optional[str] = None,
    page: int = 1,
    pageSize: int = 50,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[TournamentMatchResultResponse]:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match_results = await get_match_results(session, tournamentId, week, page, pageSize)
    return await build_match_result_responses(session, match_results)


@router.put(
    "/{tournamentId}/match-results/{resultId}/override-teams",
    response_model=TournamentMatchResultResponse,
)
async def override_match_result_teams(
    tournamentId: int,
    resultId: int,
    request: OverrideTeamsRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> TournamentMatchResultResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match_result = await override_team_mapping(
        session, resultId, request.team1Id, request.team2Id, tournament_id=tournamentId
    )
    schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)
    return (await build_match_result_responses(session, [match_result]))[0]


@router.put(
    "/{tournamentId}/match-results/{resultId}/round",
    response_model=TournamentMatchResultResponse,
)
async def update_match_result_round(
    tournamentId: int,
    resultId: int,
    request: UpdateMatchResultRoundRequest,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> TournamentMatchResultResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    match_result = await get_match_result_or_404(session, resultId, tournamentId)
    result_id, warning = await create_or_update_match_result(
        session, tournamentId, match_result.match_id, match_result.map_id, request.roundId
    )
    schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)

    updated = await get_match_result_or_404(session, result_id, tournamentId)
    return (await build_match_result_responses(session, [updated], warning))[0]


@router.delete("/{tournamentId}/match-results/{resultId}", status_code=204)
async def delete_match_result_endpoint(
    tournamentId: int,
    resultId: int,
    background_tasks: BackgroundTasks,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    session_factory=Depends(get_session_factory),
) -> Response:
    await get_owned_tournament_or_404(session, tournamentId, user)
    logger.info(f"Deleting match result {resultId} from tournament {tournamentId}")
    await delete_match_result(session, resultId, tournament_id=tournamentId)
    schedule_ranking_recalculation(background_tasks, session_factory, tournamentId)
    return Response(status_code=204)


@router.get("/{tournamentId}/leaderboard", response_model=List[TeamRankingResponse])
async def get_tournament_leaderboard(
    tournamentId: int,
    week: Optional[str] = None,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[TeamRankingResponse]:
    await get_owned_tournament_or_404(session, tournamentId, user)
    return await get_leaderboard(session, tournamentId, week)


@router.post(
    "/{tournamentId}/leaderboard/recalculate",
    response_model=RecalculateRankingsResponse,
)
async def recalculate_leaderboard(
    tournamentId: int,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> RecalculateRankingsResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    logger.info(f"Manual ranking recalculation triggered for tournament {tournamentId}")
    total = await recalculate_rankings_serialized(session, tournamentId)
    return RecalculateRankingsResponse(
        tournamentId=tournamentId,
        totalRankingsUpdated=total,
        updatedAt=datetime.now(),
    )


@router.post(
    "/{tournamentId}/maintenance/cleanup-orphaned-results",
    response_model=CleanupOrphanedResultsResponse,
)
async def cleanup_orphaned_results(
    tournamentId: int,
    user=Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> CleanupOrphanedResultsResponse:
    await get_owned_tournament_or_404(session, tournamentId, user)
    logger.info(f"Manual cleanup of orphaned match results triggered for tournament {tournamentId}")

    removed = await cleanup_orphaned_match_results(session, tournamentId)
    total = await recalculate_rankings_serialized(session, tournamentId)
    return CleanupOrphanedResultsResponse(
        tournamentId=tournamentId,
        orphanedResultsRemoved=removed,
        totalRankingsUpdated=total,
        updatedAt=datetime.now(),
    )
