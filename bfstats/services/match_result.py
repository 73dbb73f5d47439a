import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlmodel import SQLModel, delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from bfstats.models import (
    PlayerSession,
    Round,
    TournamentMatch,
    TournamentMatchMap,
    TournamentMatchResult,
    TournamentTeam,
)
from bfstats.services.team_mapping import TeamMapping, anchored_mapping, infer_team_mapping
from bfstats.services.tournament import (
    get_match_map_or_404,
    get_match_or_404,
    get_team_roster,
)

logger = logging.getLogger(__name__)


class TournamentMatchResultResponse(SQLModel):
    id: int
    tournamentId: int
    matchId: int
    mapId: int
    roundId: Optional[str] = None
    week: Optional[str] = None
    team1Id: Optional[int] = None
    team1Name: Optional[str] = None
    team2Id: Optional[int] = None
    team2Name: Optional[str] = None
    winningTeamId: Optional[int] = None
    winningTeamName: Optional[str] = None
    team1Tickets: int
    team2Tickets: int
    teamMappingWarning: Optional[str] = None
    updatedAt: datetime


def determine_winner(
    team1_id: Optional[int],
    team2_id: Optional[int],
    team1_tickets: int,
    team2_tickets: int,
) -> Optional[int]:
    """Team with strictly more tickets; ``None`` for a tie or unmapped teams."""

    if team1_id is None or team2_id is None:
        return None
    if team1_tickets > team2_tickets:
        return team1_id
    if team2_tickets > team1_tickets:
        return team2_id
    return None


def _side_tickets(round_: Round, side: int) -> int:
    tickets = round_.tickets1 if side == 1 else round_.tickets2
    return tickets or 0


async def get_round_or_400(session: AsyncSession, round_id: str) -> Round:
    round_ = await session.get(Round, round_id)
    if round_ is None:
        raise HTTPException(status_code=400, detail=f"Round '{round_id}' not found")
    return round_


async def get_match_result_or_404(
    session: AsyncSession, result_id: int, tournament_id: Optional[int] = None
) -> TournamentMatchResult:
    statement = select(TournamentMatchResult).where(TournamentMatchResult.id == result_id)
    if tournament_id is not None:
        statement = statement.where(TournamentMatchResult.tournament_id == tournament_id)
    result = await session.exec(statement)
    match_result = result.first()
    if match_result is None:
        raise HTTPException(status_code=404, detail="Match result not found")
    return match_result


async def get_match_result_for_map(
    session: AsyncSession, map_id: int
) -> Optional[TournamentMatchResult]:
    statement = select(TournamentMatchResult).where(TournamentMatchResult.map_id == map_id)
    result = await session.exec(statement)
    return result.first()


async def detect_team_mapping(
    session: AsyncSession,
    match: TournamentMatch,
    match_map: TournamentMatchMap,
    round_id: str,
) -> TeamMapping:
    if match_map.team_id in (match.team1_id, match.team2_id):
        return anchored_mapping(match_map.team_id, match.team1_id, match.team2_id)

    team1_roster = await get_team_roster(session, match.team1_id)
    team2_roster = await get_team_roster(session, match.team2_id)
    sessions = (
        await session.exec(select(PlayerSession).where(PlayerSession.round_id == round_id))
    ).all()
    return infer_team_mapping(team1_roster, team2_roster, sessions)


async def create_or_update_match_result(
    session: AsyncSession,
    tournament_id: int,
    match_id: int,
    map_id: int,
    round_id: str,
) -> Tuple[int, Optional[str]]:
    """Link ``round_id`` to the map and upsert the map's result.

    Returns the result id and a warning when the round's sides could not be
    attributed to the match's teams.  In that case the result is still
    stored with the raw round tickets and no teams, ready for a manual
    override.
    """

    match = await get_match_or_404(session, tournament_id, match_id)
    match_map = await get_match_map_or_404(session, match_id, map_id)
    round_ = await get_round_or_400(session, round_id)

    mapping = await detect_team_mapping(session, match, match_map, round_id)

    if mapping.is_mapped:
        team1_id: Optional[int] = match.team1_id
        team2_id: Optional[int] = match.team2_id
        team1_tickets = _side_tickets(round_, mapping.team1_side)
        team2_tickets = _side_tickets(round_, mapping.team2_side)
        logger.info(
            f"Detected team mapping for round {round_id}: team {team1_id} on side "
            f"{mapping.team1_side}, team {team2_id} on side {mapping.team2_side} "
            f"(confidence {mapping.confidence:.2f})"
        )
    else:
        team1_id = None
        team2_id = None
        team1_tickets = round_.tickets1 or 0
        team2_tickets = round_.tickets2 or 0
        logger.warning(f"Team mapping detection failed for round {round_id}: {mapping.warning}")

    winning_team_id = determine_winner(team1_id, team2_id, team1_tickets, team2_tickets)
    now = datetime.now()

    match_result = await get_match_result_for_map(session, map_id)
    if match_result is None:
        match_result = TournamentMatchResult(
            tournament_id=tournament_id,
            match_id=match_id,
            map_id=map_id,
            created_at=now,
        )

    match_result.round_id = round_id
    match_result.week = match.week
    match_result.team1_id = team1_id
    match_result.team2_id = team2_id
    match_result.winning_team_id = winning_team_id
    match_result.team1_tickets = team1_tickets
    match_result.team2_tickets = team2_tickets
    match_result.updated_at = now
    session.add(match_result)

    match_map.round_id = round_id
    session.add(match_map)

    await session.commit()
    await session.refresh(match_result)

    logger.info(
        f"Created/updated match result {match_result.id} for tournament {tournament_id}, "
        f"match {match_id}, map {map_id}"
    )
    return match_result.id, mapping.warning


async def override_team_mapping(
    session: AsyncSession,
    result_id: int,
    team1_id: int,
    team2_id: int,
    tournament_id: Optional[int] = None,
) -> TournamentMatchResult:
    match_result = await get_match_result_or_404(session, result_id, tournament_id)

    if team1_id == team2_id:
        raise HTTPException(status_code=400, detail="Team 1 and Team 2 cannot be the same")

    statement = select(TournamentTeam.id).where(
        TournamentTeam.tournament_id == match_result.tournament_id,
        TournamentTeam.id.in_([team1_id, team2_id]),
    )
    found = set((await session.exec(statement)).all())
    if team1_id not in found or team2_id not in found:
        raise HTTPException(status_code=400, detail="One or both teams not found in the tournament")

    # Tickets were captured when the round was linked and are never re-read.
    match_result.team1_id = team1_id
    match_result.team2_id = team2_id
    match_result.winning_team_id = determine_winner(
        team1_id, team2_id, match_result.team1_tickets, match_result.team2_tickets
    )
    match_result.updated_at = datetime.now()
    session.add(match_result)
    await session.commit()
    await session.refresh(match_result)

    logger.info(
        f"Overrode team mapping for result {result_id}: team1={team1_id}, "
        f"team2={team2_id}, winner={match_result.winning_team_id}"
    )
    return match_result


async def delete_match_result(
    session: AsyncSession, result_id: int, tournament_id: Optional[int] = None
) -> None:
    match_result = await get_match_result_or_404(session, result_id, tournament_id)
    await session.delete(match_result)
    await session.commit()
    logger.info(f"Deleted match result {result_id}")


async def unlink_round_from_map(session: AsyncSession, match_map: TournamentMatchMap) -> int:
    """Clear the map's round and drop its result. Returns the rows removed."""

    match_map.round_id = None
    session.add(match_map)
    outcome = await session.execute(
        delete(TournamentMatchResult).where(TournamentMatchResult.map_id == match_map.id)
    )
    await session.commit()

    removed = outcome.rowcount or 0
    logger.info(f"Unlinked round from map {match_map.id}, removed {removed} match result(s)")
    return removed


async def cleanup_orphaned_match_results(session: AsyncSession, tournament_id: int) -> int:
    """Delete results whose map no longer exists."""

    map_exists = (
        select(TournamentMatchMap.id)
        .where(TournamentMatchMap.id == TournamentMatchResult.map_id)
        .exists()
    )
    statement = select(TournamentMatchResult).where(
        TournamentMatchResult.tournament_id == tournament_id,
        ~map_exists,
    )
    orphaned = (await session.exec(statement)).all()

    if orphaned:
        logger.warning(
            f"Found {len(orphaned)} orphaned match results in tournament {tournament_id}. Cleaning up..."
        )
        for match_result in orphaned:
            logger.info(
                f"Deleting orphaned match result {match_result.id} "
                f"(referenced non-existent map {match_result.map_id})"
            )
            await session.delete(match_result)
        await session.commit()

    return len(orphaned)


async def get_match_results(
    session: AsyncSession,
    tournament_id: int,
    week: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> List[TournamentMatchResult]:
    if page < 1 or page_size < 1:
        raise HTTPException(status_code=400, detail="page and pageSize must be positive")

    statement = select(TournamentMatchResult).where(
        TournamentMatchResult.tournament_id == tournament_id
    )
    if week is not None:
        statement = statement.where(TournamentMatchResult.week == week)
    statement = (
        statement.order_by(TournamentMatchResult.match_id, TournamentMatchResult.map_id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await session.exec(statement)
    return result.all()


async def _team_names(session: AsyncSession, team_ids) -> Dict[int, str]:
    ids = {team_id for team_id in team_ids if team_id is not None}
    if not ids:
        return {}
    statement = select(TournamentTeam).where(TournamentTeam.id.in_(ids))
    result = await session.exec(statement)
    return {team.id: team.name for team in result.all()}


async def build_match_result_responses(
    session: AsyncSession,
    match_results: List[TournamentMatchResult],
    warning: Optional[str] = None,
) -> List[TournamentMatchResultResponse]:
    names = await _team_names(
        session,
        [
            team_id
            for mr in match_results
            for team_id in (mr.team1_id, mr.team2_id, mr.winning_team_id)
        ],
    )
    return [
        TournamentMatchResultResponse(
            id=mr.id,
            tournamentId=mr.tournament_id,
            matchId=mr.match_id,
            mapId=mr.map_id,
            roundId=mr.round_id,
            week=mr.week,
            team1Id=mr.team1_id,
            team1Name=names.get(mr.team1_id),
            team2Id=mr.team2_id,
            team2Name=names.get(mr.team2_id),
            winningTeamId=mr.winning_team_id,
            winningTeamName=names.get(mr.winning_team_id),
            team1Tickets=mr.team1_tickets,
            team2Tickets=mr.team2_tickets,
            teamMappingWarning=warning,
            updatedAt=mr.updated_at,
        )
        for mr in match_results
    ]
