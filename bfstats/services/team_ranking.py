"""Tournament standings.

Standings are derived data: every recalculation reads all mapped match
results of a tournament and replaces the tournament's ranking rows in one
transaction.  Rows exist per week (one group per distinct week label) and
for the cumulative view, stored with ``week = NULL``.

Ordering within a group is rounds won, then ticket differential, both
descending, then team id ascending, whatever the game mode.  CTF
tournaments additionally report match points (3 per match won, 1 per match
drawn); points never affect the order.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import BackgroundTasks, HTTPException
from sqlmodel import SQLModel, delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from bfstats.models import (
    Tournament,
    TournamentMatchResult,
    TournamentTeam,
    TournamentTeamRanking,
)

logger = logging.getLogger(__name__)

CTF_GAME_MODE = "CTF"


@dataclass
class TeamStanding:
    team_id: int
    rounds_won: int = 0
    rounds_tied: int = 0
    rounds_lost: int = 0
    ticket_differential: int = 0
    tickets_for: int = 0
    tickets_against: int = 0
    matches_played: int = 0
    victories: int = 0
    ties: int = 0
    losses: int = 0
    points: int = 0
    rank: int = 0


class TeamRankingResponse(SQLModel):
    rank: int
    teamId: int
    teamName: str
    roundsWon: int
    roundsTied: int
    roundsLost: int
    ticketDifferential: int
    matchesPlayed: int
    victories: int
    ties: int
    losses: int
    ticketsFor: int
    ticketsAgainst: int
    points: int
    week: Optional[str] = None


def is_ctf(game_mode: Optional[str]) -> bool:
    return (game_mode or "").strip().upper() == CTF_GAME_MODE


def is_counted(result: TournamentMatchResult) -> bool:
    """Results without both teams mapped never reach the standings."""
    return result.team1_id is not None and result.team2_id is not None


def _sort_key(standing: TeamStanding) -> Tuple[int, int, int]:
    return (-standing.rounds_won, -standing.ticket_differential, standing.team_id)


def compute_standings(
    results: Iterable[TournamentMatchResult], game_mode: Optional[str] = None
) -> List[TeamStanding]:
    """Aggregate and rank every team appearing in ``results``."""

    ctf = is_ctf(game_mode)
    standings: Dict[int, TeamStanding] = {}
    # team -> match -> [tickets for, tickets against]
    per_match: Dict[int, Dict[int, List[int]]] = defaultdict(lambda: defaultdict(lambda: [0, 0]))

    for result in results:
        if not is_counted(result):
            continue

        sides = (
            (result.team1_id, result.team2_id, result.team1_tickets, result.team2_tickets),
            (result.team2_id, result.team1_id, result.team2_tickets, result.team1_tickets),
        )
        for team_id, opponent_id, own, opponent in sides:
            standing = standings.setdefault(team_id, TeamStanding(team_id=team_id))

            if result.winning_team_id is None:
                standing.rounds_tied += 1
            elif result.winning_team_id == team_id:
                standing.rounds_won += 1
            elif result.winning_team_id == opponent_id:
                standing.rounds_lost += 1
            # a winner outside the pairing only contributes tickets

            standing.ticket_differential += own - opponent
            standing.tickets_for += own
            standing.tickets_against += opponent

            totals = per_match[team_id][result.match_id]
            totals[0] += own
            totals[1] += opponent

    for team_id, matches in per_match.items():
        standing = standings[team_id]
        for tickets_for, tickets_against in matches.values():
            standing.matches_played += 1
            if tickets_for > tickets_against:
                standing.victories += 1
            elif tickets_for == tickets_against:
                standing.ties += 1
            else:
                standing.losses += 1

    for standing in standings.values():
        standing.points = standing.victories * 3 + standing.ties if ctf else standing.rounds_won

    ranked = sorted(standings.values(), key=_sort_key)
    for position, standing in enumerate(ranked, start=1):
        standing.rank = position
    return ranked


def group_results_by_week(
    results: Sequence[TournamentMatchResult],
) -> List[Tuple[Optional[str], List[TournamentMatchResult]]]:
    """Cumulative group first, then one group per week label in sorted order.

    Returns no groups at all when nothing is counted.
    """

    counted = [r for r in results if is_counted(r)]
    if not counted:
        return []

    weeks = sorted({r.week for r in counted if r.week is not None})
    groups: List[Tuple[Optional[str], List[TournamentMatchResult]]] = [(None, counted)]
    for week in weeks:
        groups.append((week, [r for r in counted if r.week == week]))
    return groups


def build_rankings(
    tournament_id: int,
    results: Sequence[TournamentMatchResult],
    game_mode: Optional[str] = None,
) -> List[TournamentTeamRanking]:
    rankings: List[TournamentTeamRanking] = []
    for week, group in group_results_by_week(results):
        for standing in compute_standings(group, game_mode):
            rankings.append(
                TournamentTeamRanking(
                    tournament_id=tournament_id,
                    team_id=standing.team_id,
                    week=week,
                    rank=standing.rank,
                    rounds_won=standing.rounds_won,
                    rounds_tied=standing.rounds_tied,
                    rounds_lost=standing.rounds_lost,
                    ticket_differential=standing.ticket_differential,
                    matches_played=standing.matches_played,
                    victories=standing.victories,
                    ties=standing.ties,
                    losses=standing.losses,
                    tickets_for=standing.tickets_for,
                    tickets_against=standing.tickets_against,
                    points=standing.points,
                )
            )
    return rankings


async def recalculate_all_rankings(session: AsyncSession, tournament_id: int) -> int:
    """Rebuild every ranking row of the tournament. Returns the rows written."""

    tournament = await session.get(Tournament, tournament_id)
    if tournament is None:
        raise HTTPException(status_code=404, detail="Tournament not found")

    statement = (
        select(TournamentMatchResult)
        .where(
            TournamentMatchResult.tournament_id == tournament_id,
            TournamentMatchResult.team1_id.is_not(None),
            TournamentMatchResult.team2_id.is_not(None),
        )
        .order_by(TournamentMatchResult.id)
    )
    results = (await session.exec(statement)).all()
    rankings = build_rankings(tournament_id, results, tournament.game_mode)

    # Delete and insert share one transaction so a failure keeps the old rows.
    try:
        await session.execute(
            delete(TournamentTeamRanking).where(TournamentTeamRanking.tournament_id == tournament_id)
        )
        session.add_all(rankings)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        f"Rankings persisted for tournament {tournament_id}: {len(rankings)} rows "
        f"from {len(results)} mapped results"
    )
    return len(rankings)


async def get_leaderboard(
    session: AsyncSession, tournament_id: int, week: Optional[str] = None
) -> List[TeamRankingResponse]:
    statement = (
        select(TournamentTeamRanking, TournamentTeam.name)
        .join(TournamentTeam, TournamentTeam.id == TournamentTeamRanking.team_id, isouter=True)
        .where(TournamentTeamRanking.tournament_id == tournament_id)
    )
    if week is None:
        statement = statement.where(TournamentTeamRanking.week.is_(None))
    else:
        statement = statement.where(TournamentTeamRanking.week == week)
    statement = statement.order_by(TournamentTeamRanking.rank)

    rows = (await session.exec(statement)).all()
    return [
        TeamRankingResponse(
            rank=ranking.rank,
            teamId=ranking.team_id,
            teamName=team_name or f"Team {ranking.team_id}",
            roundsWon=ranking.rounds_won,
            roundsTied=ranking.rounds_tied,
            roundsLost=ranking.rounds_lost,
            ticketDifferential=ranking.ticket_differential,
            matchesPlayed=ranking.matches_played,
            victories=ranking.victories,
            ties=ranking.ties,
            losses=ranking.losses,
            ticketsFor=ranking.tickets_for,
            ticketsAgainst=ranking.tickets_against,
            points=ranking.points,
            week=ranking.week,
        )
        for ranking, team_name in rows
    ]


_recalculation_locks: Dict[int, asyncio.Lock] = {}
# holders plus waiters per tournament; the lock entry lives only while > 0
_recalculation_users: Dict[int, int] = {}


@asynccontextmanager
async def recalculation_lock(tournament_id: int) -> AsyncIterator[None]:
    """Serialize ranking rewrites of one tournament within this process."""
    lock = _recalculation_locks.setdefault(tournament_id, asyncio.Lock())
    _recalculation_users[tournament_id] = _recalculation_users.get(tournament_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _recalculation_users[tournament_id] -= 1
        if _recalculation_users[tournament_id] == 0:
            del _recalculation_users[tournament_id]
            del _recalculation_locks[tournament_id]


async def recalculate_rankings_serialized(session: AsyncSession, tournament_id: int) -> int:
    async with recalculation_lock(tournament_id):
        return await recalculate_all_rankings(session, tournament_id)


async def run_ranking_recalculation(session_factory, tournament_id: int) -> Optional[int]:
    """Background entry point; errors are logged and never re-raised.

    Runs for the same tournament inside this process are serialized, so the
    stored standings always come from the latest read of the results.
    """

    try:
        async with recalculation_lock(tournament_id):
            logger.info(f"Starting async ranking recalculation for tournament {tournament_id}")
            async with session_factory() as session:
                total = await recalculate_all_rankings(session, tournament_id)
            logger.info(
                f"Completed async ranking recalculation for tournament {tournament_id} ({total} rows)"
            )
            return total
    except Exception:
        logger.exception(f"Error during async ranking recalculation for tournament {tournament_id}")
        return None


def schedule_ranking_recalculation(
    background_tasks: BackgroundTasks, session_factory, tournament_id: int
) -> None:
    background_tasks.add_task(run_ranking_recalculation, session_factory, tournament_id)
