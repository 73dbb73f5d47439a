"""Work out which tournament team played which side of a round.

Rounds only know about in-game sides (1 and 2, labelled e.g. "Axis" and
"Allies").  The functions here translate those sides into the two teams of a
tournament match, either from an explicit pre-assignment on the match map or
by a majority vote of the rostered players found in the round's sessions.
Nothing in this module touches the database.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Set, Tuple

ROUND_SIDES = (1, 2)


class SessionLike(Protocol):
    player_name: str
    current_team: int


@dataclass(frozen=True)
class TeamMapping:
    """Round side played by the match's Team1 and Team2.

    Both sides are ``None`` when the mapping could not be determined, in
    which case ``warning`` says why.
    """

    team1_side: Optional[int]
    team2_side: Optional[int]
    confidence: float
    warning: Optional[str] = None

    @property
    def is_mapped(self) -> bool:
        return self.team1_side is not None and self.team2_side is not None


def _normalize_player_name(name: str) -> str:
    return name.strip().lower()


def _other_side(side: int) -> int:
    return 2 if side == 1 else 1


def _preferred_side(votes: Dict[int, int]) -> Optional[int]:
    if votes[1] > votes[2]:
        return 1
    if votes[2] > votes[1]:
        return 2
    return None


def _unmapped(warning: str) -> TeamMapping:
    return TeamMapping(team1_side=None, team2_side=None, confidence=0.0, warning=warning)


def infer_team_mapping(
    team1_roster: Iterable[str],
    team2_roster: Iterable[str],
    sessions: Iterable[SessionLike],
) -> TeamMapping:
    """Infer the side mapping from roster membership of the round's players.

    Every distinct (player, side) pair votes once, so a player with several
    sessions on the same side is not over-counted while a player who swapped
    sides mid-round votes for both.
    """

    roster1: Set[str] = {_normalize_player_name(p) for p in team1_roster if p}
    roster2: Set[str] = {_normalize_player_name(p) for p in team2_roster if p}

    pairs: Set[Tuple[str, int]] = {
        (_normalize_player_name(s.player_name), s.current_team)
        for s in sessions
        if s.player_name and s.current_team in ROUND_SIDES
    }

    votes1 = {side: 0 for side in ROUND_SIDES}
    votes2 = {side: 0 for side in ROUND_SIDES}
    for player, side in pairs:
        if player in roster1:
            votes1[side] += 1
        if player in roster2:
            votes2[side] += 1

    total1 = sum(votes1.values())
    total2 = sum(votes2.values())

    if total1 == 0 and total2 == 0:
        return _unmapped("Could not determine team mapping - no matching players found")

    side1 = _preferred_side(votes1) if total1 else None
    side2 = _preferred_side(votes2) if total2 else None

    if total1 and side1 is None:
        return _unmapped(
            "Could not determine team mapping - team 1 players are split evenly "
            f"between sides ({votes1[1]} vs {votes1[2]})"
        )
    if total2 and side2 is None:
        return _unmapped(
            "Could not determine team mapping - team 2 players are split evenly "
            f"between sides ({votes2[1]} vs {votes2[2]})"
        )

    if side1 is None:
        side1 = _other_side(side2)
    elif side2 is None:
        side2 = _other_side(side1)
    elif side1 == side2:
        return _unmapped(
            "Could not determine team mapping - players of both teams appear "
            f"predominantly on side {side1}"
        )

    consistent = votes1[side1] + votes2[side2]
    return TeamMapping(
        team1_side=side1,
        team2_side=side2,
        confidence=consistent / (total1 + total2),
    )


def anchored_mapping(anchor_team_id: int, team1_id: int, team2_id: int) -> TeamMapping:
    """Mapping for a map whose team was assigned by an admin.

    The assigned team plays round side 1 and the other match team takes
    side 2.
    """

    if anchor_team_id == team1_id:
        return TeamMapping(team1_side=1, team2_side=2, confidence=1.0)
    if anchor_team_id == team2_id:
        return TeamMapping(team1_side=2, team2_side=1, confidence=1.0)
    raise ValueError(f"Team {anchor_team_id} is not part of this match")
