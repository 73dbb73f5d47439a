from sqlmodel import SQLModel, Field
from typing import Optional


class TournamentTeamRanking(SQLModel, table=True):
    """Derived standings row; rewritten wholesale on every recalculation."""

    __tablename__ = "tournament_team_ranking"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="tournament_team.id")
    week: Optional[str] = Field(default=None, max_length=50)  # NULL = cumulative
    rank: int

    # Round-level statistics
    rounds_won: int = Field(default=0)
    rounds_tied: int = Field(default=0)
    rounds_lost: int = Field(default=0)
    ticket_differential: int = Field(default=0)

    # Match-level statistics
    matches_played: int = Field(default=0)
    victories: int = Field(default=0)
    ties: int = Field(default=0)
    losses: int = Field(default=0)

    tickets_for: int = Field(default=0)
    tickets_against: int = Field(default=0)
    points: int = Field(default=0)
