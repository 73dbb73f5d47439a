from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class TournamentMatchResult(SQLModel, table=True):
    __tablename__ = "tournament_match_result"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    match_id: int = Field(foreign_key="tournament_match.id", index=True)
    # One result per map
    map_id: int = Field(foreign_key="tournament_match_map.id", unique=True)
    round_id: Optional[str] = Field(default=None, max_length=64)
    week: Optional[str] = Field(default=None, max_length=50)  # copied from the match

    # Null when the round sides could not be mapped onto tournament teams
    team1_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")
    winning_team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")

    team1_tickets: int = Field(default=0)
    team2_tickets: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
