from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class TournamentMatch(SQLModel, table=True):
    __tablename__ = "tournament_match"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    scheduled_date: datetime
    team1_id: int = Field(foreign_key="tournament_team.id")
    team2_id: int = Field(foreign_key="tournament_team.id")

    # Server may not be known until the tournament starts
    server_guid: Optional[str] = Field(default=None, max_length=64)
    server_name: Optional[str] = Field(default=None, max_length=255)

    # Free-form grouping used by the weekly standings, e.g. "Week 1"
    week: Optional[str] = Field(default=None, max_length=50)
    created_at: datetime = Field(default_factory=datetime.now)


class TournamentMatchMap(SQLModel, table=True):
    __tablename__ = "tournament_match_map"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="tournament_match.id", index=True)
    map_name: str = Field(max_length=100)
    # 0-based; map names may repeat within a match
    map_order: int = Field(default=0)
    # Explicit side pre-assignment: this team is taken to have played round side 1
    # (the first ticket count). It overrides the roster vote and is not checked
    # against the round's sessions or side labels.
    team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")
    round_id: Optional[str] = Field(default=None, max_length=64)
