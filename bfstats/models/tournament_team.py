from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from typing import Optional
from datetime import datetime


class TournamentTeam(SQLModel, table=True):
    __tablename__ = "tournament_team"
    __table_args__ = (UniqueConstraint("tournament_id", "name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str = Field(max_length=100)  # usually the clan tag
    tag: Optional[str] = Field(default=None, max_length=20)
    created_at: datetime = Field(default_factory=datetime.now)


class TournamentTeamPlayer(SQLModel, table=True):
    __tablename__ = "tournament_team_player"
    # A player can only be rostered once per tournament.
    __table_args__ = (UniqueConstraint("tournament_id", "player_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="tournament_team.id", index=True)
    player_name: str = Field(max_length=100)
    joined_at: datetime = Field(default_factory=datetime.now)
