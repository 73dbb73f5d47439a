from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Round(SQLModel, table=True):
    """A completed round as recorded by the server poller.

    Read-only from the tournament side; the team labels are the in-game
    sides ("Axis", "Allies"), not tournament teams.
    """

    __tablename__ = "round"

    round_id: str = Field(primary_key=True, max_length=64)
    server_guid: str = Field(default="", max_length=64)
    server_name: str = Field(default="", max_length=255)
    map_name: str = Field(default="", max_length=100)
    game_type: str = Field(default="", max_length=50)
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    tickets1: Optional[int] = None
    tickets2: Optional[int] = None
    team1_label: Optional[str] = Field(default=None, max_length=50)
    team2_label: Optional[str] = Field(default=None, max_length=50)


class PlayerSession(SQLModel, table=True):
    __tablename__ = "player_session"

    session_id: Optional[int] = Field(default=None, primary_key=True)
    round_id: Optional[str] = Field(default=None, foreign_key="round.round_id", index=True)
    player_name: str = Field(max_length=100)
    current_team: int = Field(default=1)  # round side, 1 or 2
    current_team_label: str = Field(default="", max_length=50)
    total_score: int = Field(default=0)
    total_kills: int = Field(default=0)
    total_deaths: int = Field(default=0)
