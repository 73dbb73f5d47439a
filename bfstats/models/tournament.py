from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Tournament(SQLModel, table=True):
    __tablename__ = "tournament"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    organizer: str = Field(default="", max_length=255)
    game: str = Field(default="bf1942", max_length=50)  # bf1942, fh2, bfvietnam
    game_mode: Optional[str] = Field(default=None, max_length=50)  # Conquest, CTF, ...
    created_by_user_email: str = Field(index=True, max_length=320)
    created_at: datetime = Field(default_factory=datetime.now)
