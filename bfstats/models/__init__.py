"""Convenience exports for the models package."""

from .round import PlayerSession, Round
from .tournament import Tournament
from .tournament_match import TournamentMatch, TournamentMatchMap
from .tournament_match_result import TournamentMatchResult
from .tournament_team import TournamentTeam, TournamentTeamPlayer
from .tournament_team_ranking import TournamentTeamRanking
