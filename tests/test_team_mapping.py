import pytest

from bfstats.models import PlayerSession
from bfstats.services.team_mapping import anchored_mapping, infer_team_mapping

ALPHA = ["alpha1", "alpha2", "alpha3"]
BRAVO = ["bravo1", "bravo2", "bravo3"]


def _sessions(pairs):
    return [PlayerSession(player_name=name, current_team=side) for name, side in pairs]


def test_full_rosters_on_opposite_sides_map_cleanly():
    sessions = _sessions([("alpha1", 1), ("alpha2", 1), ("bravo1", 2), ("bravo2", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert mapping.is_mapped
    assert (mapping.team1_side, mapping.team2_side) == (1, 2)
    assert mapping.confidence == 1.0
    assert mapping.warning is None


def test_team1_playing_side_two_is_detected():
    sessions = _sessions([("alpha1", 2), ("alpha2", 2), ("bravo3", 1)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert (mapping.team1_side, mapping.team2_side) == (2, 1)


def test_majority_wins_and_confidence_reflects_dissent():
    sessions = _sessions([("alpha1", 1), ("alpha2", 1), ("alpha3", 2), ("bravo1", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert (mapping.team1_side, mapping.team2_side) == (1, 2)
    assert mapping.confidence == pytest.approx(3 / 4)


def test_only_one_team_present_takes_complementary_side():
    sessions = _sessions([("bravo1", 1), ("bravo2", 1), ("stranger", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert (mapping.team1_side, mapping.team2_side) == (2, 1)


def test_player_names_match_case_insensitively():
    sessions = _sessions([("  ALPHA1 ", 1), ("Bravo2", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert (mapping.team1_side, mapping.team2_side) == (1, 2)


def test_repeated_sessions_vote_once():
    # alpha1 reconnected three times on side 2; alpha2 and alpha3 are on side 1.
    sessions = _sessions([("alpha1", 2), ("alpha1", 2), ("alpha1", 2), ("alpha2", 1), ("alpha3", 1)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert mapping.team1_side == 1


def test_no_rostered_players_is_ambiguous():
    sessions = _sessions([("stranger1", 1), ("stranger2", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert not mapping.is_mapped
    assert mapping.confidence == 0.0
    assert "no matching players found" in mapping.warning


def test_no_sessions_is_ambiguous():
    mapping = infer_team_mapping(ALPHA, BRAVO, [])

    assert not mapping.is_mapped
    assert mapping.warning


def test_tied_vote_is_ambiguous():
    sessions = _sessions([("alpha1", 1), ("alpha2", 2)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert not mapping.is_mapped
    assert "split evenly" in mapping.warning


def test_both_teams_on_same_side_is_contradictory():
    sessions = _sessions([("alpha1", 1), ("alpha2", 1), ("bravo1", 1), ("bravo2", 1)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert not mapping.is_mapped
    assert "side 1" in mapping.warning


def test_sessions_without_a_valid_side_are_ignored():
    sessions = _sessions([("alpha1", 0), ("alpha2", 3)])

    mapping = infer_team_mapping(ALPHA, BRAVO, sessions)

    assert not mapping.is_mapped


def test_anchored_mapping_puts_assigned_team_on_side_one():
    assert (anchored_mapping(10, 10, 20).team1_side, anchored_mapping(10, 10, 20).team2_side) == (1, 2)
    assert (anchored_mapping(20, 10, 20).team1_side, anchored_mapping(20, 10, 20).team2_side) == (2, 1)


def test_anchored_mapping_rejects_foreign_team():
    with pytest.raises(ValueError):
        anchored_mapping(99, 10, 20)
