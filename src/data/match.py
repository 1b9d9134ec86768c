from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

DEFAULT_MAP = "de_dust2"
DEFAULT_ELO = 1000
MAP_SIDES = ("team1_ct", "team2_ct", "knife")


@dataclass(frozen=True)
class MatchTeam:
    number: int
    name: str
    average_elo: float = DEFAULT_ELO
    id: Optional[str] = None


@dataclass(frozen=True)
class MatchPlayer:
    steam_id: str
    username: Optional[str] = None
    team_id: Optional[str] = None


@dataclass(frozen=True)
class MatchSetup:
    game_id: str
    match_number: int
    game_mode: str
    map_name: Optional[str] = None
    players: Tuple[MatchPlayer, ...] = ()
    teams: Tuple[MatchTeam, ...] = ()


def _display_name(player: MatchPlayer) -> str:
    return player.username or f"Player_{player.steam_id[-4:]}"


def _round_half_up(value: float) -> int:
    # round() would send 1000.5 to 1000
    return math.floor(value + 0.5)


def _team(teams: Tuple[MatchTeam, ...], number: int) -> Optional[MatchTeam]:
    return next((team for team in teams if team.number == number), None)


def assign_players(setup: MatchSetup) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Split players into team1/team2 rosters keyed by steam id.

    Players whose team is unknown go to the smaller roster, team 1 on ties.
    """
    team_numbers = {team.id: team.number for team in setup.teams if team.id}
    team1: Dict[str, str] = {}
    team2: Dict[str, str] = {}

    for player in setup.players:
        number = team_numbers.get(player.team_id) if player.team_id else None
        if number == 1:
            roster = team1
        elif number == 2:
            roster = team2
        else:
            roster = team1 if len(team1) <= len(team2) else team2
        roster[player.steam_id] = _display_name(player)
    return team1, team2


def build_match_config(setup: MatchSetup, match_end_route: str = "") -> Dict[str, Any]:
    team1_players, team2_players = assign_players(setup)

    team1 = _team(setup.teams, 1) if len(setup.teams) >= 2 else None
    team2 = _team(setup.teams, 2) if len(setup.teams) >= 2 else None
    team1_name = team1.name if team1 else "Team 1"
    team2_name = team2.name if team2 else "Team 2"
    team1_elo = _round_half_up(team1.average_elo) if team1 else DEFAULT_ELO
    team2_elo = _round_half_up(team2.average_elo) if team2 else DEFAULT_ELO

    return {
        "matchid": setup.match_number,
        "team1": {"name": team1_name, "players": team1_players},
        "team2": {"name": team2_name, "players": team2_players},
        "maplist": [setup.map_name or DEFAULT_MAP],
        "map_sides": list(MAP_SIDES),
        "players_per_team": max(len(team1_players), len(team2_players)),
        "cvars": {
            "hostname": f"Squidcup: {team1_name} ({team1_elo}) vs {team2_name} ({team2_elo})",
            "sv_human_autojoin_team": "1",
        },
        "gamemode": setup.game_mode,
        "match_end_route": match_end_route,
    }


def config_file_name(setup: MatchSetup) -> str:
    return f"{setup.match_number}_{setup.game_id}.json"
