# triviatitans/domain/game/results.py
from __future__ import annotations

from collections import Counter
from typing import Dict, List

from pydantic import BaseModel, Field

from triviatitans.store.models import CustomPlayerField, Game


class TeamStanding(BaseModel):
    name: str
    score: int
    territory: int
    players: int
    color: str = ""


class PlayerStanding(BaseModel):
    id: str
    name: str
    team_name: str
    score: int
    territory: int
    answered: int
    custom_data: Dict[str, str] = Field(default_factory=dict)


class GameResults(BaseModel):
    game_id: str
    status: str
    teams: List[TeamStanding] = Field(default_factory=list)
    winners: List[str] = Field(default_factory=list)
    players: List[PlayerStanding] = Field(default_factory=list)
    # extra leaderboard columns: the sign-up fields other than the name
    columns: List[CustomPlayerField] = Field(default_factory=list)
    unclaimed: int = 0


def territory_counts(game: Game) -> Dict[str, int]:
    """Squares per owner (team name, or player id in individual sessions)."""
    return dict(Counter(s.colored_by for s in game.grid if s.colored_by is not None))


def leaderboard_columns(game: Game) -> List[CustomPlayerField]:
    fields = game.required_player_fields
    name_field = next((f for f in fields if "name" in f.label.lower()), None)
    return [f for f in fields if name_field is None or f.id != name_field.id]


def build_results(game: Game) -> GameResults:
    counts = territory_counts(game)
    teams = sorted(
        (
            TeamStanding(
                name=t.name,
                score=t.score,
                territory=counts.get(t.name, 0) + sum(counts.get(p.id, 0) for p in t.players),
                players=len(t.players),
                color=t.color,
            )
            for t in game.teams
        ),
        key=lambda t: (-t.score, -t.territory, t.name),
    )
    top = teams[0].score if teams else 0
    # nobody wins a game where nobody scored
    winners = [t.name for t in teams if t.score == top and top > 0]

    players = sorted(
        (
            PlayerStanding(
                id=p.id,
                name=p.name,
                team_name=p.team_name,
                score=p.score,
                territory=counts.get(p.id, 0),
                answered=len(p.answered_questions),
                custom_data=dict(p.custom_data),
            )
            for p in game.all_players()
        ),
        key=lambda p: (-p.score, p.name),
    )
    return GameResults(
        game_id=game.id,
        status=game.status,
        teams=teams,
        winners=winners,
        players=players,
        columns=leaderboard_columns(game),
        unclaimed=sum(1 for s in game.grid if s.colored_by is None),
    )
