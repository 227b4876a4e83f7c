# triviatitans/domain/common/validation.py
from __future__ import annotations

from typing import Dict, List, Optional

from triviatitans.store.models import Game, Player


def normalize_answer(s: Optional[str]) -> str:
    return (s or "").strip().lower()


def is_correct(submitted: Optional[str], canonical: str, alternate: Optional[str] = None) -> bool:
    """Case-insensitive, whitespace-trimmed exact match against either answer variant."""
    given = normalize_answer(submitted)
    if given == normalize_answer(canonical):
        return True
    return bool(alternate) and given == normalize_answer(alternate)


def missing_player_fields(game: Game, custom_data: Optional[Dict[str, str]]) -> List[str]:
    """Labels of the session's sign-up fields left blank."""
    data = custom_data or {}
    return [f.label for f in game.required_player_fields if not (data.get(f.id) or "").strip()]


def is_admin(game: Game, uid: Optional[str]) -> bool:
    """Check if uid owns the Game."""
    return bool(uid) and game.admin_id == uid


def is_participant(game: Game, uid: Optional[str]) -> bool:
    return bool(uid) and game.find_player(uid) is not None


def can_run_session(game: Game, uid: Optional[str]) -> bool:
    """Admin, or any participant of an individual session."""
    return is_admin(game, uid) or (game.is_individual and is_participant(game, uid))


def deadline_ms(game: Game) -> Optional[int]:
    if game.game_started_at is None:
        return None
    return game.game_started_at + game.timer * 1000


def deadline_passed(game: Game, now: int) -> bool:
    d = deadline_ms(game)
    return d is not None and now >= d


def territory_owner(game: Game, player: Player) -> str:
    """Squares belong to the player in individual sessions, to the team otherwise."""
    return player.id if game.is_individual else player.team_name
