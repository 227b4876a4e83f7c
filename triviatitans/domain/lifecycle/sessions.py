# triviatitans/domain/lifecycle/sessions.py
from __future__ import annotations

import random
import string
from typing import List, Optional, Sequence

from triviatitans.domain.common.errors import NotAdmin, StatusConflict
from triviatitans.domain.common.types import SessionType
from triviatitans.domain.common.validation import is_admin
from triviatitans.logging_utils import get_logger
from triviatitans.settings import Settings
from triviatitans.store.models import CustomPlayerField, Game, Team, new_grid, normalize_pin
from triviatitans.util.timeutil import now_ms

logger = get_logger(__name__)

PIN_ALPHABET = string.ascii_uppercase + string.digits
PIN_ATTEMPTS = 8

DEFAULT_TEAMS = (
    ("Team Alpha", "#FF6347"),
    ("Team Bravo", "#4682B4"),
)


def gen_pin(n: int = 6) -> str:
    return "".join(random.choice(PIN_ALPHABET) for _ in range(n))


def default_teams(capacity: int) -> List[Team]:
    return [Team(name=name, color=color, capacity=capacity) for name, color in DEFAULT_TEAMS]


async def _create_with_fresh_pin(repo, build, *, pin_len: int = 6, ttl_sec: Optional[int] = None, index: bool = True) -> Game:
    """`build(pin) -> Game`; retried with a new PIN on collision."""
    for _ in range(PIN_ATTEMPTS):
        game = build(gen_pin(pin_len))
        if await repo.create(game, ttl_sec=ttl_sec, index=index):
            return game
    raise StatusConflict("Could not allocate a free game PIN")


async def create_game(
    repo,
    settings: Settings,
    *,
    admin_id: str,
    title: str = "Trivia Titans",
    topic: Optional[str] = None,
    session_type: SessionType = "team",
    language: str = "en",
    required_player_fields: Optional[Sequence[CustomPlayerField]] = None,
    theme: Optional[str] = None,
    now: Optional[int] = None,
) -> Game:
    ts = now if now is not None else now_ms()

    def build(pin: str) -> Game:
        return Game(
            id=pin,
            title=title,
            status="lobby",
            teams=default_teams(settings.DEFAULT_TEAM_CAPACITY),
            questions=[],
            grid=new_grid(settings.GRID_SIZE),
            created_at=ts,
            game_started_at=None,
            timer=settings.DEFAULT_TIMER_SEC,
            topic=topic or settings.DEFAULT_TOPIC,
            session_type=session_type,
            admin_id=admin_id,
            required_player_fields=list(required_player_fields or []),
            language=language,
            theme=theme,
        )

    game = await _create_with_fresh_pin(repo, build)
    logger.info("Session created", extra={"op": "create_game", "uid": admin_id, "child": game.id})
    return game


async def duplicate_game(repo, pin: str, *, uid: str, now: Optional[int] = None) -> Game:
    """Copy settings, teams (emptied) and questions into a fresh lobby."""
    original = await repo.get(pin)
    if not is_admin(original, uid):
        raise NotAdmin("Only the session admin can duplicate it")
    ts = now if now is not None else now_ms()

    def build(new_pin: str) -> Game:
        return original.model_copy(
            deep=True,
            update={
                "id": new_pin,
                "status": "lobby",
                "teams": [t.model_copy(update={"score": 0, "players": []}) for t in original.teams],
                "grid": new_grid(len(original.grid)),
                "created_at": ts,
                "game_started_at": None,
                "parent_session_id": None,
            },
        )

    return await _create_with_fresh_pin(repo, build)


async def delete_game(repo, pin: str, *, uid: str) -> None:
    # spawned children keep their dangling parent reference
    game = await repo.get(pin)
    if not is_admin(game, uid):
        raise NotAdmin("Only the session admin can delete it")
    await repo.delete(normalize_pin(pin))
