# triviatitans/domain/common/fsm.py
from __future__ import annotations

from typing import Type

from triviatitans.domain.common.errors import GameError, StatusConflict
from triviatitans.domain.common.types import GameStatus

TRANSITIONS: dict[GameStatus, list[GameStatus]] = {
    "lobby": ["starting", "playing"],
    "starting": ["playing"],
    "playing": ["finished"],
    "finished": ["lobby"],
}


def can_transition_to(current: GameStatus, target: GameStatus) -> bool:
    """
    Validate Game status transitions.
    """
    return target in TRANSITIONS.get(current, [])


def require_status(
    current: GameStatus,
    *allowed: GameStatus,
    op: str,
    error: Type[GameError] = StatusConflict,
) -> None:
    if current not in allowed:
        raise error(f"Cannot {op} while game is {current}")
