# triviatitans/client/countdown.py
from __future__ import annotations

from typing import Optional

from triviatitans.domain.common.validation import deadline_ms
from triviatitans.store.models import Game
from triviatitans.util.timeutil import ms_to_sec_ceil


def remaining_ms(game: Game, now: int) -> Optional[int]:
    """
    Time left on the game clock, derived only from the anchor:
    `gameStartedAt + timer - now`, clamped at 0. None before the game is anchored.
    """
    d = deadline_ms(game)
    if d is None:
        return None
    return max(0, d - now)


def remaining_sec(game: Game, now: int) -> Optional[int]:
    ms = remaining_ms(game, now)
    return None if ms is None else ms_to_sec_ceil(ms)


def starts_in_sec(game: Game, now: int) -> Optional[int]:
    """Countdown shown while `starting`: seconds until the anchor."""
    if game.status != "starting" or game.game_started_at is None:
        return None
    return ms_to_sec_ceil(game.game_started_at - now)


def format_clock(sec: Optional[int]) -> str:
    if sec is None:
        return "--:--"
    m, s = divmod(max(0, sec), 60)
    return f"{m:02d}:{s:02d}"
