# triviatitans/store/redis_keys.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GK:
    """
    Redis Key builder for game-scoped keys.
    `pin` must already be normalized (uppercase).
    """
    pin: str

    def game(self) -> str:
        return f"game:{self.pin}"  # STRING (Game JSON)

    def rev(self) -> str:
        return f"game:{self.pin}:rev"  # STRING int, bumped on every commit

    def updates(self) -> str:
        return f"game:{self.pin}:updates"  # PUBSUB channel: {"rev": n, "game": {...}|null}

    def all_game_keys(self) -> list[str]:
        return [self.game(), self.rev()]


def admin_games(admin_id: str) -> str:
    return f"admin:{admin_id}:games"  # SET pin
