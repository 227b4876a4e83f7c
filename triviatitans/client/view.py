# triviatitans/client/view.py
"""
Per-snapshot view derivation.

Every snapshot is treated as a fresh full state: nothing here looks at the
previous snapshot, so out-of-order echoes of a client's own writes are harmless.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from triviatitans.client.countdown import format_clock, remaining_sec, starts_in_sec
from triviatitans.domain.common.types import GameStatus, PlayerPhase
from triviatitans.domain.common.validation import can_run_session, deadline_passed, is_admin
from triviatitans.store.models import Game, Player


class GameView(BaseModel):
    game_id: str
    status: GameStatus
    is_admin: bool = False
    can_run_session: bool = False
    player: Optional[Player] = None
    question_index: Optional[int] = None
    question: Optional[str] = None                       # text only; never the answer
    options: List[str] = Field(default_factory=list)
    language: str = "en"
    phase: PlayerPhase = "waiting"
    remaining_sec: Optional[int] = None
    clock: str = "--:--"                                 # remaining_sec as MM:SS
    starts_in_sec: Optional[int] = None
    deadline_passed: bool = False
    total_questions: int = 0


def current_question_index(game: Game, player: Optional[Player]) -> Optional[int]:
    if player is None or game.status != "playing":
        return None
    idx = len(player.answered_questions)
    if idx >= len(game.questions):
        return None
    return idx


def derive_view(game: Game, uid: Optional[str], now: int) -> GameView:
    player = game.find_player(uid) if uid else None
    idx = current_question_index(game, player)
    language = game.language_for(player)
    text, options = game.questions[idx].localized(language) if idx is not None else (None, [])
    remaining = remaining_sec(game, now) if game.status == "playing" else None

    if game.status == "finished":
        phase: PlayerPhase = "done"
    elif game.status != "playing" or player is None:
        phase = "waiting"
    elif idx is None:
        # out of questions before the clock ran out
        phase = "done"
    else:
        phase = "question"

    return GameView(
        game_id=game.id,
        status=game.status,
        is_admin=is_admin(game, uid),
        can_run_session=can_run_session(game, uid),
        player=player,
        question_index=idx,
        question=text,
        options=options,
        language=language,
        phase=phase,
        remaining_sec=remaining,
        clock=format_clock(remaining),
        starts_in_sec=starts_in_sec(game, now),
        deadline_passed=game.status == "playing" and deadline_passed(game, now),
        total_questions=len(game.questions),
    )


def redact_for(game: Game, uid: Optional[str]) -> dict:
    """Wire snapshot for a subscriber; only the admin sees canonical answers."""
    doc = game.to_doc()
    if not is_admin(game, uid):
        for q in doc.get("questions", []):
            q["answer"] = None
            q["answerAr"] = None
    return doc
