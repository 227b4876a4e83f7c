# triviatitans/domain/game/operations.py
"""
Transaction operations: each one is a single atomic read-modify-write of one
Game document, validated against the state read inside the transaction.

Operations a client drives return the committed `Snapshot` (document plus
revision) so the caller can acknowledge with the revision it produced.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from triviatitans.domain.common.errors import NotAdmin
from triviatitans.domain.common.validation import is_admin
from triviatitans.domain.game import rules
from triviatitans.domain.questions.generator import QuestionGenerator
from triviatitans.logging_utils import get_logger
from triviatitans.store.models import CustomPlayerField, Game, Question, Team
from triviatitans.store.redis_repo import Snapshot
from triviatitans.util.timeutil import now_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class AnswerResult:
    game: Game
    rev: int
    correct: Optional[bool]  # None: nothing applied (stale index or no questions left)


@dataclass(frozen=True)
class ClaimResult:
    game: Game
    rev: int
    claimed: bool  # False: skipped, or the square was taken first


async def join_team(
    repo,
    pin: str,
    *,
    uid: str,
    name: str,
    player_id: str,
    team_name: str,
    custom_data: Optional[Dict[str, str]] = None,
    language: Optional[str] = None,
) -> Snapshot:
    return await repo.transact_snapshot(
        pin,
        lambda g: rules.join_team(
            g,
            uid=uid,
            name=name,
            player_id=player_id,
            team_name=team_name,
            custom_data=custom_data,
            language=language,
        ),
        op="join_team",
    )


async def _questions_for_start(game: Game, generator: QuestionGenerator, pool_size: int) -> Optional[list[Question]]:
    if game.questions:
        return None
    # generation happens outside the transaction; a failure leaves the game in lobby
    return await generator.generate(game.topic, pool_size)


async def start_game(
    repo,
    generator: QuestionGenerator,
    pin: str,
    *,
    uid: str,
    pool_size: int = 20,
    countdown_sec: int = 0,
    now: Optional[int] = None,
) -> Snapshot:
    game = await repo.get(pin)
    rules.check_can_start(game, uid=uid)
    questions = await _questions_for_start(game, generator, pool_size)

    ts = now if now is not None else now_ms()
    started = await repo.transact_snapshot(
        pin,
        lambda g: rules.start_game(g, uid=uid, now=ts, questions=questions, countdown_ms=countdown_sec * 1000),
        op="schedule_start" if countdown_sec > 0 else "start_game",
    )
    logger.info("Game started", extra={"op": "start_game", "status": started.game.status, "uid": uid})
    return started


async def promote_start(repo, pin: str, *, now: Optional[int] = None) -> Snapshot:
    ts = now if now is not None else now_ms()
    return await repo.transact_snapshot(pin, lambda g: rules.promote_start(g, now=ts), op="promote_start")


async def submit_answer(
    repo, pin: str, *, uid: str, answer: str, question_index: Optional[int] = None
) -> AnswerResult:
    outcome: dict[str, Optional[bool]] = {}

    def _apply(g: Game) -> Game:
        # re-run on every retry; the last run is the one that committed
        outcome["correct"] = rules.grade_submission(g, uid=uid, answer=answer, question_index=question_index)
        return rules.submit_answer(g, uid=uid, answer=answer, question_index=question_index)

    snap = await repo.transact_snapshot(pin, _apply, op="submit_answer")
    return AnswerResult(game=snap.game, rev=snap.rev, correct=outcome.get("correct"))


async def claim_territory(repo, pin: str, *, uid: str, square_id: Optional[int]) -> ClaimResult:
    outcome: dict[str, bool] = {}

    def _apply(g: Game) -> Game:
        new = rules.claim_territory(g, uid=uid, square_id=square_id)
        outcome["claimed"] = new is not g
        return new

    snap = await repo.transact_snapshot(pin, _apply, op="claim_territory" if square_id is not None else "skip_claim")
    return ClaimResult(game=snap.game, rev=snap.rev, claimed=outcome.get("claimed", False))


async def skip_claim(repo, pin: str, *, uid: str) -> ClaimResult:
    return await claim_territory(repo, pin, uid=uid, square_id=None)


async def end_game(repo, pin: str, *, uid: Optional[str], now: Optional[int] = None) -> Snapshot:
    ts = now if now is not None else now_ms()
    return await repo.transact_snapshot(pin, lambda g: rules.end_game(g, uid=uid, now=ts), op="end_game")


async def reset_game(repo, pin: str, *, uid: str) -> Snapshot:
    return await repo.transact_snapshot(pin, lambda g: rules.reset_game(g, uid=uid), op="reset_game")


async def update_settings(
    repo,
    pin: str,
    *,
    uid: str,
    topic: Optional[str] = None,
    difficulty: Optional[str] = None,
    timer: Optional[int] = None,
    teams: Optional[Sequence[Team]] = None,
    questions: Optional[Sequence[Question]] = None,
    required_player_fields: Optional[Sequence[CustomPlayerField]] = None,
    language: Optional[str] = None,
    theme: Optional[str] = None,
) -> Game:
    return await repo.transact(
        pin,
        lambda g: rules.update_settings(
            g,
            uid=uid,
            topic=topic,
            difficulty=difficulty,
            timer=timer,
            teams=teams,
            questions=questions,
            required_player_fields=required_player_fields,
            language=language,
            theme=theme,
        ),
        op="update_settings",
    )


async def update_metadata(repo, pin: str, *, uid: str, **fields: Any) -> Game:
    """Title/description: allowed in any status, admin only."""
    game = await repo.get(pin)
    if not is_admin(game, uid):
        raise NotAdmin("Only the session admin can edit session details")
    return await repo.update_fields(pin, **fields)
