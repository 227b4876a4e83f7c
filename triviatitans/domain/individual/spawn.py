# triviatitans/domain/individual/spawn.py
from __future__ import annotations

import random
import re
from typing import Dict, Optional

from triviatitans.domain.common.errors import MissingPlayerFields, StatusConflict
from triviatitans.domain.common.validation import missing_player_fields
from triviatitans.domain.lifecycle.sessions import PIN_ALPHABET, PIN_ATTEMPTS
from triviatitans.domain.questions.generator import QuestionGenerator
from triviatitans.logging_utils import get_logger
from triviatitans.settings import Settings
from triviatitans.store.models import Game, Player, Team, new_grid, normalize_pin
from triviatitans.util.timeutil import now_ms

logger = get_logger(__name__)

_NOT_ALNUM = re.compile(r"[^A-Z0-9]")
SOLO_TEAM = "Solo"


def child_pin(parent_pin: str, uid: str, suffix_len: int = 4) -> str:
    """Parent PIN + identity fragment + random suffix, all uppercase alphanumeric."""
    fragment = _NOT_ALNUM.sub("", uid.upper())[:4]
    suffix = "".join(random.choice(PIN_ALPHABET) for _ in range(suffix_len))
    return f"{normalize_pin(parent_pin)}{fragment}{suffix}"


def build_child(
    parent: Game,
    *,
    pin: str,
    uid: str,
    name: str,
    player_id: str,
    questions,
    grid_size: int,
    now: int,
    custom_data: Optional[Dict[str, str]] = None,
    language: Optional[str] = None,
) -> Game:
    style = parent.teams[0] if parent.teams else None
    team_name = style.name if style else SOLO_TEAM
    return Game(
        id=pin,
        title=parent.title,
        description=parent.description,
        status="lobby",
        teams=[
            Team(
                name=team_name,
                capacity=1,
                color=style.color if style else "",
                icon=style.icon if style else "",
                players=[
                    Player(
                        id=uid,
                        player_id=player_id,
                        name=name,
                        team_name=team_name,
                        custom_data=dict(custom_data or {}),
                        language=language,
                    )
                ],
            )
        ],
        questions=list(questions),
        grid=new_grid(len(parent.grid) or grid_size),
        created_at=now,
        timer=parent.timer,
        topic=parent.topic,
        difficulty=parent.difficulty,
        session_type="individual",
        parent_session_id=parent.id,
        admin_id=parent.admin_id,
        required_player_fields=[f.model_copy() for f in parent.required_player_fields],
        language=parent.language,
        theme=parent.theme,
    )


async def spawn_individual_session(
    repo,
    generator: QuestionGenerator,
    settings: Settings,
    parent_pin: str,
    *,
    uid: str,
    name: str,
    player_id: str = "",
    custom_data: Optional[Dict[str, str]] = None,
    language: Optional[str] = None,
    now: Optional[int] = None,
) -> Game:
    """
    Clone an individual-mode template into a private one-player Game and return it.

    Not a transaction: the parent read and the child write are independent, and
    a repeated call simply leaves another (expiring) child behind.
    """
    parent = await repo.get(parent_pin)
    if parent.session_type != "individual":
        raise StatusConflict(f"Game {parent.id} is not an individual session")
    missing = missing_player_fields(parent, custom_data)
    if missing:
        raise MissingPlayerFields(f"Please fill in: {', '.join(missing)}")

    questions = parent.questions
    if not questions:
        questions = await generator.generate(parent.topic, settings.QUESTION_POOL_SIZE)

    ts = now if now is not None else now_ms()
    for _ in range(PIN_ATTEMPTS):
        child = build_child(
            parent,
            pin=child_pin(parent.id, uid),
            uid=uid,
            name=name,
            player_id=player_id,
            questions=questions,
            grid_size=settings.GRID_SIZE,
            now=ts,
            custom_data=custom_data,
            language=language,
        )
        if await repo.create(child, ttl_sec=settings.INDIVIDUAL_SESSION_TTL_SEC, index=False):
            logger.info("Individual session spawned", extra={"parent": parent.id, "child": child.id, "uid": uid})
            return child
    raise StatusConflict("Could not allocate a free session id")
