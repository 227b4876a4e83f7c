# triviatitans/domain/game/rules.py
"""
Pure Game reducers: (document, input) -> next document.

Every function here runs inside a store transaction and may be re-run on a
fresher read after a conflict, so none of them touches I/O, clocks or
randomness; `now` is passed in by the caller. Returning the input document
unchanged means "nothing to commit".
"""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from triviatitans.domain.common.errors import (
    AlreadyJoined,
    InvalidDocument,
    MissingPlayerFields,
    NoCreditsRemaining,
    NoPlayers,
    NotAdmin,
    NotJoinable,
    PlayerNotFound,
    SquareNotFound,
    StatusConflict,
    TeamFull,
    TeamNotFound,
)
from triviatitans.domain.common.fsm import require_status
from triviatitans.domain.common.validation import (
    can_run_session,
    deadline_passed,
    is_admin,
    is_correct,
    missing_player_fields,
    territory_owner,
)
from triviatitans.store.models import CustomPlayerField, Game, Player, Question, Team, new_grid


def _player_or_raise(game: Game, uid: str) -> Player:
    player = game.find_player(uid)
    if player is None:
        raise PlayerNotFound(f"{uid} has not joined this game")
    return player


# ----------------------------
# Lobby
# ----------------------------
def join_team(
    game: Game,
    *,
    uid: str,
    name: str,
    player_id: str,
    team_name: str,
    custom_data: Optional[Dict[str, str]] = None,
    language: Optional[str] = None,
) -> Game:
    require_status(game.status, "lobby", op="join a team", error=NotJoinable)
    if game.find_player(uid) is not None:
        raise AlreadyJoined("Already joined a team")
    team = game.find_team(team_name)
    if team is None:
        raise TeamNotFound(f"Team {team_name!r} not found")
    if len(team.players) >= team.capacity:
        raise TeamFull(f"Sorry, {team_name} is full")
    missing = missing_player_fields(game, custom_data)
    if missing:
        raise MissingPlayerFields(f"Please fill in: {', '.join(missing)}")

    g = game.model_copy(deep=True)
    g.find_team(team_name).players.append(
        Player(
            id=uid,
            player_id=player_id,
            name=name,
            team_name=team_name,
            custom_data=dict(custom_data or {}),
            language=language,
        )
    )
    return g


def update_settings(
    game: Game,
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
    if not is_admin(game, uid):
        raise NotAdmin("Only the session admin can change settings")
    # topic/difficulty/timer are frozen once the game has started
    require_status(game.status, "lobby", op="change settings")

    g = game.model_copy(deep=True)
    if topic is not None:
        g.topic = topic
    if difficulty is not None:
        g.difficulty = difficulty
    if timer is not None:
        g.timer = timer
    if questions is not None:
        g.questions = [q.model_copy(deep=True) for q in questions]
    if language is not None:
        g.language = language
    if theme is not None:
        g.theme = theme
    if required_player_fields is not None:
        if game.all_players():
            raise StatusConflict("Sign-up fields cannot change after players have joined")
        g.required_player_fields = [f.model_copy() for f in required_player_fields]
    if teams is not None:
        if game.all_players():
            raise StatusConflict("Teams cannot change after players have joined")
        if not teams:
            raise InvalidDocument("A game needs at least one team")
        g.teams = [
            Team(name=t.name, capacity=t.capacity, color=t.color, icon=t.icon, score=0, players=[])
            for t in teams
        ]
    return g


# ----------------------------
# Start
# ----------------------------
def check_can_start(game: Game, *, uid: str) -> None:
    require_status(game.status, "lobby", op="start")
    if not can_run_session(game, uid):
        raise NotAdmin("Only the session admin can start the game")
    if not game.all_players():
        raise NoPlayers("At least one player must join to start")


def start_game(
    game: Game,
    *,
    uid: str,
    now: int,
    questions: Optional[Sequence[Question]] = None,
    countdown_ms: int = 0,
) -> Game:
    """
    lobby -> playing (or -> starting when `countdown_ms` schedules the anchor in the future).
    Uses the stored question set, else `questions` generated by the caller.
    """
    check_can_start(game, uid=uid)

    pool: List[Question] = list(game.questions) or list(questions or [])
    if not pool:
        raise StatusConflict("Cannot start without questions")

    g = game.model_copy(deep=True)
    g.questions = [q.model_copy(deep=True) for q in pool]
    for team in g.teams:
        team.score = 0
        for p in team.players:
            p.answered_questions = []
            p.coloring_credits = 0
            p.score = 0
    if countdown_ms > 0:
        g.status = "starting"
        g.game_started_at = now + countdown_ms
    else:
        g.status = "playing"
        g.game_started_at = now
    return g


def promote_start(game: Game, *, now: int) -> Game:
    """starting -> playing once the anchor is reached. Early or repeated calls are no-ops."""
    if game.status == "playing":
        return game
    require_status(game.status, "starting", op="promote start")
    if game.game_started_at is not None and game.game_started_at > now:
        return game
    return game.model_copy(update={"status": "playing"})


# ----------------------------
# Play
# ----------------------------
def grade_submission(
    game: Game, *, uid: str, answer: str, question_index: Optional[int] = None
) -> Optional[bool]:
    """
    Judge a submission against the question at the player's cursor.
    Returns None when there is nothing to apply: the index is stale (duplicate
    submit) or every question has been answered.
    """
    require_status(game.status, "playing", op="answer")
    player = _player_or_raise(game, uid)
    cursor = len(player.answered_questions)
    if question_index is not None and question_index != cursor:
        return None
    if cursor >= len(game.questions):
        return None
    q = game.questions[cursor]
    return is_correct(answer, q.answer, q.answer_ar)


def submit_answer(game: Game, *, uid: str, answer: str, question_index: Optional[int] = None) -> Game:
    correct = grade_submission(game, uid=uid, answer=answer, question_index=question_index)
    if correct is None:
        return game

    g = game.model_copy(deep=True)
    player = g.find_player(uid)
    team = g.find_team(player.team_name)
    player.answered_questions.append(g.questions[len(player.answered_questions)].question)
    if correct:
        team.score += 1
        player.score += 1
        player.coloring_credits += 1
    elif g.is_individual:
        # the capacity-1 team is the player's own; nothing is shared with others
        team.score -= 1
        player.score -= 1
    return g


def claim_territory(game: Game, *, uid: str, square_id: Optional[int]) -> Game:
    """
    Spend one credit on an unclaimed square. `square_id=None` is a skip.
    A square that is already colored is left alone (first commit wins).
    """
    require_status(game.status, "playing", op="claim territory")
    player = _player_or_raise(game, uid)
    if square_id is None:
        return game
    if player.coloring_credits <= 0:
        raise NoCreditsRemaining("Answer more questions correctly to earn credits")

    idx = next((i for i, s in enumerate(game.grid) if s.id == square_id), None)
    if idx is None:
        raise SquareNotFound(f"Square {square_id} not found")
    if game.grid[idx].colored_by is not None:
        return game

    g = game.model_copy(deep=True)
    p = g.find_player(uid)
    g.grid[idx].colored_by = territory_owner(g, p)
    p.coloring_credits -= 1
    return g


def skip_claim(game: Game, *, uid: str) -> Game:
    return claim_territory(game, uid=uid, square_id=None)


# ----------------------------
# End / reset
# ----------------------------
def end_game(game: Game, *, uid: Optional[str], now: int) -> Game:
    """
    playing -> finished. Admin (or the individual participant) at any time;
    anyone once the deadline has passed. Already finished is a no-op.
    """
    if game.status == "finished":
        return game
    require_status(game.status, "playing", op="end")
    if not can_run_session(game, uid) and not deadline_passed(game, now):
        raise NotAdmin("Only the session admin can end the game before time is up")
    return game.model_copy(update={"status": "finished"})


def reset_game(game: Game, *, uid: str) -> Game:
    """finished -> lobby ("play again"): keep team identity, drop everything else."""
    require_status(game.status, "finished", op="reset")
    if not is_admin(game, uid):
        raise NotAdmin("Only the session admin can reset the game")

    g = game.model_copy(deep=True)
    g.status = "lobby"
    g.game_started_at = None
    g.teams = [
        Team(name=t.name, capacity=t.capacity, color=t.color, icon=t.icon, score=0, players=[])
        for t in game.teams
    ]
    g.grid = new_grid(len(game.grid))
    return g
