# triviatitans/store/models.py
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from triviatitans.domain.common.fsm import can_transition_to
from triviatitans.domain.common.types import GameStatus, Language, PlayerFieldType, SessionType

PIN_RE = re.compile(r"^[A-Z0-9]{4,32}$")


def normalize_pin(pin: str) -> str:
    return (pin or "").strip().upper()


class DocModel(BaseModel):
    """
    Persisted shape: camelCase keys on the wire, snake_case attributes in Python.
    Unknown keys are rejected.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class Question(DocModel):
    question: str = Field(min_length=1)
    options: List[str] = Field(default_factory=list)
    answer: str = Field(min_length=1)
    difficulty: Optional[str] = None
    topic: Optional[str] = None
    # Arabic variants, shown to players whose language is "ar"
    question_ar: Optional[str] = None
    options_ar: Optional[List[str]] = None
    answer_ar: Optional[str] = None

    def localized(self, language: Optional[str]) -> tuple[str, List[str]]:
        """(text, options) in `language`, falling back to the default variant."""
        if language == "ar" and self.question_ar:
            return self.question_ar, list(self.options_ar or self.options)
        return self.question, list(self.options)


class CustomPlayerField(DocModel):
    """Extra sign-up field a session asks every participant for."""
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: PlayerFieldType = "text"


class Player(DocModel):
    id: str = Field(min_length=1)          # external identity
    player_id: str = ""                    # user-provided id (e.g. id-card number)
    name: str
    team_name: str
    answered_questions: List[str] = Field(default_factory=list)
    coloring_credits: int = Field(default=0, ge=0)
    score: int = 0
    custom_data: Dict[str, str] = Field(default_factory=dict)
    language: Optional[Language] = None

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("answeredQuestions") is None and "answered_questions" not in data:
                data["answeredQuestions"] = []
            if data.get("customData") is None and "custom_data" not in data:
                data["customData"] = {}
        return data


class Team(DocModel):
    name: str = Field(min_length=1)
    score: int = 0
    players: List[Player] = Field(default_factory=list)
    capacity: int = Field(default=10, ge=1)
    color: str = ""
    icon: str = ""


class GridSquare(DocModel):
    id: int = Field(ge=0)
    colored_by: Optional[str] = None


class Game(DocModel):
    id: str
    title: str = "Trivia Titans"
    description: str = ""
    status: GameStatus = "lobby"
    teams: List[Team] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)
    grid: List[GridSquare] = Field(default_factory=list)
    created_at: int = 0                      # epoch ms
    game_started_at: Optional[int] = None    # epoch ms; countdown anchor
    timer: int = Field(default=300, ge=1)    # seconds
    topic: str = "General Knowledge"
    difficulty: Optional[str] = None
    session_type: SessionType = "team"
    parent_session_id: Optional[str] = None
    admin_id: str = ""
    required_player_fields: List[CustomPlayerField] = Field(default_factory=list)
    language: Language = "en"                # session default for players without one
    theme: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _pin(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = normalize_pin(v)
            if not PIN_RE.match(v):
                raise ValueError(f"Invalid game PIN: {v!r}")
        return v

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            # documents written before sessions had sign-up fields
            if data.get("requiredPlayerFields") is None and "required_player_fields" not in data:
                data["requiredPlayerFields"] = []
            if data.get("language") is None:
                data["language"] = "en"
        return data

    @model_validator(mode="after")
    def _invariants(self) -> "Game":
        names = [t.name for t in self.teams]
        if len(names) != len(set(names)):
            raise ValueError("Team names must be unique")

        seen: set[str] = set()
        for t in self.teams:
            if len(t.players) > t.capacity:
                raise ValueError(f"Team {t.name} exceeds capacity {t.capacity}")
            for p in t.players:
                if p.team_name != t.name:
                    raise ValueError(f"Player {p.id} teamName {p.team_name!r} does not match team {t.name!r}")
                if p.id in seen:
                    raise ValueError(f"Player {p.id} appears in more than one team")
                seen.add(p.id)
                if len(p.answered_questions) > len(self.questions):
                    raise ValueError(f"Player {p.id} answered more questions than exist")

        if [s.id for s in self.grid] != list(range(len(self.grid))):
            raise ValueError("Grid ids must be 0..N-1 in order")
        return self

    # ----------------------------
    # Convenience readers
    # ----------------------------
    @property
    def is_individual(self) -> bool:
        return self.session_type == "individual" or self.parent_session_id is not None

    def all_players(self) -> List[Player]:
        return [p for t in self.teams for p in t.players]

    def find_player(self, uid: str) -> Optional[Player]:
        for p in self.all_players():
            if p.id == uid:
                return p
        return None

    def find_team(self, name: str) -> Optional[Team]:
        for t in self.teams:
            if t.name == name:
                return t
        return None

    def language_for(self, player: Optional[Player]) -> str:
        if player is not None and player.language:
            return player.language
        return self.language

    def to_doc(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def new_grid(size: int) -> List[GridSquare]:
    return [GridSquare(id=i, colored_by=None) for i in range(size)]


def validate_successor(prev: Game, new: Game) -> None:
    """
    Transition checks that a single document cannot express:
    - the PIN never changes
    - status only moves along the state machine
    - a colored square is never overwritten (only a reset back to lobby clears the grid)
    """
    if new.id != prev.id:
        raise ValueError("Game id is immutable")
    if new.status != prev.status and not can_transition_to(prev.status, new.status):
        raise ValueError(f"Illegal status transition {prev.status} -> {new.status}")
    if new.status == "lobby" and prev.status == "finished":
        return
    if len(new.grid) != len(prev.grid):
        raise ValueError("Grid size is fixed outside of reset")
    for before, after in zip(prev.grid, new.grid):
        if before.colored_by is not None and after.colored_by != before.colored_by:
            raise ValueError(f"Square {before.id} is already claimed by {before.colored_by}")
