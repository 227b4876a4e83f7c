"""
Error taxonomy for Game operations.

Hierarchy:
- GameError (base; carries a stable wire `code`)
  - precondition violations (never retryable, nothing was written)
  - TransactionAborted (store conflict retries exhausted; retryable by the caller)
  - GenerationFailed (question provider failed; retryable)

Benign races (claiming an already-colored square, ending an already-finished
game) are NOT errors; operations return the unchanged document instead.
"""


class GameError(Exception):
    """Base exception for all Game operation errors."""
    code: str = "GAME_ERROR"
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class GameNotFound(GameError):
    code = "GAME_NOT_FOUND"


class NotJoinable(GameError):
    code = "NOT_JOINABLE"


class AlreadyJoined(GameError):
    code = "ALREADY_JOINED"


class TeamNotFound(GameError):
    code = "TEAM_NOT_FOUND"


class TeamFull(GameError):
    code = "TEAM_FULL"


class PlayerNotFound(GameError):
    code = "PLAYER_NOT_FOUND"


class NoCreditsRemaining(GameError):
    code = "NO_CREDITS_REMAINING"


class SquareNotFound(GameError):
    code = "SQUARE_NOT_FOUND"


class StatusConflict(GameError):
    code = "STATUS_CONFLICT"


class NotAdmin(GameError):
    code = "NOT_ADMIN"


class NoPlayers(GameError):
    code = "NO_PLAYERS"


class InvalidDocument(GameError):
    # the stored or computed document violates the schema; nothing is written
    code = "INVALID_DOCUMENT"


class GenerationFailed(GameError):
    code = "GENERATION_FAILED"
    retryable = True


class TransactionAborted(GameError):
    code = "TRANSACTION_ABORTED"
    retryable = True


class MissingPlayerFields(GameError):
    code = "MISSING_PLAYER_FIELDS"
