import pytest

from triviatitans.settings import Settings
from triviatitans.store.models import CustomPlayerField
from triviatitans.store.redis_repo import RedisRepo
from triviatitans.transport.dispatcher import dispatch_message

from fakes import FakeGenerator, FakeRedis, make_game


class FakeApp:
    def __init__(self, repo, generator=None):
        self.state = type(
            "State",
            (),
            {"repo": repo, "generator": generator or FakeGenerator(), "settings": Settings(START_COUNTDOWN_SEC=5)},
        )()


@pytest.fixture
def repo():
    return RedisRepo(FakeRedis())


@pytest.mark.asyncio
async def test_bad_message_reported():
    events = await dispatch_message(app=FakeApp(None), pin="ABCD12", uid="u1", raw={"type": "dance"})
    assert events[0]["type"] == "error"
    assert events[0]["code"] == "BAD_MESSAGE"


@pytest.mark.asyncio
async def test_identity_required(repo):
    events = await dispatch_message(app=FakeApp(repo), pin="ABCD12", uid=None, raw={"type": "start_game"})
    assert events[0]["code"] == "NO_IDENTITY"


@pytest.mark.asyncio
async def test_join_then_duplicate_join(repo):
    await repo.create(make_game())
    app = FakeApp(repo)
    raw = {"type": "join_team", "team_name": "Team Alpha", "name": "Ada"}

    events = await dispatch_message(app=app, pin="abcd12", uid="u1", raw=raw)
    assert events == [
        {"type": "ack", "op": "join_team", "status": "lobby", "rev": 2, "correct": None, "claimed": None}
    ]

    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw=raw)
    assert events[0]["type"] == "error"
    assert events[0]["code"] == "ALREADY_JOINED"
    assert events[0]["retryable"] is False


@pytest.mark.asyncio
async def test_game_flow_acks(repo):
    await repo.create(make_game(players={"Team Alpha": ["u1"]}))
    app = FakeApp(repo)

    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw={"type": "start_game"})
    assert events[0]["code"] == "NOT_ADMIN"

    events = await dispatch_message(app=app, pin="ABCD12", uid="admin", raw={"type": "start_game"})
    assert events[0]["status"] == "playing"

    events = await dispatch_message(
        app=app, pin="ABCD12", uid="u1", raw={"type": "submit_answer", "answer": "paris", "question_index": 0}
    )
    assert events[0]["correct"] is True
    assert events[0]["rev"] == 3

    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw={"type": "claim_territory", "square_id": 1})
    assert events[0]["claimed"] is True
    assert events[0]["rev"] == 4

    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw={"type": "claim_territory", "square_id": 2})
    assert events[0]["code"] == "NO_CREDITS_REMAINING"

    events = await dispatch_message(app=app, pin="ABCD12", uid="admin", raw={"type": "end_game"})
    assert events[0]["status"] == "finished"

    events = await dispatch_message(app=app, pin="ABCD12", uid="admin", raw={"type": "reset_game"})
    assert events[0]["status"] == "lobby"


@pytest.mark.asyncio
async def test_schedule_start_uses_default_countdown(repo):
    await repo.create(make_game(players={"Team Alpha": ["u1"]}))
    events = await dispatch_message(app=FakeApp(repo), pin="ABCD12", uid="admin", raw={"type": "schedule_start"})
    assert events[0]["status"] == "starting"
    game = await repo.get("ABCD12")
    assert game.game_started_at is not None


@pytest.mark.asyncio
async def test_missing_game(repo):
    events = await dispatch_message(app=FakeApp(repo), pin="ZZZZ99", uid="u1", raw={"type": "skip_claim"})
    assert events[0]["code"] == "GAME_NOT_FOUND"


@pytest.mark.asyncio
async def test_join_requires_sign_up_fields(repo):
    game = make_game()
    game.required_player_fields = [CustomPlayerField(id="phone", label="Phone", type="tel")]
    await repo.create(game)
    app = FakeApp(repo)
    raw = {"type": "join_team", "team_name": "Team Alpha", "name": "Ada"}

    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw=raw)
    assert events[0]["code"] == "MISSING_PLAYER_FIELDS"
    assert "Phone" in events[0]["message"]

    raw["custom_data"] = {"phone": "555-0100"}
    events = await dispatch_message(app=app, pin="ABCD12", uid="u1", raw=raw)
    assert events[0]["type"] == "ack"
    assert (await repo.get("ABCD12")).find_player("u1").custom_data == {"phone": "555-0100"}


@pytest.mark.asyncio
async def test_noop_ack_reports_current_revision(repo):
    await repo.create(make_game(status="finished"))
    events = await dispatch_message(app=FakeApp(repo), pin="ABCD12", uid="admin", raw={"type": "end_game"})
    assert events[0]["status"] == "finished"
    assert events[0]["rev"] == 1
