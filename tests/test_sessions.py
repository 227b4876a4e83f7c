import pytest

from triviatitans.domain.common.errors import GameNotFound, MissingPlayerFields, NotAdmin, StatusConflict
from triviatitans.domain.individual.spawn import child_pin, spawn_individual_session
from triviatitans.domain.lifecycle.sessions import create_game, delete_game, duplicate_game
from triviatitans.settings import Settings
from triviatitans.store.models import CustomPlayerField
from triviatitans.store.redis_keys import GK
from triviatitans.store.redis_repo import RedisRepo

from fakes import FakeGenerator, FakeRedis, make_game, sample_questions


@pytest.fixture
def r():
    return FakeRedis()


@pytest.fixture
def repo(r):
    return RedisRepo(r)


@pytest.fixture
def settings():
    return Settings(GRID_SIZE=12, INDIVIDUAL_SESSION_TTL_SEC=600, QUESTION_POOL_SIZE=5)


@pytest.mark.asyncio
async def test_create_game_defaults(repo, settings):
    game = await create_game(repo, settings, admin_id="host", title="Quiz Night", now=42)
    assert len(game.id) == 6 and game.id.isalnum() and game.id == game.id.upper()
    assert game.status == "lobby"
    assert [t.name for t in game.teams] == ["Team Alpha", "Team Bravo"]
    assert all(t.capacity == 10 and t.players == [] for t in game.teams)
    assert len(game.grid) == 12 and all(s.colored_by is None for s in game.grid)
    assert game.created_at == 42
    assert game.timer == 300
    assert await repo.get(game.id) == game
    assert [g.id for g in await repo.list_admin_games("host")] == [game.id]


@pytest.mark.asyncio
async def test_duplicate_copies_settings_into_fresh_lobby(repo):
    src = make_game(status="finished", players={"Team Alpha": ["a"]})
    src.grid[0].colored_by = "Team Alpha"
    src.teams[0].score = 5
    await repo.create(src)

    copy = await duplicate_game(repo, "ABCD12", uid="admin", now=99)
    assert copy.id != src.id
    assert copy.status == "lobby"
    assert copy.questions == src.questions
    assert all(t.players == [] and t.score == 0 for t in copy.teams)
    assert all(s.colored_by is None for s in copy.grid)
    assert copy.created_at == 99


@pytest.mark.asyncio
async def test_duplicate_and_delete_admin_only(repo):
    await repo.create(make_game())
    with pytest.raises(NotAdmin):
        await duplicate_game(repo, "ABCD12", uid="intruder")
    with pytest.raises(NotAdmin):
        await delete_game(repo, "ABCD12", uid="intruder")


@pytest.mark.asyncio
async def test_delete_game(repo):
    await repo.create(make_game())
    await delete_game(repo, "abcd12", uid="admin")
    with pytest.raises(GameNotFound):
        await repo.get("ABCD12")
    assert await repo.list_admin_games("admin") == []


def test_child_pin_shape():
    pin = child_pin("abcd12", "user-42@example")
    assert pin.startswith("ABCD12USER")
    assert len(pin) == 14
    assert pin.isalnum() and pin == pin.upper()


@pytest.mark.asyncio
async def test_spawn_generates_questions_for_child(repo, r, settings):
    # Scenario F
    parent = make_game("PARENT", session_type="individual", questions=[], grid_size=8)
    await repo.create(parent)
    gen = FakeGenerator(sample_questions(5))

    child = await spawn_individual_session(repo, gen, settings, "parent", uid="u1", name="Uma", now=7)

    assert child.questions
    assert child.parent_session_id == "PARENT"
    assert child.session_type == "individual"
    assert child.status == "lobby"
    assert len(child.teams) == 1
    team = child.teams[0]
    assert team.capacity == 1
    assert [p.id for p in team.players] == ["u1"]
    assert len(child.grid) == 8
    assert gen.calls == [(parent.topic, 5)]

    stored = await repo.get(child.id)
    assert stored == child
    assert r.ttl[GK(child.id).game()] == 600
    # children stay out of the admin's session list
    assert [g.id for g in await repo.list_admin_games("admin")] == ["PARENT"]
    # the parent is never written
    assert (await repo.get_snapshot("PARENT")).rev == 1


@pytest.mark.asyncio
async def test_spawn_clones_stored_questions(repo, settings):
    await repo.create(make_game("PARENT", session_type="individual"))
    gen = FakeGenerator()
    child = await spawn_individual_session(repo, gen, settings, "PARENT", uid="u1", name="Uma")
    assert gen.calls == []
    assert len(child.questions) == 3


@pytest.mark.asyncio
async def test_repeated_spawn_leaves_independent_children(repo, settings):
    await repo.create(make_game("PARENT", session_type="individual"))
    one = await spawn_individual_session(repo, FakeGenerator(), settings, "PARENT", uid="u1", name="Uma")
    two = await spawn_individual_session(repo, FakeGenerator(), settings, "PARENT", uid="u1", name="Uma")
    assert one.id != two.id
    assert await repo.exists(one.id) and await repo.exists(two.id)


@pytest.mark.asyncio
async def test_spawn_from_team_game_rejected(repo, settings):
    await repo.create(make_game("PARENT"))
    with pytest.raises(StatusConflict):
        await spawn_individual_session(repo, FakeGenerator(), settings, "PARENT", uid="u1", name="Uma")


@pytest.mark.asyncio
async def test_spawn_checks_and_carries_sign_up_fields(repo, settings):
    parent = make_game("PARENT", session_type="individual")
    parent.required_player_fields = [CustomPlayerField(id="mail", label="Email", type="email")]
    parent.language = "ar"
    parent.theme = "desert"
    await repo.create(parent)

    with pytest.raises(MissingPlayerFields):
        await spawn_individual_session(repo, FakeGenerator(), settings, "PARENT", uid="u1", name="Uma")

    child = await spawn_individual_session(
        repo, FakeGenerator(), settings, "PARENT",
        uid="u1", name="Uma", custom_data={"mail": "uma@example.com"}, language="en",
    )
    assert child.required_player_fields == parent.required_player_fields
    assert child.language == "ar" and child.theme == "desert"
    player = child.find_player("u1")
    assert player.custom_data == {"mail": "uma@example.com"}
    assert player.language == "en"
    assert await repo.get(child.id) == child
