import json

import pytest

from triviatitans.domain.common.errors import GameNotFound, InvalidDocument, TeamNotFound, TransactionAborted
from triviatitans.domain.game import rules
from triviatitans.store.redis_keys import GK, admin_games
from triviatitans.store.redis_repo import RedisRepo

from fakes import FakeRedis, make_game, wait_until


@pytest.fixture
def r():
    return FakeRedis()


@pytest.fixture
def repo(r):
    return RedisRepo(r, max_retries=3)


@pytest.mark.asyncio
async def test_create_and_get(repo, r):
    g = make_game()
    assert await repo.create(g) is True
    assert await repo.get("abcd12") == g
    assert r.data[GK("ABCD12").rev()] == b"1"
    assert b"ABCD12" in r.sets[admin_games("admin")]


@pytest.mark.asyncio
async def test_create_refuses_taken_pin(repo):
    assert await repo.create(make_game())
    assert await repo.create(make_game()) is False


@pytest.mark.asyncio
async def test_create_with_ttl_and_without_index(repo, r):
    await repo.create(make_game(), ttl_sec=60, index=False)
    assert r.ttl[GK("ABCD12").game()] == 60
    assert admin_games("admin") not in r.sets


@pytest.mark.asyncio
async def test_get_missing(repo):
    with pytest.raises(GameNotFound):
        await repo.get("NOPE")


@pytest.mark.asyncio
async def test_get_rejects_bad_document(repo, r):
    r.data[GK("ABCD12").game()] = json.dumps({"id": "ABCD12", "whatever": 1}).encode()
    with pytest.raises(InvalidDocument):
        await repo.get("ABCD12")


@pytest.mark.asyncio
async def test_transact_commits_and_bumps_revision(repo, r):
    await repo.create(make_game())
    g = await repo.transact(
        "ABCD12",
        lambda cur: rules.join_team(cur, uid="x", name="X", player_id="", team_name="Team Alpha"),
        op="join_team",
    )
    assert g.find_player("x") is not None
    snap = await repo.get_snapshot("ABCD12")
    assert snap.rev == 2
    assert snap.game == g

    channel, payload = r.published[-1]
    assert channel == GK("ABCD12").updates()
    assert json.loads(payload)["rev"] == 2


@pytest.mark.asyncio
async def test_transact_keeps_expiry(repo, r):
    await repo.create(make_game(), ttl_sec=60)
    await repo.transact("ABCD12", lambda g: g.model_copy(update={"topic": "Space"}))
    assert r.ttl[GK("ABCD12").game()] == 60


@pytest.mark.asyncio
async def test_noop_transaction_writes_nothing(repo, r):
    await repo.create(make_game(status="finished"))
    published = len(r.published)
    g = await repo.transact("ABCD12", lambda cur: rules.end_game(cur, uid="admin", now=0))
    assert g.status == "finished"
    assert (await repo.get_snapshot("ABCD12")).rev == 1
    assert len(r.published) == published


@pytest.mark.asyncio
async def test_precondition_failure_writes_nothing(repo):
    await repo.create(make_game())
    with pytest.raises(TeamNotFound):
        await repo.transact(
            "ABCD12",
            lambda cur: rules.join_team(cur, uid="x", name="X", player_id="", team_name="Nope"),
        )
    assert (await repo.get_snapshot("ABCD12")).rev == 1


@pytest.mark.asyncio
async def test_transact_retries_after_conflict(repo, r):
    await repo.create(make_game())

    async def concurrent_join():
        await repo.transact(
            "ABCD12",
            lambda cur: rules.join_team(cur, uid="other", name="O", player_id="", team_name="Team Bravo"),
        )

    r.before_execute = concurrent_join
    calls = []

    def join(cur):
        calls.append(cur)
        return rules.join_team(cur, uid="x", name="X", player_id="", team_name="Team Alpha")

    g = await repo.transact("ABCD12", join)
    assert len(calls) == 2
    assert r.conflicts == 1
    # the retry ran against the fresher read
    assert g.find_player("other") is not None and g.find_player("x") is not None
    assert (await repo.get_snapshot("ABCD12")).rev == 3


@pytest.mark.asyncio
async def test_transact_gives_up_after_max_retries(repo, r):
    await repo.create(make_game())

    def bump(cur):
        # every execute finds the document changed underneath it
        r._touch(GK("ABCD12").rev())
        return cur.model_copy(update={"topic": cur.topic + "!"})

    with pytest.raises(TransactionAborted):
        await repo.transact("ABCD12", bump)
    assert r.conflicts == 3


@pytest.mark.asyncio
async def test_transact_rejects_square_overwrite(repo):
    g = make_game(status="playing")
    g.grid[0].colored_by = "Team Alpha"
    await repo.create(g)

    def steal(cur):
        out = cur.model_copy(deep=True)
        out.grid[0].colored_by = "Team Bravo"
        return out

    with pytest.raises(InvalidDocument):
        await repo.transact("ABCD12", steal)


@pytest.mark.asyncio
async def test_update_fields_only_metadata(repo):
    await repo.create(make_game())
    g = await repo.update_fields("ABCD12", title="Friday Quiz")
    assert g.title == "Friday Quiz"
    with pytest.raises(InvalidDocument):
        await repo.update_fields("ABCD12", status="finished")


@pytest.mark.asyncio
async def test_list_admin_games_drops_stale_entries(repo, r):
    await repo.create(make_game("AAAA11"))
    await repo.create(make_game("BBBB22"))
    del r.data[GK("AAAA11").game()]
    games = await repo.list_admin_games("admin")
    assert [g.id for g in games] == ["BBBB22"]
    assert r.sets[admin_games("admin")] == {b"BBBB22"}


@pytest.mark.asyncio
async def test_subscription_delivers_initial_and_committed_snapshots(repo):
    await repo.create(make_game())
    seen = []

    async def on_snapshot(snap):
        seen.append(snap)

    sub = await repo.subscribe("abcd12", on_snapshot)
    await wait_until(lambda: len(seen) == 1)
    assert seen[0].rev == 1

    await repo.transact("ABCD12", lambda g: g.model_copy(update={"topic": "Space"}))
    await wait_until(lambda: len(seen) == 2)
    assert seen[1].rev == 2
    assert seen[1].game.topic == "Space"

    await sub.close()
    assert sub.closed


@pytest.mark.asyncio
async def test_subscription_skips_replayed_revisions(repo, r):
    await repo.create(make_game())
    seen = []

    async def on_snapshot(snap):
        seen.append(snap.rev)

    # replay the create notification once the initial read has covered it
    async with await repo.subscribe("ABCD12", on_snapshot):
        await wait_until(lambda: seen == [1])
        await r.publish(GK("ABCD12").updates(), r.published[0][1])
        await repo.transact("ABCD12", lambda g: g.model_copy(update={"topic": "Space"}))
        await wait_until(lambda: seen[-1] == 2)
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_subscription_reports_missing_then_deletion(repo):
    seen = []

    async def on_snapshot(snap):
        seen.append(snap)

    sub = await repo.subscribe("ABCD12", on_snapshot)
    await wait_until(lambda: len(seen) == 1)
    assert seen[0].game is None

    await repo.create(make_game())
    await wait_until(lambda: len(seen) == 2)
    assert seen[1].game is not None

    assert await repo.delete("ABCD12") is True
    await wait_until(lambda: len(seen) == 3)
    assert seen[2].game is None
    await sub.close()


@pytest.mark.asyncio
async def test_delete_missing_game(repo):
    assert await repo.delete("ABCD12") is False


@pytest.mark.asyncio
async def test_transact_snapshot_reports_revision(repo):
    await repo.create(make_game())
    snap = await repo.transact_snapshot("ABCD12", lambda g: g.model_copy(update={"topic": "Space"}))
    assert (snap.rev, snap.game.topic) == (2, "Space")
    unchanged = await repo.transact_snapshot("ABCD12", lambda g: g)
    assert unchanged.rev == 2


@pytest.mark.asyncio
async def test_subscription_survives_commit_during_initial_read(repo, r):
    await repo.create(make_game())
    read_snapshot = r.mget
    raced = []

    async def mget_then_commit(*keys):
        values = await read_snapshot(*keys)
        if not raced:
            raced.append(True)
            await repo.transact(
                "ABCD12",
                lambda g: rules.join_team(g, uid="x", name="X", player_id="", team_name="Team Alpha"),
            )
        return values

    r.mget = mget_then_commit
    seen = []

    async def on_snapshot(snap):
        seen.append(snap)

    async with await repo.subscribe("ABCD12", on_snapshot):
        await wait_until(lambda: seen and seen[-1].game.find_player("x") is not None)
    # every delivered revision carries the document it was committed with
    assert [(s.rev, s.game.find_player("x") is not None) for s in seen] == [(1, False), (2, True)]


@pytest.mark.asyncio
async def test_transaction_keeps_sign_up_and_language_fields(repo, r):
    doc = make_game().to_doc()
    doc.update(
        language="ar",
        theme="team-alpha",
        requiredPlayerFields=[{"id": "school", "label": "School", "type": "text"}],
    )
    doc["questions"][0].update(questionAr="?", optionsAr=["a", "b"], answerAr="a")
    doc["teams"][1]["players"] = [
        {
            "id": "p1",
            "playerId": "",
            "name": "P",
            "teamName": "Team Bravo",
            "answeredQuestions": [],
            "coloringCredits": 0,
            "score": 0,
            "customData": {"school": "Hillside"},
            "language": "en",
        }
    ]
    r.data[GK("ABCD12").game()] = json.dumps(doc).encode()
    r.data[GK("ABCD12").rev()] = b"1"

    await repo.transact(
        "ABCD12",
        lambda g: rules.join_team(
            g, uid="x", name="X", player_id="", team_name="Team Alpha", custom_data={"school": "Lakeside"}
        ),
    )

    stored = json.loads(r.data[GK("ABCD12").game()])
    assert stored["language"] == "ar"
    assert stored["theme"] == "team-alpha"
    assert stored["requiredPlayerFields"] == [{"id": "school", "label": "School", "type": "text"}]
    assert stored["questions"][0]["answerAr"] == "a"
    assert stored["teams"][1]["players"][0]["customData"] == {"school": "Hillside"}
    assert stored["teams"][0]["players"][0]["customData"] == {"school": "Lakeside"}
