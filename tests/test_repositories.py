import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from feedcore.cursor import decode_cursor, encode_cursor
from feedcore.errors import DatabaseError, ValidationError
from feedcore.models import Follow, Post, PostTag, User, UserPreference
from feedcore.repositories import (
    FollowRepository,
    PostReadRepository,
    UserPreferenceRepository,
    UserRepository,
)

POSTS = [
    # post_id, author, rank_score, tags
    ("p1", "bob", 9.0, ["python"]),
    ("p2", "carol", 7.0, []),
    ("p3", "dave", 7.0, ["python", "go"]),
    ("p4", "bob", 7.0, []),
    ("p5", "dave", 5.0, ["go"]),
    ("p6", "carol", 3.0, ["rust"]),
]


@pytest_asyncio.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all([User(user_id=u, username=u) for u in ("alice", "bob", "carol", "dave")])
        session.add_all(
            [
                Follow(follower_id="alice", followee_id="bob"),
                Follow(follower_id="alice", followee_id="carol"),
                Follow(follower_id="dave", followee_id="bob"),
            ]
        )
        session.add_all(
            [
                UserPreference(user_id="alice", tag="python", weight=3.0),
                UserPreference(user_id="alice", tag="redis", weight=5.0),
                UserPreference(user_id="alice", tag="rust", weight=3.0),
                UserPreference(user_id="alice", tag="go", weight=0.0),
            ]
        )
        for post_id, author, score, tags in POSTS:
            session.add(
                Post(
                    post_id=post_id,
                    user_id=author,
                    content=f"content of {post_id}",
                    rank_score=score,
                    tag_rows=[PostTag(tag=t) for t in tags],
                )
            )
        await session.commit()
    return session_factory


def _ids(page):
    return [p.post_id for p in page.data]


@pytest.mark.asyncio
async def test_user_lookup(seeded):
    users = UserRepository(seeded)
    assert (await users.find_by_public_id("alice")).username == "alice"
    assert await users.find_by_public_id("zed") is None


@pytest.mark.asyncio
async def test_top_tags_are_weight_ordered_and_positive(seeded):
    prefs = UserPreferenceRepository(seeded)

    tags = await prefs.get_top_user_tags("alice")
    assert [(t.tag, t.weight) for t in tags] == [("redis", 5.0), ("python", 3.0), ("rust", 3.0)]

    assert [t.tag for t in await prefs.get_top_user_tags("alice", limit=2)] == ["redis", "python"]
    assert await prefs.get_top_user_tags("bob") == []


@pytest.mark.asyncio
async def test_follow_graph_both_directions(seeded):
    follows = FollowRepository(seeded)

    assert sorted(await follows.get_following_ids("alice")) == ["bob", "carol"]
    assert await follows.get_following_ids("carol") == []
    assert sorted(await follows.get_follower_ids("bob")) == ["alice", "dave"]
    assert len(await follows.get_follower_ids("bob", limit=1)) == 1


@pytest.mark.asyncio
async def test_ranked_feed_pages_through_ties(seeded):
    posts = PostReadRepository(seeded)

    first = await posts.get_ranked_feed_with_cursor([], 2)
    assert _ids(first) == ["p1", "p4"]
    assert first.has_more is True
    assert decode_cursor(first.next_cursor) == {"rankScore": 7.0, "_id": "p4"}

    second = await posts.get_ranked_feed_with_cursor([], 2, first.next_cursor)
    assert _ids(second) == ["p3", "p2"]

    third = await posts.get_ranked_feed_with_cursor([], 2, second.next_cursor)
    assert _ids(third) == ["p5", "p6"]
    assert third.has_more is False
    assert third.next_cursor is None


@pytest.mark.asyncio
async def test_ranked_feed_narrowed_by_tags(seeded):
    page = await PostReadRepository(seeded).get_ranked_feed_with_cursor(["python"], 10)

    assert _ids(page) == ["p1", "p3"]
    assert sorted(page.data[1].tags) == ["go", "python"]
    assert page.data[0].content == "content of p1"


@pytest.mark.asyncio
async def test_core_feed_unions_followees_and_tags(seeded):
    posts = PostReadRepository(seeded)

    page = await posts.get_feed_for_user_core_with_cursor(["bob"], ["go"], 10)
    assert _ids(page) == ["p1", "p4", "p3", "p5"]

    only_follows = await posts.get_feed_for_user_core_with_cursor(["carol"], [], 10)
    assert _ids(only_follows) == ["p2", "p6"]

    nothing = await posts.get_feed_for_user_core_with_cursor([], [], 10)
    assert nothing.data == [] and nothing.has_more is False


@pytest.mark.asyncio
async def test_bad_cursors_are_rejected(seeded):
    posts = PostReadRepository(seeded)
    with pytest.raises(ValidationError):
        await posts.get_ranked_feed_with_cursor([], 10, "%%%")
    with pytest.raises(ValidationError):
        await posts.get_ranked_feed_with_cursor([], 10, encode_cursor({"_id": "p1"}))


class _UnavailableSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, Exception("server has gone away"))

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_driver_errors_become_database_errors():
    factory = _UnavailableSession
    with pytest.raises(DatabaseError):
        await UserRepository(factory).find_by_public_id("alice")
    with pytest.raises(DatabaseError):
        await FollowRepository(factory).get_following_ids("alice")
    with pytest.raises(DatabaseError):
        await PostReadRepository(factory).get_ranked_feed_with_cursor([], 10)
