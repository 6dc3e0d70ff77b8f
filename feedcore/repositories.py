"""
Document / graph store access over the async SQLAlchemy session factory.

Each call opens its own short session. SQLAlchemy failures are re-raised as
DatabaseError so callers can apply their degrade policy without knowing the
driver's exception hierarchy.

Ranked feeds use keyset pagination on (rank_score DESC, post_id DESC), the
same cursor contract as the Redis feed store: the next page is everything
strictly after the cursor's (rankScore, _id).
"""
import logging
from typing import Optional

from sqlalchemy import Select, and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedcore.config import settings
from feedcore.cursor import cursor_position, decode_cursor, encode_cursor
from feedcore.errors import DatabaseError, ValidationError
from feedcore.models import Follow, Post, PostTag, User, UserPreference
from feedcore.schemas import FeedPost, PostPage, TagPreference

logger = logging.getLogger(__name__)


class _Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory


class UserRepository(_Repository):
    async def find_by_public_id(self, user_id: str) -> Optional[User]:
        try:
            async with self._session_factory() as session:
                return await session.get(User, user_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"User lookup failed for {user_id}") from exc


class UserPreferenceRepository(_Repository):
    async def get_top_user_tags(self, user_id: str, limit: Optional[int] = None) -> list[TagPreference]:
        """Highest-weighted tags for a user, heaviest first."""
        stmt = (
            select(UserPreference.tag, UserPreference.weight)
            .where(UserPreference.user_id == user_id, UserPreference.weight > 0)
            .order_by(UserPreference.weight.desc(), UserPreference.tag)
            .limit(limit or settings.top_tags_limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Tag preference lookup failed for {user_id}") from exc
        return [TagPreference(tag=tag, weight=weight) for tag, weight in rows]


class FollowRepository(_Repository):
    async def get_following_ids(self, user_id: str) -> list[str]:
        stmt = select(Follow.followee_id).where(Follow.follower_id == user_id)
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Following lookup failed for {user_id}") from exc

    async def get_follower_ids(self, user_id: str, limit: Optional[int] = None) -> list[str]:
        stmt = select(Follow.follower_id).where(Follow.followee_id == user_id)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Follower lookup failed for {user_id}") from exc


def _apply_cursor(stmt: Select, cursor: Optional[str]) -> Select:
    payload = decode_cursor(cursor)
    if payload is None:
        return stmt
    score, member = cursor_position(payload)
    if score == float("inf"):
        raise ValidationError("Cursor has no rank score")
    if not member:
        return stmt.where(Post.rank_score <= score)
    return stmt.where(
        or_(
            Post.rank_score < score,
            and_(Post.rank_score == score, Post.post_id < member),
        )
    )


def _tagged_post_ids(tags: list[str]) -> Select:
    return select(PostTag.post_id).where(PostTag.tag.in_(tags))


class PostReadRepository(_Repository):
    async def get_ranked_feed_with_cursor(
        self, tags: list[str], limit: int, cursor: Optional[str] = None
    ) -> PostPage:
        """Global ranking; narrowed to `tags` when any are given."""
        stmt = select(Post)
        if tags:
            stmt = stmt.where(Post.post_id.in_(_tagged_post_ids(tags)))
        return await self._page(stmt, limit, cursor)

    async def get_feed_for_user_core_with_cursor(
        self,
        followee_ids: list[str],
        tags: list[str],
        limit: int,
        cursor: Optional[str] = None,
    ) -> PostPage:
        """Posts by followed authors or carrying a preferred tag."""
        sources = []
        if followee_ids:
            sources.append(Post.user_id.in_(followee_ids))
        if tags:
            sources.append(Post.post_id.in_(_tagged_post_ids(tags)))
        if not sources:
            return PostPage()
        return await self._page(select(Post).where(or_(*sources)), limit, cursor)

    async def _page(self, stmt: Select, limit: int, cursor: Optional[str]) -> PostPage:
        stmt = (
            _apply_cursor(stmt, cursor)
            .order_by(Post.rank_score.desc(), Post.post_id.desc())
            .limit(limit + 1)
        )
        try:
            async with self._session_factory() as session:
                posts = list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise DatabaseError("Ranked feed query failed") from exc

        has_more = len(posts) > limit
        posts = posts[:limit]
        next_cursor = None
        if has_more:
            last = posts[-1]
            next_cursor = encode_cursor({"rankScore": last.rank_score, "_id": last.post_id})
        return PostPage(
            data=[FeedPost.model_validate(p) for p in posts],
            has_more=has_more,
            next_cursor=next_cursor,
        )
