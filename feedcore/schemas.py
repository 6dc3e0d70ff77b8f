"""
Pydantic request / response schemas.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ──────────────────────────── Cursor pages ────────────────────────────────

class FeedIdsPage(BaseModel):
    """A page of post ids read from a sorted-set feed."""
    ids: list[str] = []
    has_more: bool = False
    next_cursor: Optional[str] = None


class FeedPost(BaseModel):
    post_id: str
    user_id: str
    content: Optional[str] = None
    tags: list[str] = []
    like_count: int = 0
    rank_score: float
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PostPage(BaseModel):
    """A page of hydrated posts from the ranked-query backend."""
    data: list[FeedPost] = []
    has_more: bool = False
    next_cursor: Optional[str] = None


# ──────────────────────────── Preferences ─────────────────────────────────

class TagPreference(BaseModel):
    tag: str
    weight: float


# ──────────────────────────── Views ───────────────────────────────────────

class ViewRequest(BaseModel):
    user_id: str
    post_ids: list[str] = Field(..., min_length=1, max_length=100)


class ViewResponse(BaseModel):
    user_id: str
    new_views: list[str]


# ──────────────────────────── Activity ────────────────────────────────────

class ActivityResponse(BaseModel):
    level: str
    cache_ttl_seconds: int
    cache_ttl_human: str
