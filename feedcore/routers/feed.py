"""
Feed endpoints:
  GET  /feed/core      — personalized ranked feed (cursor paginated, cached)
  GET  /feed/for-you   — fan-out mailbox post ids (cursor paginated)
  GET  /feed/trending  — global trending post ids (cursor paginated)
  POST /feed/views     — record views, returns the ones that were new
  GET  /feed/activity  — current platform activity level and cache TTL
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from feedcore.schemas import ActivityResponse, FeedIdsPage, PostPage, ViewRequest, ViewResponse
from feedcore.services import Services
from feedcore.services.activity import ttl_for_level, ttl_to_human
from feedcore.services.feed_read import clamp_limit

logger = logging.getLogger(__name__)
router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


@router.get("/core", response_model=PostPage)
async def get_core_feed(
    user_id: str = Query(..., description="ID of the requesting user"),
    limit: Optional[int] = Query(None, ge=1),
    cursor: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return await services.feed_read.get_personalized_feed(user_id, limit, cursor)


@router.get("/for-you", response_model=FeedIdsPage)
async def get_for_you_feed(
    user_id: str = Query(..., description="ID of the requesting user"),
    limit: Optional[int] = Query(None, ge=1),
    cursor: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return await services.feed_core.get_for_you_feed(user_id, clamp_limit(limit), cursor)


@router.get("/trending", response_model=FeedIdsPage)
async def get_trending_feed(
    limit: Optional[int] = Query(None, ge=1),
    cursor: Optional[str] = None,
    services: Services = Depends(get_services),
):
    return await services.feed_core.get_trending_feed(clamp_limit(limit), cursor)


@router.post("/views", response_model=ViewResponse)
async def record_views(body: ViewRequest, services: Services = Depends(get_services)):
    """
    Record that a user saw specific posts.
    Typically called by the client after rendering the feed.
    """
    new_views = await services.post_views.register_views(body.user_id, body.post_ids)
    return ViewResponse(user_id=body.user_id, new_views=new_views)


@router.get("/activity", response_model=ActivityResponse)
async def get_activity(services: Services = Depends(get_services)):
    level = await services.activity.get_platform_activity_level()
    ttl = ttl_for_level(level)
    return ActivityResponse(level=level.value, cache_ttl_seconds=ttl, cache_ttl_human=ttl_to_human(ttl))
