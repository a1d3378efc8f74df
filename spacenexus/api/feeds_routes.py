"""
Content Feed Routes
Upstream space data (news, launches, space weather) with offline fallback.
The `X-Cache` header reports MISS (fresh from upstream), HIT or STALE.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacenexus.core.database import get_db
from spacenexus.core.errors import not_found_error, success_response
from spacenexus.services.content_feeds import FEEDS, get_feed

router = APIRouter(prefix="/api/feeds", tags=["feeds"])


@router.get("")
async def list_feeds():
    return success_response({"feeds": sorted(FEEDS)})


@router.get("/{feed}")
def read_feed(feed: str, db: Session = Depends(get_db)):
    if feed not in FEEDS:
        raise not_found_error("Feed")

    result = get_feed(db, feed)
    response = success_response({
        "feed": feed,
        "items": result.value,
        "stale": result.is_stale,
    })
    response.headers["X-Cache"] = result.cache_header
    return response
