"""
Content Feeds
=============
Upstream space-data feeds exposed under /api/feeds/{feed}.

Every feed is fetched through `resilient_fetch`: network-first against the
upstream, guarded by a per-source circuit breaker, falling back to the last
cached copy. Feeds tied to a content module mark that module refreshed in
the freshness tracker whenever fresh data arrives.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from spacenexus.core.config import NASA_API_KEY
from spacenexus.services.cache_strategies import CachedResult, resilient_fetch, ttl_for_path
from spacenexus.services.freshness_tracker import FreshnessTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedSource:
    source: str          # circuit breaker name
    url: str
    route: str           # TTL lookup path
    params: Dict[str, Any] = field(default_factory=dict)
    module: Optional[str] = None


FEEDS: Dict[str, FeedSource] = {
    'news': FeedSource(
        'spaceflight-news', 'https://api.spaceflightnewsapi.net/v4/articles/',
        '/api/news', {'limit': 50},
    ),
    'launches': FeedSource(
        'launch-library', 'https://ll.thespacedevs.com/2.2.0/launch/upcoming/',
        '/api/events', {'limit': 100, 'mode': 'detailed'}, module='launch-vehicles',
    ),
    'events': FeedSource(
        'launch-library', 'https://ll.thespacedevs.com/2.2.0/event/upcoming/',
        '/api/events', {'limit': 50}, module='space-stations',
    ),
    'space-weather': FeedSource(
        'noaa-swpc', 'https://services.swpc.noaa.gov/products/alerts.json',
        '/api/space-weather',
    ),
    'kp-index': FeedSource(
        'noaa-swpc', 'https://services.swpc.noaa.gov/json/planetary_k_index_1m.json',
        '/api/space-weather',
    ),
    'asteroids': FeedSource(
        'nasa-neo', 'https://api.nasa.gov/neo/rest/v1/feed/today',
        '/api/space-weather', {'api_key': NASA_API_KEY}, module='asteroid-watch',
    ),
}


def get_feed(db: Session, name: str) -> CachedResult:
    """
    Fetch a feed by name.

    Raises:
        KeyError: unknown feed
        OfflineError: upstream down and nothing cached
    """
    feed = FEEDS[name]
    started = time.perf_counter()
    result = resilient_fetch(
        feed.source,
        feed.url,
        params=feed.params or None,
        ttl=ttl_for_path(feed.route),
    )

    if result.source == "network" and feed.module:
        duration_ms = int((time.perf_counter() - started) * 1000)
        try:
            FreshnessTracker(db).mark_refreshed(feed.module, duration_ms)
        except Exception as e:
            db.rollback()
            logger.warning(f"[FEEDS] Could not record refresh of {feed.module}: {e}")

    return result
