"""
Caching Strategies
==================
The three fetch strategies used for upstream content, applied on top of the
process-wide ApiCache:

  network_first           API data: try upstream, fall back to the last good copy
  cache_first             static assets: serve the cached copy, fetch on miss
  stale_while_revalidate  pages: answer from cache now, refresh in background

Every strategy returns a `CachedResult` so callers can surface staleness
(e.g. an `X-Cache` header) without knowing which strategy ran.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

import requests

from spacenexus.core.config import UPSTREAM_TIMEOUT_SECONDS, UPSTREAM_USER_AGENT
from spacenexus.services.api_cache import ApiCache, CacheTTL, get_api_cache
from spacenexus.services.circuit_breaker_service import create_circuit_breaker

logger = logging.getLogger(__name__)

NETWORK_FIRST = "network-first"
CACHE_FIRST = "cache-first"
STALE_WHILE_REVALIDATE = "stale-while-revalidate"

# Per-route TTLs in seconds; longest matching prefix wins
ROUTE_CACHE_TTLS: Dict[str, int] = {
    "/api/news": 60,
    "/api/events": 120,
    "/api/stocks": 60,
    "/api/space-weather": 300,
    "/api/modules": 3600,
    "/api/blogs": 300,
}

STATIC_EXTENSIONS = (
    ".js", ".css", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".woff", ".woff2",
)

_revalidate_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="swr-revalidate")
_inflight: Set[str] = set()
_inflight_lock = threading.Lock()


class OfflineError(Exception):
    """Upstream unreachable and nothing cached to fall back on."""

    def __init__(self, key: str, cause: Optional[BaseException] = None):
        super().__init__(f"Upstream unavailable and no cached copy for {key}")
        self.key = key
        self.cause = cause


@dataclass
class CachedResult:
    value: Any
    source: str          # 'network' | 'cache'
    is_stale: bool = False
    strategy: str = NETWORK_FIRST

    @property
    def cache_header(self) -> str:
        if self.source == "network":
            return "MISS"
        return "STALE" if self.is_stale else "HIT"


def ttl_for_path(path: str) -> int:
    """TTL for an API path, by longest matching prefix."""
    best = None
    for prefix in ROUTE_CACHE_TTLS:
        if path.startswith(prefix) and (best is None or len(prefix) > len(best)):
            best = prefix
    return ROUTE_CACHE_TTLS[best] if best else CacheTTL.DEFAULT


def choose_strategy(path: str) -> str:
    if path.startswith("/api/"):
        return NETWORK_FIRST
    if path.lower().endswith(STATIC_EXTENSIONS):
        return CACHE_FIRST
    return STALE_WHILE_REVALIDATE


def network_first(
    key: str,
    fetch: Callable[[], Any],
    ttl: float = CacheTTL.DEFAULT,
    cache: Optional[ApiCache] = None,
) -> CachedResult:
    cache = cache or get_api_cache()
    try:
        value = fetch()
    except Exception as e:
        logger.info(f"[CACHE] Network failed for {key}, trying cache: {e}")
        cached = cache.get_stale(key)
        if cached is None:
            raise OfflineError(key, e) from e
        return CachedResult(cached['value'], "cache", cached['is_stale'], NETWORK_FIRST)

    cache.set(key, value, ttl)
    return CachedResult(value, "network", False, NETWORK_FIRST)


def cache_first(
    key: str,
    fetch: Callable[[], Any],
    ttl: float = CacheTTL.SLOW,
    cache: Optional[ApiCache] = None,
) -> CachedResult:
    cache = cache or get_api_cache()
    value = cache.get(key)
    if value is not None:
        return CachedResult(value, "cache", False, CACHE_FIRST)

    try:
        value = fetch()
    except Exception as e:
        logger.info(f"[CACHE] Failed to fetch {key}: {e}")
        raise OfflineError(key, e) from e

    cache.set(key, value, ttl)
    return CachedResult(value, "network", False, CACHE_FIRST)


def _revalidate(key: str, fetch: Callable[[], Any], ttl: float, cache: ApiCache) -> None:
    try:
        cache.set(key, fetch(), ttl)
        logger.debug(f"[CACHE] Revalidated {key}")
    except Exception as e:
        logger.info(f"[CACHE] Background revalidation failed for {key}: {e}")
    finally:
        with _inflight_lock:
            _inflight.discard(key)


def stale_while_revalidate(
    key: str,
    fetch: Callable[[], Any],
    ttl: float = CacheTTL.DEFAULT,
    cache: Optional[ApiCache] = None,
    background: bool = True,
) -> CachedResult:
    """
    Serve whatever is cached immediately; stale entries trigger a refresh.

    With `background=False` the refresh runs inline after the cached value
    has been read (used by tests and batch jobs).
    """
    cache = cache or get_api_cache()
    cached = cache.get_stale(key)

    if cached is None:
        try:
            value = fetch()
        except Exception as e:
            raise OfflineError(key, e) from e
        cache.set(key, value, ttl)
        return CachedResult(value, "network", False, STALE_WHILE_REVALIDATE)

    if cached['is_stale']:
        with _inflight_lock:
            already_running = key in _inflight
            if not already_running:
                _inflight.add(key)
        if not already_running:
            if background:
                _revalidate_pool.submit(_revalidate, key, fetch, ttl, cache)
            else:
                _revalidate(key, fetch, ttl, cache)

    return CachedResult(cached['value'], "cache", cached['is_stale'], STALE_WHILE_REVALIDATE)


_STRATEGIES = {
    NETWORK_FIRST: network_first,
    CACHE_FIRST: cache_first,
    STALE_WHILE_REVALIDATE: stale_while_revalidate,
}


def fetch_with_strategy(
    strategy: str,
    key: str,
    fetch: Callable[[], Any],
    ttl: float = CacheTTL.DEFAULT,
    cache: Optional[ApiCache] = None,
) -> CachedResult:
    try:
        runner = _STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"Unknown caching strategy: {strategy}")
    return runner(key, fetch, ttl=ttl, cache=cache)


def resilient_fetch(
    source: str,
    url: str,
    params: Optional[Dict[str, Any]] = None,
    ttl: Optional[float] = None,
    strategy: str = NETWORK_FIRST,
    cache: Optional[ApiCache] = None,
    session: Optional[requests.Session] = None,
) -> CachedResult:
    """
    GET a JSON document from an upstream source.

    The HTTP call runs through the source's circuit breaker; an open circuit
    counts as a network failure, so cached data is served instead.
    """
    breaker = create_circuit_breaker(source)
    http = session or requests
    key = f"{source}:{url}:{sorted((params or {}).items())}"

    def _get():
        response = http.get(
            url,
            params=params,
            timeout=UPSTREAM_TIMEOUT_SECONDS,
            headers={"User-Agent": UPSTREAM_USER_AGENT, "Accept": "application/json"},
        )
        response.raise_for_status()
        return response.json()

    return fetch_with_strategy(
        strategy,
        key,
        lambda: breaker.execute(_get),
        ttl=ttl if ttl is not None else CacheTTL.DEFAULT,
        cache=cache,
    )
