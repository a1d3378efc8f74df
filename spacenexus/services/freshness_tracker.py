"""
Freshness Tracker
Per-module TTL / refresh-priority policies, plus a persistent record of when
each module's data was last refreshed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from spacenexus.models.tables import ModuleFreshness, utcnow

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {'critical': 0, 'high': 1, 'moderate': 2, 'low': 3}


@dataclass(frozen=True)
class FreshnessPolicy:
    ttl_hours: int
    refresh_priority: str    # critical | high | moderate | low
    refresh_source: str      # api | ai-research | both
    keywords: List[str] = field(default_factory=list)


FRESHNESS_POLICIES: Dict[str, FreshnessPolicy] = {
    # CRITICAL: data must be current
    'space-stations': FreshnessPolicy(
        24, 'critical', 'both',
        ['ISS', 'space station', 'Tiangong', 'crew', 'astronaut', 'cosmonaut', 'Axiom', 'Orbital Reef'],
    ),

    # HIGH: changes weekly or with news cycles
    'constellations': FreshnessPolicy(
        168, 'high', 'api',
        ['Starlink', 'OneWeb', 'Kuiper', 'constellation', 'satellite deploy'],
    ),
    'space-economy': FreshnessPolicy(
        168, 'high', 'ai-research',
        ['space economy', 'space market', 'venture capital', 'space investment', 'space IPO', 'space funding'],
    ),
    'startups': FreshnessPolicy(
        168, 'high', 'ai-research',
        ['startup', 'funding round', 'Series A', 'Series B', 'space startup', 'seed round', 'space venture'],
    ),
    'space-defense': FreshnessPolicy(
        168, 'high', 'both',
        ['Space Force', 'space defense', 'SDA', 'military space', 'space command', 'NRO', 'defense contract'],
    ),
    'cislunar': FreshnessPolicy(
        168, 'high', 'ai-research',
        ['Artemis', 'lunar', 'moon mission', 'Gateway', 'CLPS', 'cislunar', 'Lunar Pathfinder'],
    ),
    'compliance': FreshnessPolicy(
        168, 'high', 'ai-research',
        ['FCC', 'FAA license', 'space law', 'space regulation', 'ITU', 'Artemis Accords', 'space treaty'],
    ),

    # MODERATE: changes monthly
    'asteroid-watch': FreshnessPolicy(
        168, 'moderate', 'api',
        ['asteroid', 'NEO', 'near-Earth', 'DART', 'planetary defense'],
    ),
    'patents': FreshnessPolicy(
        720, 'moderate', 'api',
        ['space patent', 'space IP', 'patent filing', 'space technology patent'],
    ),
    'launch-vehicles': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['Falcon 9', 'Starship', 'New Glenn', 'Vulcan', 'Ariane', 'launch vehicle', 'rocket', 'first flight'],
    ),
    'mars-planner': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['Mars', 'Perseverance', 'Curiosity', 'Mars mission', 'Mars launch', 'ExoMars'],
    ),
    'spaceports': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['spaceport', 'launch site', 'launch pad', 'Cape Canaveral', 'Boca Chica', 'launch complex'],
    ),
    'space-manufacturing': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['space manufacturing', 'in-space production', 'Varda', 'Redwire', 'space factory', 'microgravity'],
    ),
    'space-tourism': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['space tourism', 'Blue Origin', 'Virgin Galactic', 'SpaceX tourism', 'Axiom mission', 'private astronaut'],
    ),
    'supply-chain': FreshnessPolicy(
        720, 'moderate', 'ai-research',
        ['space supply chain', 'space components', 'satellite manufacturing', 'launch supply'],
    ),

    # LOW: rarely changes
    'ground-stations': FreshnessPolicy(
        1440, 'low', 'ai-research',
        ['ground station', 'DSN', 'KSAT', 'AWS Ground Station', 'antenna network'],
    ),
}

DEFAULT_POLICY = FreshnessPolicy(720, 'moderate', 'ai-research', [])


def get_policy(module: str) -> FreshnessPolicy:
    return FRESHNESS_POLICIES.get(module, DEFAULT_POLICY)


def get_expires_at(module: str, from_date: Optional[datetime] = None) -> datetime:
    start = from_date or utcnow()
    return start + timedelta(hours=get_policy(module).ttl_hours)


def _age(last_refreshed: datetime, now: Optional[datetime]) -> timedelta:
    return (now or utcnow()) - last_refreshed


def is_stale(module: str, last_refreshed: datetime, now: Optional[datetime] = None) -> bool:
    """Older than one TTL."""
    return _age(last_refreshed, now) > timedelta(hours=get_policy(module).ttl_hours)


def is_expired(module: str, last_refreshed: datetime, now: Optional[datetime] = None) -> bool:
    """Older than two TTLs."""
    return _age(last_refreshed, now) > timedelta(hours=get_policy(module).ttl_hours * 2)


def get_modules_needing_refresh() -> List[str]:
    """All policy modules, most urgent refresh priority first."""
    ordered = sorted(
        FRESHNESS_POLICIES.items(),
        key=lambda item: PRIORITY_ORDER[item[1].refresh_priority],
    )
    return [module for module, _ in ordered]


def get_modules_by_source(source: str) -> List[str]:
    """Modules refreshed from `source` ('api' or 'ai-research'); 'both' matches either."""
    return [
        module for module, policy in FRESHNESS_POLICIES.items()
        if policy.refresh_source in (source, 'both')
    ]


class FreshnessTracker:
    """
    Tracks when module data was last refreshed and determines staleness.
    """

    def __init__(self, db: Session):
        self.db = db

    def mark_refreshed(self, module: str, duration_ms: Optional[int] = None) -> ModuleFreshness:
        """Mark module data as freshly fetched."""
        row = self.db.get(ModuleFreshness, module)
        if row is None:
            row = ModuleFreshness(module=module, refresh_count=0)
            self.db.add(row)
        row.last_refreshed = utcnow()
        row.refresh_count = (row.refresh_count or 0) + 1
        row.last_duration_ms = duration_ms
        self.db.commit()
        logger.debug(f"[FRESHNESS] {module} refreshed (count={row.refresh_count})")
        return row

    def module_is_stale(self, module: str) -> bool:
        row = self.db.get(ModuleFreshness, module)
        if row is None or row.last_refreshed is None:
            return True
        return is_stale(module, row.last_refreshed)

    def get_freshness_info(self, module: str) -> Dict:
        """Detailed freshness info for the admin dashboard."""
        policy = get_policy(module)
        row = self.db.get(ModuleFreshness, module)
        last = row.last_refreshed if row else None
        now = utcnow()

        if last:
            expires_at = get_expires_at(module, last)
            remaining_hours = (expires_at - now).total_seconds() / 3600
            stale = is_stale(module, last, now)
            expired = is_expired(module, last, now)
        else:
            expires_at = None
            remaining_hours = None
            stale = True
            expired = True

        return {
            'module': module,
            'ttl_hours': policy.ttl_hours,
            'refresh_priority': policy.refresh_priority,
            'refresh_source': policy.refresh_source,
            'last_refreshed': last.isoformat() if last else None,
            'expires_at': expires_at.isoformat() if expires_at else None,
            'time_remaining_hours': round(remaining_hours, 2) if remaining_hours is not None else None,
            'is_stale': stale,
            'is_expired': expired,
            'refresh_count': row.refresh_count if row else 0,
            'last_duration_ms': row.last_duration_ms if row else None,
        }

    def get_stale_modules(self) -> List[str]:
        """Stale policy modules (never-refreshed included), in refresh-priority order."""
        return [m for m in get_modules_needing_refresh() if self.module_is_stale(m)]

    def report(self) -> Dict:
        modules = [self.get_freshness_info(m) for m in get_modules_needing_refresh()]
        return {
            'modules': modules,
            'total': len(modules),
            'stale': sum(1 for m in modules if m['is_stale']),
            'expired': sum(1 for m in modules if m['is_expired']),
        }
