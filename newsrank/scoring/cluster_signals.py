"""
Cluster-level reach and velocity signals.

For every story cluster, only members with a parseable timestamp inside the
lookback window (72h, no future items) count:

  surface_reach = min(trusted domains, cap) / cap
  velocity      = min(1, max(0, recent − 0.6×previous) + 0.4×recent)

where recent is the share of windowed items published in the last 18h and
previous the share published 18-36h ago. A burst of fresh coverage scores
high; a story whose coverage is fading scores low.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional

from newsrank.config import get_settings
from newsrank.schemas.news import ClusterContext
from newsrank.schemas.scoring import ClusterImpactSummary
from newsrank.shared.tables import load_table
from newsrank.shared.timeutil import hours_between, parse_utc
from newsrank.shared.urls import registered_domain

logger = logging.getLogger(__name__)


def trusted_domain_score(domain: str, scores: Optional[Dict[str, float]] = None) -> float:
    """Trusted-domain table score: exact host first, then its registered domain."""
    if scores is None:
        scores = load_table("trusted_domains")["scores"]
    host = (domain or "").lower()
    if host in scores:
        return float(scores[host])
    registered = registered_domain(host)
    if registered and registered in scores:
        return float(scores[registered])
    return 0.0


def count_trusted_domains(domains: Iterable[str]) -> int:
    """Number of distinct domains that appear in the trusted-domain table."""
    return sum(1 for domain in set(domains) if trusted_domain_score(domain) > 0)


def compute_cluster_signals(
    cluster: ClusterContext,
    now: datetime,
    window_hours: Optional[float] = None,
    cap: Optional[int] = None,
    recent_hours: Optional[float] = None,
) -> ClusterImpactSummary:
    """
    Reach and velocity for one cluster at time now.

    Args:
        cluster: story cluster (singletons are computed the same way)
        now: reference time (aware UTC)
        window_hours: lookback window (default 72h)
        cap: trusted-domain count that saturates surface_reach (default 10)
        recent_hours: "recent" window; "previous" is the window before it
    """
    settings = get_settings()
    window = window_hours if window_hours is not None else settings.surface_reach_window_hours
    cap = cap or settings.surface_reach_cap
    recent_window = recent_hours if recent_hours is not None else settings.momentum_window_hours

    domains = set()
    trusted = set()
    total = recent = previous = 0
    for item in cluster.items:
        published = parse_utc(item.published_at)
        if published is None:
            continue
        age = hours_between(published, now)
        if age < 0 or age > window:
            continue
        total += 1
        domains.add(item.domain)
        if trusted_domain_score(item.domain) > 0:
            trusted.add(item.domain)
        if age <= recent_window:
            recent += 1
        elif age <= 2 * recent_window:
            previous += 1

    if total == 0:
        surface_reach = velocity = 0.0
    else:
        surface_reach = min(len(trusted), cap) / cap
        recent_share = recent / total
        previous_share = previous / total
        velocity = min(1.0, max(0.0, recent_share - 0.6 * previous_share) + 0.4 * recent_share)

    summary = ClusterImpactSummary(
        id=cluster.id,
        surface_reach=surface_reach,
        distinct_domains=len(domains),
        trusted_domains=len(trusted),
        velocity=velocity,
        total_items=total,
        window_hours=window,
    )
    logger.debug(
        f"Cluster {cluster.id}: {total} in window, {len(domains)} domains "
        f"({len(trusted)} trusted), reach={surface_reach:.2f}, velocity={velocity:.2f}"
    )
    return summary
