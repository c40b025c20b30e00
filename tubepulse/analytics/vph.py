"""Views-per-hour with time-decay weighting.

VPH = (view_count / hours_elapsed) x decay_factor(days_elapsed)

Raw views-per-hour overstates older uploads and is noisy for very recent
ones; the decay table below scales the raw rate by upload age. The table is
intentionally non-monotone around the one-day mark and must be kept as is.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional

from tubepulse.normalization.parsers import parse_timestamp
from tubepulse.normalization.schema import Video

# Below this many views a rate estimate is not meaningful
MIN_VIEWS = 50
# Uploads younger than this get no estimate
MIN_HOURS = 1.0

# (upper bound in days, inclusive) -> factor
DECAY_TABLE: tuple[tuple[float, float], ...] = (
    (0.2, 1.0),  # 0-5 hours
    (0.6, 0.93),  # 5-15 hours
    (1.0, 1.0),  # 15-24 hours
    (2.0, 0.47),
    (3.0, 0.26),
    (7.0, 0.30),
    (14.0, 0.185),
    (30.0, 0.26),
)
DECAY_FLOOR = 0.11  # older than 30 days


def decay_factor(days_since_upload: float) -> float:
    """Decay multiplier for an upload ``days_since_upload`` days old."""
    for upper_bound, factor in DECAY_TABLE:
        if days_since_upload <= upper_bound:
            return factor
    return DECAY_FLOOR


def calculate_vph(
    view_count: int,
    published_at: Optional[str],
    now: Optional[datetime] = None,
) -> int:
    """Decay-weighted views per hour, rounded to an integer.

    Returns 0 when the estimate would not be meaningful: too few views, an
    unknown or future publish time, or an upload younger than one hour.
    """
    if not view_count or view_count < MIN_VIEWS:
        return 0

    uploaded = parse_timestamp(published_at)
    if uploaded is None:
        return 0

    now = now or datetime.now(timezone.utc)
    hours_elapsed = (now - uploaded).total_seconds() / 3600

    if not math.isfinite(hours_elapsed) or hours_elapsed <= 0:
        return 0
    if hours_elapsed < MIN_HOURS:
        return 0

    adjusted = view_count / hours_elapsed * decay_factor(hours_elapsed / 24)
    if not math.isfinite(adjusted):
        return 0

    # half-up, not banker's rounding
    return max(0, math.floor(adjusted + 0.5))


def annotate_vph(videos: Iterable[Video], now: Optional[datetime] = None) -> list[Video]:
    """Return copies of ``videos`` with ``vph`` filled in."""
    now = now or datetime.now(timezone.utc)
    return [
        video.model_copy(update={"vph": calculate_vph(video.view_count, video.published_at, now)})
        for video in videos
    ]
