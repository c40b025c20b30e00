"""Derived engagement metrics."""

from tubepulse.analytics.vph import annotate_vph, calculate_vph, decay_factor

__all__ = [
    "annotate_vph",
    "calculate_vph",
    "decay_factor",
]
