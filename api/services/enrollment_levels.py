"""
Enrollment levels

Fixed, ordered enrollment-size bands used for leaderboard filtering and
display. "all" is a filter wildcard only; get_enrollment_level never returns it.
"""

from typing import Dict, List, Optional

ENROLLMENT_LEVELS: List[Dict] = [
    {'id': 'all', 'label': 'All Enrollment Levels'},
    {'id': '<1k', 'label': '< 1k', 'min': 0, 'max': 999},
    {'id': '1-10k', 'label': '1k - 9.9k', 'min': 1000, 'max': 9999},
    {'id': '10-25k', 'label': '10k - 24.9k', 'min': 10000, 'max': 24999},
    {'id': '25-100k', 'label': '25k - 99.9k', 'min': 25000, 'max': 99999},
    {'id': '100-250k', 'label': '100k - 249.9k', 'min': 100000, 'max': 249999},
    {'id': '>250k', 'label': '> 250k', 'min': 250000},
    {'id': 'null', 'label': 'Suppressed / Unknown'},
]

VALID_ENROLLMENT_LEVELS = {level['id'] for level in ENROLLMENT_LEVELS}

# Bands that classify, in ascending order
_BANDS = [level for level in ENROLLMENT_LEVELS if 'min' in level]


def get_enrollment_level(total: Optional[float]) -> str:
    """
    Classify an enrollment total into its band id.

    Bands are half-open on the next band's lower bound, so 999.5 is "<1k".
    Missing totals are "null"; anything past the last bound is ">250k".
    """
    if total is None:
        return 'null'

    for band, next_band in zip(_BANDS, _BANDS[1:]):
        if total < next_band['min']:
            return band['id']
    return '>250k'


def format_enrollment(total: Optional[float]) -> str:
    """Short display label: 1.2M, 45.3k, 812, or Suppressed."""
    if total is None:
        return "Suppressed"
    if total >= 1_000_000:
        return f"{total / 1_000_000:.1f}M"
    if total >= 1_000:
        return f"{total / 1_000:.1f}k"
    return f"{int(round(total)):,}"
