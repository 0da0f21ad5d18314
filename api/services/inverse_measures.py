"""
Inverse measures: lower values mean better performance.

Detected by measure code (fixed override set) or by phrases in the measure
label that indicate member attrition or complaints.
"""

from typing import Optional

INVERSE_KEYWORDS = [
    "members choosing to leave",
    "complaints about",
    "disenrollment",
    "leaving the plan",
    "plan makes it easy to leave",
]

INVERSE_METRIC_CODES = {
    "C28",
    "C29",
    "C30",
    "D87",
    "D88",
    "D89",
}


def is_inverse_measure(label: Optional[str], code: Optional[str] = None) -> bool:
    normalized_label = (label or "").strip().lower()
    normalized_code = (code or "").strip().upper()

    if normalized_code in INVERSE_METRIC_CODES:
        return True

    return any(keyword in normalized_label for keyword in INVERSE_KEYWORDS)


def measure_direction(label: Optional[str], code: Optional[str] = None) -> str:
    """Sort direction for a measure: "lower" for inverse measures, else "higher"."""
    return "lower" if is_inverse_measure(label, code) else "higher"
