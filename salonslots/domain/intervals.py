"""
Interval algebra over half-open minute-of-day ranges.

Pure functions without I/O. Inputs are never mutated; every function
returns a fresh list.
"""

from typing import Iterable, List

from .models import TimeRange


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """
    Check whether two ranges share at least one minute.

    Ranges that merely touch (a.end == b.start) do not overlap, so
    back-to-back appointments stay schedulable.
    """
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes


def merge_ranges(ranges: Iterable[TimeRange]) -> List[TimeRange]:
    """
    Merge overlapping or adjacent ranges.

    Example: [09:00-10:00, 10:00-11:00] -> [09:00-11:00]

    The result is sorted, pairwise non-overlapping and non-touching.
    """
    sorted_ranges = sorted(ranges, key=lambda r: r.start_minutes)
    if not sorted_ranges:
        return []

    merged: List[TimeRange] = [sorted_ranges[0]]

    for current in sorted_ranges[1:]:
        last = merged[-1]

        # Touching ranges coalesce too
        if current.start_minutes <= last.end_minutes:
            merged[-1] = TimeRange(
                last.start_minutes,
                max(last.end_minutes, current.end_minutes),
            )
        else:
            merged.append(current)

    return merged


def subtract_ranges(
    available: Iterable[TimeRange],
    unavailable: Iterable[TimeRange],
) -> List[TimeRange]:
    """
    Remove every unavailable range from the available ones.

    Removals are applied one after another; each split piece is carried into
    the next removal, which makes the result identical to subtracting the
    merged removal set.

    Example:
    Available: 09:00 - 17:00
    Unavailable: [10:00-11:00, 14:00-15:00]
    Result: [09:00-10:00, 11:00-14:00, 15:00-17:00]
    """
    result = list(available)

    for blocked in unavailable:
        remaining: List[TimeRange] = []

        for current in result:
            if not overlaps(current, blocked):
                remaining.append(current)
                continue

            if current.start_minutes < blocked.start_minutes:
                remaining.append(TimeRange(current.start_minutes, blocked.start_minutes))

            if current.end_minutes > blocked.end_minutes:
                remaining.append(TimeRange(blocked.end_minutes, current.end_minutes))

        result = remaining

    return result


def intersect_ranges(
    ranges_a: Iterable[TimeRange],
    ranges_b: Iterable[TimeRange],
) -> List[TimeRange]:
    """
    Calculate the intersection of two lists of ranges.

    Every overlapping pair contributes its clipped overlap; the pieces are
    merged to remove duplicates.
    """
    list_b = list(ranges_b)
    intersections: List[TimeRange] = []

    for range_a in ranges_a:
        for range_b in list_b:
            intersection = range_a.intersect(range_b)
            if intersection:
                intersections.append(intersection)

    return merge_ranges(intersections)
