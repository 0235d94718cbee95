"""Half-open [start, end) interval helpers for blacklist masking.

Interval lists are plain lists of (start, end) tuples.  The query helpers
(`compute_blacklist_overlap`, `is_full`) require a merged list (sorted,
disjoint) and queries arriving in non-decreasing start order; they share a
one-element list `ptr` as a forward-only cursor between calls, e.g.:

    ptr = [0]
    for start, end in windows:
        frac = compute_blacklist_overlap(intervals, start, end, ptr)

Out-of-order queries are not detected and under-count.
"""

import numpy as np

# Byte written over blacklisted bases; decodes to the not-a-base digit.
BLACKLIST_BYTE = ord('X')


def merge_intervals(intervals):
    """Sort and coalesce overlapping or touching intervals.

    merge_intervals([(10, 25), (20, 40), (50, 55)]) -> [(10, 40), (50, 55)]
    merge_intervals([(0, 10), (10, 20)])            -> [(0, 20)]
    """
    ivs = sorted(intervals)
    if not ivs:
        return []
    merged = []
    cur_start, cur_end = ivs[0]
    for start, end in ivs[1:]:
        if start <= cur_end:
            cur_end = max(cur_end, end)
        else:
            merged.append((cur_start, cur_end))
            cur_start, cur_end = start, end
    merged.append((cur_start, cur_end))
    return merged


def mask_sequence(seq, intervals, mask_byte=BLACKLIST_BYTE):
    """Overwrite every base inside `intervals` with `mask_byte`, in place.

    `seq` is a bytearray or a writable uint8 numpy array.  Intervals running
    past the sequence end are clipped; intervals starting past it are ignored.
    Returns `seq` for convenience.
    """
    view = seq if isinstance(seq, np.ndarray) else np.frombuffer(seq, dtype=np.uint8)
    seq_len = len(view)
    for start, end in intervals:
        if start >= seq_len:
            continue
        end = min(end, seq_len)
        if end > start:
            view[start:end] = mask_byte
    return seq


def _advance(intervals, start, ptr):
    while ptr[0] < len(intervals) and intervals[ptr[0]][1] <= start:
        ptr[0] += 1


def compute_blacklist_overlap(intervals, start, end, ptr):
    """Fraction of [start, end) covered by `intervals`.

    `ptr` is left at the first interval that might overlap the next query.
    An empty query window reports 0.0.
    """
    _advance(intervals, start, ptr)
    if end <= start:
        return 0.0
    covered = 0
    i = ptr[0]
    while i < len(intervals) and intervals[i][0] < end:
        iv_start, iv_end = intervals[i]
        covered += max(0, min(iv_end, end) - max(iv_start, start))
        i += 1
    return covered / (end - start)


def is_full(intervals, start, end, ptr):
    """True if a single interval fully contains [start, end)."""
    _advance(intervals, start, ptr)
    if ptr[0] >= len(intervals):
        return False
    iv_start, iv_end = intervals[ptr[0]]
    return iv_start <= start and iv_end >= end
