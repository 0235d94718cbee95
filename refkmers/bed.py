"""BED loaders for blacklist regions, window coordinates and chromosome lists.

Only the first three whitespace-separated columns (chrom, start, end) are
used; extra columns are ignored.  Blank lines and lines starting with '#',
'track' or 'browser' are skipped.

Blacklist files are read leniently (malformed lines are dropped), window
files strictly (a malformed coordinate aborts the run), since a silently
skipped window would shift every output row after it.
"""

import gzip
from collections import defaultdict

from .errors import InputFormatError, ReferenceIOError
from .intervals import merge_intervals

_HEADER_PREFIXES = ('#', 'track', 'browser')


def _open_text(path):
    open_func = gzip.open if str(path).endswith('.gz') else open
    try:
        return open_func(path, 'rt')
    except OSError as exc:
        raise ReferenceIOError(f"cannot read {path}: {exc}") from exc


def _bed_fields(path):
    """Yield (line_no, fields) for every data line of a BED file."""
    with _open_text(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith(_HEADER_PREFIXES):
                continue
            yield line_no, line.split()


def load_blacklist(bed_path, min_size, chromosomes):
    """Load one blacklist BED into {chrom: sorted [(start, end), ...]}.

    Intervals shorter than `min_size` or on chromosomes outside
    `chromosomes` are dropped, as are lines whose coordinates do not parse.
    """
    wanted = set(chromosomes)
    intervals = defaultdict(list)
    for _, fields in _bed_fields(bed_path):
        if len(fields) < 3 or fields[0] not in wanted:
            continue
        try:
            start, end = int(fields[1]), int(fields[2])
        except ValueError:
            continue
        if start < 0 or end <= start or end - start < min_size:
            continue
        intervals[fields[0]].append((start, end))
    for ivs in intervals.values():
        ivs.sort()
    return dict(intervals)


def load_blacklists(bed_paths, min_size, chromosomes):
    """Load and concatenate several blacklist BEDs, then merge per chromosome."""
    combined = defaultdict(list)
    for bed_path in bed_paths:
        for chrom, ivs in load_blacklist(bed_path, min_size, chromosomes).items():
            combined[chrom].extend(ivs)
    return {chrom: merge_intervals(ivs) for chrom, ivs in combined.items()}


def load_windows(bed_path, chromosomes):
    """Load window coordinates into {chrom: [(start, end, original_idx), ...]}.

    Every chromosome in `chromosomes` gets an entry, possibly empty.  The
    original index counts kept lines in file order and is used to restore
    that order after per-chromosome processing.  Windows are sorted by
    (start, end) within each chromosome.
    """
    wanted = set(chromosomes)
    windows = {chrom: [] for chrom in chromosomes}
    win_idx = 0
    for line_no, fields in _bed_fields(bed_path):
        if fields[0] not in wanted:
            continue
        if len(fields) < 3:
            raise InputFormatError(
                f"{bed_path}:{line_no}: expected at least 3 columns, got {len(fields)}")
        try:
            start, end = int(fields[1]), int(fields[2])
        except ValueError as exc:
            raise InputFormatError(
                f"{bed_path}:{line_no}: non-numeric window coordinates "
                f"'{fields[1]}', '{fields[2]}'") from exc
        if start < 0 or end < start:
            raise InputFormatError(
                f"{bed_path}:{line_no}: invalid window [{start}, {end})")
        windows[fields[0]].append((start, end, win_idx))
        win_idx += 1
    for wins in windows.values():
        wins.sort(key=lambda w: (w[0], w[1]))
    return windows


def load_chromosomes(path):
    """Read chromosome names, one per line; blank and '#' lines skipped."""
    with _open_text(path) as f:
        return [line.strip() for line in f
                if line.strip() and not line.startswith('#')]
