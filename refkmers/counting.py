"""Count k-mer codes inside genomic windows of one chromosome.

A k-mer is counted for a window when it lies entirely inside the window
([pos, pos + k) within [start, end)) and its code is not a sentinel.
Counts are keyed by (k, code); only the per-key sums are meaningful.
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class ScanCounters:
    """Position tallies across all windows and k-mer sizes."""
    total: int = 0        # positions scanned (window length, per k)
    truncated: int = 0    # no full k-mer fits in the window or chromosome
    ambiguous: int = 0    # k-mer overlaps a non-ACGT or blacklisted base
    counted: int = 0

    def __iadd__(self, other):
        self.total += other.total
        self.truncated += other.truncated
        self.ambiguous += other.ambiguous
        self.counted += other.counted
        return self


def make_windows_by_size(chrom_len, size):
    """Consecutive [i*size, (i+1)*size) windows; the last one is clipped."""
    n_windows = (chrom_len + size - 1) // size
    return [(i * size, min((i + 1) * size, chrom_len), i) for i in range(n_windows)]


def global_window(chrom_len):
    return [(0, chrom_len, 0)]


def count_kmers_by_window(codes_by_k, windows, chrom_len, counters=None):
    """Count k-mers per window.

    Args:
        codes_by_k: {k: KmerCodes} for one chromosome.
        windows:    [(start, end, original_idx), ...]; ends are capped at
                    `chrom_len`.
        chrom_len:  Chromosome length.
        counters:   Optional ScanCounters updated in place.

    Returns a list of {(k, code): count} dicts in the order of `windows`.
    """
    counts_by_window = []
    for win_start, win_end, _ in windows:
        win_end = min(win_end, chrom_len)
        counts = {}
        for k, enc in codes_by_k.items():
            span = max(0, win_end - win_start)
            # last start position whose k-mer still ends inside the window
            last = win_end - k + 1
            if counters is not None:
                counters.total += span
            if last <= win_start:
                if counters is not None:
                    counters.truncated += span
                continue

            codes = enc.window(win_start, last)
            spec = enc.spec
            none_mask = codes == np.uint64(spec.sentinel_none)
            n_mask = codes == np.uint64(spec.sentinel_n)
            valid = codes[~(none_mask | n_mask)]

            uniq, cnt = np.unique(valid, return_counts=True)
            for code, c in zip(uniq.tolist(), cnt.tolist()):
                counts[(k, code)] = c

            if counters is not None:
                counters.truncated += span - len(codes) + int(none_mask.sum())
                counters.ambiguous += int(n_mask.sum())
                counters.counted += len(valid)
        counts_by_window.append(counts)
    return counts_by_window
