"""Motif decoding, reverse-complement folding and motif universes.

Per-window raw counts {(k, code): n} are decoded into DecodedCounts,
a plain dict {k: {motif: n}}.  Motifs containing 'N' (sentinel hits) are
dropped here and never reach the output.

Canonical folding maps a motif to min(motif, reverse_complement(motif)) and
sums the counts of everything that folds to the same key:
  ACG (2) + CGT (3) -> ACG (5)

Motif universe per k (the column order of the output matrices):
  k <= 6  every A/C/G/T motif (4^k), so unseen motifs get explicit zeros
  k > 6   only motifs observed in at least one window
Both are folded when canonical mode is on, deduplicated and sorted.
"""

import sys
from collections import defaultdict

from .errors import ConfigError, RefKmersError
from .kmer_codec import build_kmer_specs

# Largest k whose full motif space is enumerated into the universe.
FULL_UNIVERSE_MAX_K = 6

COMPLEMENT = {
    'A': 'T', 'C': 'G', 'G': 'C', 'T': 'A', 'N': 'N',
}


# ---------------------------------------------------------------------------
# Reverse complement / canonical form
# ---------------------------------------------------------------------------

def reverse_complement(seq):
    """Reverse complement; bytes other than A/C/G/T/N pass through unchanged."""
    return "".join(COMPLEMENT.get(base, base) for base in reversed(seq))


def canonical(motif):
    """The lexicographically smaller of `motif` and its reverse complement."""
    rc = reverse_complement(motif)
    return motif if motif <= rc else rc


def collapse_map(counts):
    """Fold a {motif: count} map onto canonical keys, summing counts."""
    out = defaultdict(int)
    for motif, count in counts.items():
        out[canonical(motif)] += count
    return dict(out)


def collapse_set(motifs):
    return {canonical(m) for m in motifs}


# ---------------------------------------------------------------------------
# Decoding raw window counts
# ---------------------------------------------------------------------------

def decode_counts(counts, kmer_specs):
    """Turn {(k, code): n} into {k: {motif: n}}, dropping motifs with 'N'.

    Every k in `kmer_specs` gets an entry, possibly empty.
    """
    decoded = {k: {} for k in kmer_specs}
    for (k, code), cnt in counts.items():
        motif = kmer_specs[k].decode(code)
        if 'N' in motif:
            continue
        decoded[k][motif] = decoded[k].get(motif, 0) + cnt
    return decoded


def merge_decoded_counts(all_counts):
    """Sum several DecodedCounts into one (used for the genome-wide window)."""
    merged = {}
    for decoded in all_counts:
        for k, motif_counts in decoded.items():
            bucket = merged.setdefault(k, {})
            for motif, cnt in motif_counts.items():
                bucket[motif] = bucket.get(motif, 0) + cnt
    return merged


# ---------------------------------------------------------------------------
# Motif universe
# ---------------------------------------------------------------------------

def all_motifs(spec):
    """Every A/C/G/T motif of length spec.k, by decoding codes 0..5^k-1."""
    motifs = (spec.decode(code) for code in range(spec.n_codes))
    return [m for m in motifs if 'N' not in m]


def motif_universe(spec, observed=(), canonical_mode=False):
    """Sorted column order for one k.

    For k <= FULL_UNIVERSE_MAX_K the full motif space, otherwise the
    union of the motif keys in `observed` (an iterable of {motif: n} maps).
    """
    if spec.k <= FULL_UNIVERSE_MAX_K:
        motifs = set(all_motifs(spec))
    else:
        motifs = set()
        for counts in observed:
            motifs.update(counts)
    if canonical_mode:
        motifs = collapse_set(motifs)
    return sorted(motifs)


def prepare_decoded_counts(windows, canonical_mode, kmer_specs):
    """Fold counts (if requested) and build the motif list for every k.

    Args:
        windows:        list of DecodedCounts, one per output row.
        canonical_mode: fold reverse complements.
        kmer_specs:     {k: KmerSpec}.

    Returns (prepared, motifs_by_k) where `prepared` is a new list of
    DecodedCounts aligned with `windows` and `motifs_by_k` maps k to its
    sorted motif list.
    """
    prepared = [{} for _ in windows]
    motifs_by_k = {}
    for k, spec in kmer_specs.items():
        bins = []
        for decoded in windows:
            raw = decoded.get(k, {})
            bins.append(collapse_map(raw) if canonical_mode else dict(raw))
        for i, counts in enumerate(bins):
            prepared[i][k] = counts
        motifs_by_k[k] = motif_universe(spec, bins, canonical_mode)
    return prepared, motifs_by_k


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv=None):
    import argparse
    parser = argparse.ArgumentParser(
        prog="refkmers motifs",
        description="Print the motif universe (output column order) for small k.\n\n"
                    f"Only k <= {FULL_UNIVERSE_MAX_K} has a fixed universe; larger k use "
                    "the motifs observed while counting.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-k", "--kmer-size", type=int, required=True,
                        help=f"K-mer size (1..{FULL_UNIVERSE_MAX_K})")
    parser.add_argument("-c", "--canonical", action="store_true",
                        help="Fold each motif with its reverse complement")
    parser.add_argument("--count", action="store_true",
                        help="Print only the number of motifs")
    args = parser.parse_args(argv)

    try:
        if args.kmer_size > FULL_UNIVERSE_MAX_K:
            raise ConfigError(
                f"k={args.kmer_size} has no fixed motif universe "
                f"(max k is {FULL_UNIVERSE_MAX_K})")
        spec = build_kmer_specs([args.kmer_size])[args.kmer_size]
    except RefKmersError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    motifs = motif_universe(spec, canonical_mode=args.canonical)
    if args.count:
        print(len(motifs))
    else:
        print('\n'.join(motifs))


if __name__ == "__main__":
    main()
