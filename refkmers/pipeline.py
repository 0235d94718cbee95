"""Count reference k-mers in genomic windows (`refkmers count`).

Pipeline:
  1. Validate options, load blacklists / window BED, build one KmerSpec per k.
  2. Per chromosome (one task each, run in a process pool):
       read sequence -> mask blacklist -> build codes per k -> release sequence
       -> resolve windows -> count per window -> release codes -> decode motifs
  3. Join results in chromosome-list order, fold motifs (--canonical), build
     the motif universe per k, restore BED order (--by-bed), write outputs.

The first failing chromosome cancels the remaining tasks and nothing is
written.  Windowing modes (exactly one):
  --by-size N   consecutive N-bp windows per chromosome
  --by-bed F    windows from a BED file; output rows follow the file order
  --global      one genome-wide row (per-chromosome counts are summed)
"""

import os
import sys
import time
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass, field

from .bed import load_blacklists, load_chromosomes, load_windows
from .counting import (ScanCounters, count_kmers_by_window, global_window,
                       make_windows_by_size)
from .errors import (ConfigError, InputFormatError, ProcessingError,
                     RefKmersError, ReferenceIOError)
from .intervals import compute_blacklist_overlap, mask_sequence
from .kmer_codec import build_codes_per_k, build_kmer_specs
from .motifs import decode_counts, merge_decoded_counts, prepare_decoded_counts
from .reference import read_seq, reference_lengths
from .write import write_bins_bed, write_decoded_counts_matrix

DEFAULT_CHROMOSOMES = [f"chr{i}" for i in range(1, 23)]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class CountConfig:
    reference: str
    output_dir: str
    kmer_sizes: list
    n_threads: int = 1
    by_size: int = None
    by_bed: str = None
    global_mode: bool = False
    chromosomes: list = None
    chromosomes_file: str = None
    blacklists: list = field(default_factory=list)
    blacklist_min_size: int = 1
    canonical: bool = False
    save_sparse: bool = False

    def validate(self):
        """Cheap checks that must fail before any chromosome is processed."""
        modes = [self.by_size is not None, self.by_bed is not None, self.global_mode]
        if sum(modes) != 1:
            raise ConfigError(
                "exactly one of --by-size, --by-bed or --global must be given")
        if self.by_size is not None and self.by_size < 1:
            raise ConfigError(f"--by-size must be positive (got {self.by_size})")
        if self.n_threads < 1:
            raise ConfigError(f"--n-threads must be at least 1 (got {self.n_threads})")
        if self.blacklist_min_size < 0:
            raise ConfigError(
                f"--blacklist-min-size must be >= 0 (got {self.blacklist_min_size})")
        if self.chromosomes is not None and self.chromosomes_file is not None:
            raise ConfigError("use either --chromosomes or --chromosomes-file, not both")
        if not self.kmer_sizes:
            raise ConfigError("no k-mer sizes given")
        build_kmer_specs(self.kmer_sizes)
        for path in [self.reference, self.by_bed, self.chromosomes_file, *self.blacklists]:
            if path is not None and not os.path.isfile(path):
                raise ReferenceIOError(f"input file not found: {path}")

    def resolve_chromosomes(self):
        """Chromosome list from --chromosomes-file, --chromosomes, or chr1..chr22."""
        if self.chromosomes_file is not None:
            chromosomes = load_chromosomes(self.chromosomes_file)
        elif self.chromosomes is not None:
            chromosomes = list(self.chromosomes)
        else:
            chromosomes = list(DEFAULT_CHROMOSOMES)
        if not chromosomes:
            raise ConfigError("chromosome list is empty")
        if len(set(chromosomes)) != len(chromosomes):
            raise ConfigError("chromosome list contains duplicates")
        return chromosomes


@dataclass
class ChromResult:
    """Output of one chromosome unit."""
    chrom: str
    decoded: list       # DecodedCounts per window, in window order
    bin_info: list      # (chrom, start, end, original_idx, overlap_fraction)
    counters: ScanCounters


# ---------------------------------------------------------------------------
# Per-chromosome unit
# ---------------------------------------------------------------------------

def resolve_windows(chrom_len, by_size=None, bed_windows=None):
    if by_size is not None:
        return make_windows_by_size(chrom_len, by_size)
    if bed_windows is not None:
        return list(bed_windows)
    return global_window(chrom_len)


def process_chrom(chrom, ref_path, kmer_specs, bed_windows=None,
                  blacklist=(), by_size=None):
    """Count k-mers in every window of one chromosome.

    Args:
        chrom:       Chromosome name.
        ref_path:    Reference FASTA.
        kmer_specs:  {k: KmerSpec}.
        bed_windows: [(start, end, original_idx)] for --by-bed, else None.
        blacklist:   Merged [(start, end)] intervals for this chromosome.
        by_size:     Window size for --by-size, else None.

    Without `by_size` or `bed_windows` the whole chromosome is one window.
    Raises ProcessingError naming the failing stage; reference lookup
    errors propagate unchanged.
    """
    stage = "load"
    try:
        seq = read_seq(ref_path, chrom)
        chrom_len = len(seq)

        stage = "mask"
        mask_sequence(seq, blacklist)

        stage = "encode"
        codes_by_k = build_codes_per_k(seq, kmer_specs)
        del seq

        stage = "windows"
        windows = resolve_windows(chrom_len, by_size, bed_windows)

        stage = "count"
        counters = ScanCounters()
        counts_by_window = count_kmers_by_window(codes_by_k, windows, chrom_len,
                                                 counters)
        del codes_by_k

        ptr = [0]
        bin_info = []
        for win_start, win_end, original_idx in windows:
            win_end = min(win_end, chrom_len)
            win_start = min(win_start, win_end)
            overlap = compute_blacklist_overlap(blacklist, win_start, win_end, ptr)
            bin_info.append((chrom, win_start, win_end, original_idx, overlap))

        stage = "decode"
        decoded = [decode_counts(counts, kmer_specs) for counts in counts_by_window]
    except RefKmersError:
        raise
    except Exception as exc:
        raise ProcessingError(chrom, stage, f"{type(exc).__name__}: {exc}") from exc

    return ChromResult(chrom=chrom, decoded=decoded, bin_info=bin_info,
                       counters=counters)


def _chrom_task_args(chrom, config, kmer_specs, windows_map, blacklist_map):
    return (chrom, config.reference, kmer_specs,
            windows_map.get(chrom, []) if windows_map is not None else None,
            blacklist_map.get(chrom, []),
            config.by_size)


def count_chromosomes(chromosomes, config, kmer_specs, windows_map, blacklist_map):
    """Run process_chrom for every chromosome; results in `chromosomes` order.

    With n_threads > 1 the units run in a ProcessPoolExecutor.  The first
    failure cancels every task that has not started and is re-raised.
    """
    tasks = [_chrom_task_args(chrom, config, kmer_specs, windows_map, blacklist_map)
             for chrom in chromosomes]

    if config.n_threads == 1:
        results = []
        for args in tasks:
            results.append(process_chrom(*args))
            print(f"  Finished: {args[0]}", flush=True)
        return results

    executor = ProcessPoolExecutor(max_workers=config.n_threads)
    try:
        futures = [executor.submit(process_chrom, *args) for args in tasks]
        pending = set(futures)
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for fut in sorted(done, key=futures.index):
                exc = fut.exception()
                if exc is not None:
                    for other in pending:
                        other.cancel()
                    raise exc
                print(f"  Finished: {fut.result().chrom}", flush=True)
        return [fut.result() for fut in futures]
    finally:
        executor.shutdown(wait=True, cancel_futures=True)


def _warn_window_bounds(windows_map, lengths):
    for chrom, wins in windows_map.items():
        if not wins:
            print(f"  WARN: no windows on {chrom} in the window BED", file=sys.stderr)
            continue
        n_outside = sum(1 for start, _, _ in wins if start >= lengths[chrom])
        if n_outside:
            print(f"  WARN: {n_outside} window(s) on {chrom} start past its end "
                  f"({lengths[chrom]:,} bp) and stay empty", file=sys.stderr)
        n_clipped = sum(1 for start, end, _ in wins
                        if start < lengths[chrom] < end)
        if n_clipped:
            print(f"  WARN: {n_clipped} window(s) on {chrom} extend past its end "
                  f"({lengths[chrom]:,} bp) and are clipped", file=sys.stderr)


def reorder_by_window_index(bin_info, prepared):
    """Sort rows by the original BED line index (stable)."""
    paired = sorted(zip(bin_info, prepared), key=lambda pair: pair[0][3])
    return [info for info, _ in paired], [counts for _, counts in paired]


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

def run(config):
    """Execute a full counting run described by `config`."""
    start_time = time.time()
    config.validate()
    chromosomes = config.resolve_chromosomes()
    kmer_specs = build_kmer_specs(config.kmer_sizes)

    lengths = reference_lengths(config.reference)
    missing = [chrom for chrom in chromosomes if chrom not in lengths]
    if missing:
        raise InputFormatError(
            f"chromosomes not found in reference {config.reference}: "
            f"{', '.join(missing)}")

    blacklist_map = {}
    if config.blacklists:
        print("Start: Loading blacklists")
        blacklist_map = load_blacklists(config.blacklists, config.blacklist_min_size,
                                        chromosomes)

    windows_map = None
    if config.by_bed is not None:
        print("Start: Loading window coordinates")
        windows_map = load_windows(config.by_bed, chromosomes)
        _warn_window_bounds(windows_map, lengths)

    try:
        os.makedirs(config.output_dir, exist_ok=True)
    except OSError as exc:
        raise ReferenceIOError(
            f"cannot create output directory {config.output_dir}: {exc}") from exc

    print(f"Start: Counting per chromosome ({len(chromosomes)} chromosomes, "
          f"k={','.join(str(k) for k in kmer_specs)}, {config.n_threads} workers)")
    results = count_chromosomes(chromosomes, config, kmer_specs, windows_map,
                                blacklist_map)

    print("Start: Processing counts")
    all_bins = []
    bin_info = []
    counters = ScanCounters()
    for result in results:
        all_bins.extend(result.decoded)
        bin_info.extend(result.bin_info)
        counters += result.counters

    if config.global_mode:
        all_bins = [merge_decoded_counts(all_bins)]

    prepared, motifs_by_k = prepare_decoded_counts(all_bins, config.canonical,
                                                   kmer_specs)

    if config.by_bed is not None:
        print("Start: Reordering counts by original window index in bed file")
        bin_info, prepared = reorder_by_window_index(bin_info, prepared)

    print("Start: Writing counts to disk")
    write_decoded_counts_matrix(prepared, kmer_specs, motifs_by_k,
                                config.output_dir, save_sparse=config.save_sparse)

    if not config.global_mode:
        print("Start: Writing window coordinates to disk")
        write_bins_bed(bin_info, os.path.join(config.output_dir, "bins.bed"))

    print(f"Windows: {len(prepared)}  positions scanned: {counters.total:,}  "
          f"counted: {counters.counted:,}  ambiguous/blacklisted: "
          f"{counters.ambiguous:,}  truncated: {counters.truncated:,}")
    print(f"Elapsed time: {time.time() - start_time:.2f}s")
    return prepared, motifs_by_k


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _int_list(text):
    try:
        return [int(v) for v in text.split(',') if v.strip()]
    except ValueError:
        import argparse
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got '{text}'")


def _str_list(text):
    return [v.strip() for v in text.split(',') if v.strip()]


def _default_threads():
    return int(os.environ.get('SLURM_CPUS_PER_TASK', 1))


def build_parser():
    import argparse
    parser = argparse.ArgumentParser(
        prog="refkmers count",
        description=(
            "Count reference k-mers in genomic windows.\n\n"
            "Outputs (per k):\n"
            "  k<k>_counts.npy          windows x motifs uint64 matrix (default)\n"
            "  k<k>_counts_sparse.npz   COO matrix for scipy.sparse.load_npz (--save-sparse)\n"
            "  k<k>_motifs.txt          motif per matrix column\n"
            "  bins.bed                 chrom, start, end, blacklist overlap (not with --global)\n\n"
            "Example:\n"
            "  refkmers count -r hg38.fa -o out/ -k 3,4 -t 8 --by-size 100000 \\\n"
            "      -b blacklist_1.bed -b blacklist_2.bed"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    core = parser.add_argument_group("Core")
    core.add_argument("-r", "--reference", required=True,
                      help="Reference FASTA (plain or bgzip, indexed or indexable)")
    core.add_argument("-o", "--output-dir", required=True,
                      help="Output directory for results")
    core.add_argument("-k", "--kmer-sizes", type=_int_list, action="extend",
                      required=True,
                      help="K-mer sizes, comma-separated and/or repeated (1..27)")
    core.add_argument("-t", "--n-threads", type=int, default=_default_threads(),
                      help="Worker processes (default: $SLURM_CPUS_PER_TASK or 1)")
    core.add_argument("-c", "--canonical", action="store_true",
                      help="Collapse each k-mer with its reverse complement "
                           "(the lexicographically lowest is kept)")
    core.add_argument("--save-sparse", action="store_true",
                      help="Save counts as a COO sparse matrix (.npz)")

    windows = parser.add_argument_group("Windows (select one)")
    mode = windows.add_mutually_exclusive_group(required=True)
    mode.add_argument("--by-size", type=int, help="Use a fixed window size (bp)")
    mode.add_argument("--by-bed", help="Use a BED file of windows")
    mode.add_argument("--global", dest="global_mode", action="store_true",
                      help="Use a single genome-wide window")

    chroms = parser.add_argument_group("Chromosome selection (select max. one)")
    chrom_mode = chroms.add_mutually_exclusive_group()
    chrom_mode.add_argument("--chromosomes", type=_str_list, action="extend",
                            help="Chromosomes to process, e.g. 'chr1,chr2' "
                                 "(default: chr1..chr22)")
    chrom_mode.add_argument("--chromosomes-file",
                            help="File with chromosome names, one per line")

    filtering = parser.add_argument_group("Filtering")
    filtering.add_argument("-b", "--blacklist", action="append", default=[],
                           help="BED file of blacklisted regions (repeatable)")
    filtering.add_argument("--blacklist-min-size", type=int, default=1,
                           help="Minimum blacklist interval length in bp (default: 1)")
    return parser


def config_from_args(args):
    return CountConfig(
        reference=args.reference,
        output_dir=args.output_dir,
        kmer_sizes=args.kmer_sizes,
        n_threads=args.n_threads,
        by_size=args.by_size,
        by_bed=args.by_bed,
        global_mode=args.global_mode,
        chromosomes=args.chromosomes,
        chromosomes_file=args.chromosomes_file,
        blacklists=args.blacklist,
        blacklist_min_size=args.blacklist_min_size,
        canonical=args.canonical,
        save_sparse=args.save_sparse,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        run(config_from_args(args))
    except RefKmersError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
