"""Write per-k count matrices, motif lists and window coordinates.

For every k, with `prefix` = "k<k>":
  dense   <prefix>_counts.npy          windows x motifs, uint64, row-major
  sparse  <prefix>_counts_sparse.npz   COO arrays row/col/data/shape/format,
                                       loadable with scipy.sparse.load_npz
  both    <prefix>_motifs.txt          motifs in column order, one per line

Nothing is written for a k when there are no windows.
"""

import os

import numpy as np

from .errors import ReferenceIOError
from .npy import array_to_npy, string_scalar_to_npy, write_npy, write_npz

COUNT_DTYPE = '<u8'
INDEX_DTYPE = '<i8'
SPARSE_FORMAT = 'coo'


def _column_index(motifs):
    return {motif: col for col, motif in enumerate(motifs)}


def write_motifs(motifs, path):
    try:
        with open(path, 'w') as f:
            for motif in motifs:
                f.write(f"{motif}\n")
    except OSError as exc:
        raise ReferenceIOError(f"cannot write {path}: {exc}") from exc


def build_dense_matrix(bins, motifs):
    """rows(bins) x columns(motifs) uint64 matrix; missing motifs stay 0."""
    col_of = _column_index(motifs)
    mat = np.zeros((len(bins), len(motifs)), dtype=np.uint64)
    for row, counts in enumerate(bins):
        for motif, cnt in counts.items():
            col = col_of.get(motif)
            if col is not None:
                mat[row, col] = cnt
    return mat


def build_coo_triplets(bins, motifs):
    """Parallel (row, col, data) arrays of the non-zero cells.

    Triplets are emitted row by row with ascending columns.
    """
    col_of = _column_index(motifs)
    rows, cols, vals = [], [], []
    for row, counts in enumerate(bins):
        cells = sorted((col_of[m], c) for m, c in counts.items()
                       if c and m in col_of)
        for col, cnt in cells:
            rows.append(row)
            cols.append(col)
            vals.append(cnt)
    return (np.array(rows, dtype=np.int64),
            np.array(cols, dtype=np.int64),
            np.array(vals, dtype=np.uint64))


def write_category(bins, motifs, prefix, out_dir):
    """Write <prefix>_counts.npy and <prefix>_motifs.txt."""
    if not bins:
        return
    mat = build_dense_matrix(bins, motifs)
    write_npy(os.path.join(out_dir, f"{prefix}_counts.npy"), mat, COUNT_DTYPE)
    write_motifs(motifs, os.path.join(out_dir, f"{prefix}_motifs.txt"))


def write_category_sparse(bins, motifs, prefix, out_dir):
    """Write <prefix>_counts_sparse.npz (COO) and <prefix>_motifs.txt."""
    if not bins:
        return
    row, col, data = build_coo_triplets(bins, motifs)
    members = {
        'row': array_to_npy(row, INDEX_DTYPE),
        'col': array_to_npy(col, INDEX_DTYPE),
        'data': array_to_npy(data, COUNT_DTYPE),
        'shape': array_to_npy([len(bins), len(motifs)], INDEX_DTYPE),
        'format': string_scalar_to_npy(SPARSE_FORMAT),
    }
    write_npz(os.path.join(out_dir, f"{prefix}_counts_sparse.npz"), members)
    write_motifs(motifs, os.path.join(out_dir, f"{prefix}_motifs.txt"))


def write_decoded_counts_matrix(prepared_windows, kmer_specs, motifs_by_k,
                                output_dir, save_sparse=False):
    """Write one matrix (dense or sparse) + motif list per k in `kmer_specs`."""
    for k in kmer_specs:
        bins = [win.get(k, {}) for win in prepared_windows]
        prefix = f"k{k}"
        if save_sparse:
            write_category_sparse(bins, motifs_by_k[k], prefix, output_dir)
        else:
            write_category(bins, motifs_by_k[k], prefix, output_dir)


def write_bins_bed(bin_info, path):
    """Write chrom, start, end, blacklist overlap fraction per window."""
    try:
        with open(path, 'w') as f:
            for chrom, start, end, _, overlap in bin_info:
                f.write(f"{chrom}\t{start}\t{end}\t{overlap}\n")
    except OSError as exc:
        raise ReferenceIOError(f"cannot write {path}: {exc}") from exc
