"""Reference sequence access through pysam.

The reference is a FASTA file, plain or bgzip-compressed.  pysam builds the
.fai index on first open when it is missing (this needs write access next
to the FASTA).  Sequences are returned as mutable bytes so that blacklist
masking can work in place.
"""

import pysam

from .errors import InputFormatError, ReferenceIOError


def open_reference(ref_path):
    try:
        return pysam.FastaFile(str(ref_path))
    except (OSError, ValueError) as exc:
        raise ReferenceIOError(f"cannot open reference {ref_path}: {exc}") from exc


def list_chromosomes(ref_path):
    """Chromosome names in reference order."""
    with open_reference(ref_path) as fasta:
        return list(fasta.references)


def reference_lengths(ref_path):
    """{chrom: length} for every sequence in the reference."""
    with open_reference(ref_path) as fasta:
        return dict(zip(fasta.references, fasta.lengths))


def read_seq(ref_path, chrom):
    """Return the full sequence of `chrom` as a bytearray (case preserved)."""
    with open_reference(ref_path) as fasta:
        if chrom not in fasta.references:
            raise InputFormatError(
                f"chromosome '{chrom}' not found in reference {ref_path}")
        return bytearray(fasta.fetch(chrom).encode('ascii'))
