"""Radix-5 k-mer packing: encode reference positions as integers per k.

Every base maps to a base-5 digit (A=0, C=1, G=2, T=3, anything else=4).
A k-mer is the base-5 number formed by its k digits, leftmost base in the
most significant place.  Codes are stored in the narrowest unsigned width
that leaves room for two sentinels at the top of the range:

  sentinel_none = max(width)      no full k-mer starts here (chromosome tail)
  sentinel_n    = max(width) - 1  the k-mer contains a non-ACGT base

Example (k=3, uint8):
  "ACGTACN" -> [ACG, CGT, GTA, TAC, 254, 255, 255]
"""

import enum
from dataclasses import dataclass

import numpy as np

from .errors import ConfigError

MIN_K = 1
MAX_K = 27

BASES = 'ACGTN'
N_DIGIT = 4

# positions encoded per block; bounds scratch memory of build_codes
ENCODE_CHUNK = 1 << 22

# byte -> radix-5 digit; everything that is not A/C/G/T (any case) is 4
BASE_LUT = np.full(256, N_DIGIT, dtype=np.uint8)
for _digit, _base in enumerate('ACGT'):
    BASE_LUT[ord(_base)] = _digit
    BASE_LUT[ord(_base.lower())] = _digit


class Width(enum.Enum):
    """Storage width of a per-position code array."""
    U8 = np.uint8
    U16 = np.uint16
    U32 = np.uint32
    U64 = np.uint64

    @property
    def dtype(self):
        return np.dtype(self.value)

    @property
    def max_value(self):
        return int(np.iinfo(self.value).max)

    @property
    def bits(self):
        return self.dtype.itemsize * 8


def choose_width(k):
    """Return (width, sentinel_none, sentinel_n) for the narrowest width that fits k.

    The highest real code 5^k - 1 must be <= max(width) - 2.
    """
    max_real_code = 5 ** k - 1
    for width in Width:
        if max_real_code <= width.max_value - 2:
            return width, width.max_value, width.max_value - 1
    raise ConfigError(
        f"k={k} is too large to fit in 64 bits while keeping sentinel space")


@dataclass(frozen=True)
class KmerSpec:
    """Encoder/decoder for one k-mer length."""
    k: int
    width: Width
    sentinel_none: int
    sentinel_n: int

    @property
    def dtype(self):
        return self.width.dtype

    @property
    def n_codes(self):
        """Size of the real code space (5^k, including codes with N digits)."""
        return 5 ** self.k

    def is_sentinel(self, code):
        return code == self.sentinel_none or code == self.sentinel_n

    def build_codes(self, seq):
        """Per-position codes for `seq`, stored in this spec's width."""
        return KmerCodes(self, build_codes(seq, self.k, self.sentinel_none,
                                           self.sentinel_n, dtype=self.dtype))

    def decode(self, code):
        return decode_kmer(code, self.k, self.sentinel_none, self.sentinel_n)

    def encode(self, motif):
        return encode_kmer(motif, self.k, self.sentinel_n)


def build_kmer_specs(kmer_sizes):
    """Build one KmerSpec per requested k, keyed by k.

    Raises ConfigError for k outside 1..27, duplicates, or an unfittable width.
    Keys keep the order of `kmer_sizes`.
    """
    specs = {}
    for k in kmer_sizes:
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
            raise ConfigError(f"Illegal k-mer size {k!r}. Must be an integer.")
        k = int(k)
        if k < MIN_K:
            raise ConfigError(f"Illegal k-mer size {k}. Must be positive.")
        if k > MAX_K:
            raise ConfigError(
                f"k-mer size {k} is too large. Highest allowed k is {MAX_K}")
        if k in specs:
            raise ConfigError(f"Duplicate k-mer size {k}")
        width, sentinel_none, sentinel_n = choose_width(k)
        specs[k] = KmerSpec(k=k, width=width, sentinel_none=sentinel_none,
                            sentinel_n=sentinel_n)
    return specs


class KmerCodes:
    """A per-position code array tagged with the spec that produced it.

    The backing array uses the spec's narrow dtype; `get` and `window`
    widen to Python int / uint64 so downstream code never branches on width.
    """

    __slots__ = ('spec', 'codes')

    def __init__(self, spec, codes):
        if codes.dtype != spec.dtype:
            raise ValueError(f"code array dtype {codes.dtype} does not match "
                             f"width {spec.width.name} for k={spec.k}")
        self.spec = spec
        self.codes = codes

    def __len__(self):
        return len(self.codes)

    @property
    def width(self):
        return self.spec.width

    @property
    def nbytes(self):
        return self.codes.nbytes

    def get(self, idx):
        return int(self.codes[idx])

    def window(self, start, end):
        return self.codes[start:end].astype(np.uint64, copy=False)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_base(b):
    """Radix-5 digit for a single base (str of length 1 or int byte value)."""
    if isinstance(b, str):
        b = ord(b)
    return int(BASE_LUT[b])


def _sequence_bytes(seq):
    """uint8 view of bytes, bytearray, str or a uint8 array (buffers are not copied)."""
    if isinstance(seq, str):
        seq = seq.encode('ascii', errors='replace')
    if isinstance(seq, np.ndarray):
        return seq.astype(np.uint8, copy=False)
    return np.frombuffer(seq, dtype=np.uint8)


def sequence_digits(seq):
    """Map a sequence (bytes, bytearray, str or uint8 array) to radix-5 digits."""
    return BASE_LUT[_sequence_bytes(seq)]


def build_codes(seq, k, sentinel_none, sentinel_n, dtype=np.uint64,
                chunk_size=ENCODE_CHUNK):
    """Build radix-5 codes for every left-aligned k-mer in `seq`.

    Codes are written straight into the output array, `chunk_size`
    positions at a time.  Each of the k passes over a chunk shifts every
    window left by one digit (x5) and adds the next incoming digit, so
    position i ends up holding d[i]*5^(k-1) + ... + d[i+k-1].  Partial values
    never exceed 5^k - 1, so they fit the output dtype.  A boolean flag per
    position records whether any incoming digit was N.

    Scratch memory is a few bytes per chunk position, independent of the
    sequence length.  The result always has len(seq) entries; the trailing
    k-1 positions (or all positions when k > len(seq)) are `sentinel_none`.
    """
    raw = _sequence_bytes(seq)
    chrom_len = len(raw)
    dtype = np.dtype(dtype)
    out = np.full(chrom_len, sentinel_none, dtype=dtype)
    if k > chrom_len:
        return out

    n_windows = chrom_len - k + 1
    five = dtype.type(5)
    for start in range(0, n_windows, chunk_size):
        stop = min(start + chunk_size, n_windows)
        n = stop - start
        digits = BASE_LUT[raw[start:stop + k - 1]]
        code = out[start:stop]
        code[:] = 0
        has_n = np.zeros(n, dtype=bool)
        for offset in range(k):
            incoming = digits[offset:offset + n]
            code *= five
            code += incoming
            has_n |= incoming == N_DIGIT
        code[has_n] = sentinel_n
    return out


def build_codes_per_k(seq, specs):
    """Build a KmerCodes for every spec, keyed by k."""
    return {k: spec.build_codes(seq) for k, spec in specs.items()}


def encode_kmer(motif, k, sentinel_n):
    """Encode a single k-letter motif; any non-ACGT letter gives `sentinel_n`."""
    if len(motif) != k:
        raise ValueError(f"motif {motif!r} does not have length {k}")
    val = 0
    for base in motif:
        digit = encode_base(base)
        if digit == N_DIGIT:
            return sentinel_n
        val = val * 5 + digit
    return val


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_kmer(code, k, sentinel_none, sentinel_n):
    """Decode a code to its k-mer string, 'N' * k for either sentinel."""
    code = int(code)
    if code == sentinel_none or code == sentinel_n:
        return 'N' * k
    bases = []
    for _ in range(k):
        bases.append(BASES[code % 5])
        code //= 5
    return ''.join(reversed(bases))
