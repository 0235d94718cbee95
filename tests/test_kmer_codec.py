import random
import tracemalloc

import numpy as np
import pytest

from refkmers.errors import ConfigError
from refkmers.kmer_codec import (MAX_K, Width, build_codes, build_codes_per_k,
                                 build_kmer_specs, choose_width, decode_kmer,
                                 encode_base)


def test_encode_base_lookup():
    assert [encode_base(b) for b in "ACGT"] == [0, 1, 2, 3]
    assert [encode_base(b) for b in "acgt"] == [0, 1, 2, 3]
    assert encode_base("N") == 4
    assert encode_base("X") == 4
    assert encode_base(ord("-")) == 4


def test_choose_width_returns_correct_sentinels():
    width, none, n = choose_width(3)
    assert width is Width.U8
    assert none == 255
    assert n == 254

    assert choose_width(10)[0] is Width.U32
    assert choose_width(26)[0] is Width.U64
    assert choose_width(27)[0] is Width.U64

    for k in range(1, MAX_K + 1):
        width, none, n = choose_width(k)
        assert 5 ** k - 1 <= width.max_value - 2
        assert none == width.max_value
        assert n == width.max_value - 1


def test_choose_width_fails_beyond_64_bits():
    with pytest.raises(ConfigError):
        choose_width(28)


@pytest.mark.parametrize("sizes", [[0], [28], [3, 3], [2, 5, 2]])
def test_build_kmer_specs_rejects_bad_sizes(sizes):
    with pytest.raises(ConfigError):
        build_kmer_specs(sizes)


def test_build_kmer_specs_keeps_request_order():
    specs = build_kmer_specs([5, 1, 3])
    assert list(specs) == [5, 1, 3]
    assert specs[3].dtype == np.uint8


def test_build_and_decode_roundtrip_hardcoded():
    spec = build_kmer_specs([3])[3]
    codes = spec.build_codes(b"ACGTACN")
    decoded = [spec.decode(codes.get(i)) for i in range(len(codes))]
    assert decoded == ["ACG", "CGT", "GTA", "TAC", "NNN", "NNN", "NNN"]
    assert codes.get(4) == spec.sentinel_n
    assert codes.get(5) == spec.sentinel_none
    assert codes.get(6) == spec.sentinel_none


def test_output_length_and_dtype_follow_width():
    specs = build_kmer_specs([1, 4, 10, 14])
    codes_by_k = build_codes_per_k(b"ACGTNACGTA", specs)
    for k, codes in codes_by_k.items():
        assert len(codes) == 10
        assert codes.codes.dtype == specs[k].dtype


def test_k_longer_than_sequence_is_all_sentinel_none():
    spec = build_kmer_specs([5])[5]
    codes = spec.build_codes(b"ACG")
    assert codes.codes.tolist() == [spec.sentinel_none] * 3


def test_empty_sequence():
    spec = build_kmer_specs([2])[2]
    assert len(spec.build_codes(b"")) == 0


def test_lowercase_bases_encode_like_uppercase():
    spec = build_kmer_specs([4])[4]
    upper = spec.build_codes(b"ACGTACGT").codes
    lower = spec.build_codes(b"acgtACgt").codes
    assert np.array_equal(upper, lower)


def test_n_anywhere_in_window_gives_sentinel_n():
    spec = build_kmer_specs([3])[3]
    codes = spec.build_codes(b"AANAAAA").codes.tolist()
    # windows starting at 0, 1, 2 contain the N
    assert codes[:3] == [spec.sentinel_n] * 3
    assert spec.decode(codes[3]) == "AAA"


@pytest.mark.parametrize("k", range(1, MAX_K + 1))
def test_roundtrip_every_k(k):
    rng = random.Random(k)
    seq = "".join(rng.choice("ACGT") for _ in range(80))
    spec = build_kmer_specs([k])[k]
    codes = spec.build_codes(seq)
    for pos in range(len(seq) - k + 1):
        assert spec.decode(codes.get(pos)) == seq[pos:pos + k]
    for pos in range(len(seq) - k + 1, len(seq)):
        assert codes.get(pos) == spec.sentinel_none


def test_all_t_27mer_code():
    spec = build_kmer_specs([27])[27]
    codes = spec.build_codes(b"T" * 27)
    # every digit is 3: 3 * (5^26 + ... + 1)
    assert codes.get(0) == 3 * (5 ** 27 - 1) // 4
    assert spec.decode(codes.get(0)) == "T" * 27


def test_encode_single_motif():
    spec = build_kmer_specs([3])[3]
    assert spec.encode("ACG") == 0 * 25 + 1 * 5 + 2
    assert spec.encode("ANG") == spec.sentinel_n
    assert spec.decode(spec.encode("TGC")) == "TGC"


def test_decode_sentinels_are_all_n():
    assert decode_kmer(255, 4, 255, 254) == "NNNN"
    assert decode_kmer(254, 4, 255, 254) == "NNNN"


def test_build_codes_accepts_numpy_input():
    arr = np.frombuffer(b"ACGT", dtype=np.uint8)
    codes = build_codes(arr, 2, 255, 254, dtype=np.uint8)
    assert codes.tolist() == [1, 7, 13, 255]


@pytest.mark.parametrize("chunk_size", [1, 3, 7, 64])
def test_chunked_encoding_matches_single_block(chunk_size):
    rng = random.Random(chunk_size)
    seq = "".join(rng.choice("ACGTN") for _ in range(50)).encode()
    spec = build_kmer_specs([5])[5]
    whole = build_codes(seq, 5, spec.sentinel_none, spec.sentinel_n, dtype=spec.dtype)
    chunked = build_codes(seq, 5, spec.sentinel_none, spec.sentinel_n,
                          dtype=spec.dtype, chunk_size=chunk_size)
    assert chunked.dtype == spec.dtype
    assert np.array_equal(whole, chunked)


def test_encoding_scratch_memory_is_bounded():
    seq = bytearray(b"ACGTN" * 200_000)
    spec = build_kmer_specs([3])[3]
    tracemalloc.start()
    try:
        out = build_codes(seq, 3, spec.sentinel_none, spec.sentinel_n,
                          dtype=spec.dtype, chunk_size=1 << 16)
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    assert out.dtype == np.uint8
    assert peak < 2 * out.nbytes
