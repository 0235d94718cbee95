import numpy as np
import pytest

from refkmers.intervals import (BLACKLIST_BYTE, compute_blacklist_overlap,
                                is_full, mask_sequence, merge_intervals)
from refkmers.kmer_codec import build_kmer_specs


# ---------------------------------------------------------------------------
# merge_intervals
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("ivs, expected", [
    ([], []),
    ([(100, 200)], [(100, 200)]),
    ([(10, 20), (30, 40), (50, 60)], [(10, 20), (30, 40), (50, 60)]),
    ([(10, 25), (20, 40), (50, 55)], [(10, 40), (50, 55)]),
    ([(0, 10), (10, 20), (20, 30)], [(0, 30)]),
    ([(1, 5), (4, 8), (7, 12)], [(1, 12)]),
    ([(5, 6), (10, 100), (100, 101), (150, 160), (155, 156), (200, 201)],
     [(5, 6), (10, 101), (150, 160), (200, 201)]),
])
def test_merge_intervals(ivs, expected):
    assert merge_intervals(ivs) == expected


def test_merge_intervals_unsorted_input():
    assert merge_intervals([(50, 55), (20, 40), (10, 25)]) == [(10, 40), (50, 55)]


def test_merge_preserves_covered_positions():
    ivs = [(3, 9), (40, 41), (0, 4), (8, 12), (30, 35), (34, 36)]
    covered = {p for s, e in ivs for p in range(s, e)}
    merged = merge_intervals(ivs)
    assert {p for s, e in merged for p in range(s, e)} == covered
    for (_, e1), (s2, _) in zip(merged, merged[1:]):
        assert e1 < s2


# ---------------------------------------------------------------------------
# mask_sequence
# ---------------------------------------------------------------------------

def test_mask_simple():
    seq = bytearray(b"ACGTACGT")
    mask_sequence(seq, [(2, 4), (6, 8)])
    assert seq == bytearray(b"ACXXACXX")


def test_mask_past_end_is_clipped():
    seq = bytearray(b"AAAA")
    mask_sequence(seq, [(2, 10), (20, 30)])
    assert seq == bytearray(b"AAXX")


def test_mask_no_intervals_no_change():
    seq = bytearray(b"TGCA")
    mask_sequence(seq, [])
    assert seq == bytearray(b"TGCA")


def test_mask_numpy_array():
    arr = np.frombuffer(b"GGGG", dtype=np.uint8).copy()
    mask_sequence(arr, [(0, 4)])
    assert (arr == BLACKLIST_BYTE).all()


def test_masked_bases_become_sentinel_n():
    seq = bytearray(b"ACGTACGT")
    mask_sequence(seq, [(2, 4), (6, 8)])
    for k in (1, 2, 3):
        spec = build_kmer_specs([k])[k]
        codes = spec.build_codes(seq)
        for pos in range(len(seq) - k + 1):
            hits_mask = any(p in (2, 3, 6, 7) for p in range(pos, pos + k))
            if hits_mask:
                assert codes.get(pos) == spec.sentinel_n
            else:
                assert codes.get(pos) != spec.sentinel_n


# ---------------------------------------------------------------------------
# compute_blacklist_overlap / is_full
# ---------------------------------------------------------------------------

def test_overlap_fraction_cases():
    ivs = [(100, 200), (300, 310)]
    ptr = [0]
    assert compute_blacklist_overlap(ivs, 0, 50, ptr) == 0.0
    assert compute_blacklist_overlap(ivs, 120, 150, ptr) == 1.0
    assert compute_blacklist_overlap(ivs, 150, 250, ptr) == 0.5
    assert compute_blacklist_overlap(ivs, 250, 350, ptr) == pytest.approx(0.1)
    assert compute_blacklist_overlap(ivs, 400, 500, ptr) == 0.0


def test_overlap_spanning_several_intervals():
    ivs = [(0, 10), (20, 30), (40, 50)]
    # 5 + 10 + 5 bp of [5, 45) are covered
    assert compute_blacklist_overlap(ivs, 5, 45, [0]) == pytest.approx(20 / 40)


def test_overlap_pointer_advances():
    ivs = [(0, 10), (20, 30)]
    ptr = [0]
    compute_blacklist_overlap(ivs, 15, 18, ptr)
    assert ptr == [1]


def test_overlap_empty_window():
    assert compute_blacklist_overlap([(0, 10)], 5, 5, [0]) == 0.0


def test_is_full():
    ivs = [(10, 20), (30, 60)]
    ptr = [0]
    assert not is_full(ivs, 0, 5, ptr)
    assert is_full(ivs, 12, 18, ptr)
    assert not is_full(ivs, 18, 32, ptr)
    assert is_full(ivs, 30, 60, ptr)
    assert not is_full(ivs, 70, 80, ptr)
