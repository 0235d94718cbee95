import pytest

from refkmers.errors import InputFormatError, ReferenceIOError
from refkmers.reference import list_chromosomes, read_seq, reference_lengths


@pytest.fixture
def reference(tmp_path):
    path = tmp_path / "ref.fa"
    path.write_text(">chrB\nACGTN\nacgt\n>chrA\nGG\n")
    return str(path)


def test_list_chromosomes_keeps_reference_order(reference):
    assert list_chromosomes(reference) == ["chrB", "chrA"]


def test_reference_lengths(reference):
    assert reference_lengths(reference) == {"chrB": 9, "chrA": 2}


def test_read_seq_is_mutable_and_case_preserving(reference):
    seq = read_seq(reference, "chrB")
    assert isinstance(seq, bytearray)
    assert seq == bytearray(b"ACGTNacgt")
    seq[0] = ord("X")


def test_read_seq_missing_chromosome(reference):
    with pytest.raises(InputFormatError, match="chrZ"):
        read_seq(reference, "chrZ")


def test_unreadable_reference(tmp_path):
    with pytest.raises(ReferenceIOError):
        list_chromosomes(str(tmp_path / "missing.fa"))
