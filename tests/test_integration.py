"""
End-to-end tests against a real libbwa and the two-contig test reference
(PhiX + E. coli ``chr``), indexed with ``bwa index``.

Set BWALIGN_LIBBWA to the shared library and BWALIGN_TEST_REFERENCE to the
indexed FASTA to run them.
"""
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from bwalign import AlignmentSession, ReferenceIndex, ReferenceLoadError
from bwalign.native.bindings import LIBRARY_ENV_VAR

REFERENCE = os.environ.get("BWALIGN_TEST_REFERENCE")

pytestmark = pytest.mark.skipif(
    not (REFERENCE and os.environ.get(LIBRARY_ENV_VAR)),
    reason=f"needs {LIBRARY_ENV_VAR} and BWALIGN_TEST_REFERENCE",
)

SIMPLE = (
    b"@chr_727436_727956_3:0:0_1:0:0_0/1",
    b"GATGGCTGCGCAAGGGTTCTTACTGATCGCCACGTTTTTACTGGTGTTAATGGTGCTGGCGCGTCCTTTAGGCAGCGGGCTGGCGCGGCTGATTAATGACATTCCTCTTCCCGGTACAACGGGCGTTGAGCGCGAACTTTTTCGCGCACT",
    b"2" * 150,
    b"TGCTGCGTAGCAGATCGACCCAGGCATTCCCTAGCGTGCTCATGCTCTGGCTGGTAAACGCACGGATGAGGGCAAAAATCACCGCAATCCCGCTGGCGGCAGAAAGAAAGTTTTGCACCGTTAAGCCCGCCATCTGGCTGAAATAGCTCA",
    b"2" * 150,
)

SPLIT = (
    b"@chr_1561275_1561756_1:0:0_2:0:0_5c/1",
    b"GCATCGATAAGCAGGTCAAATTCTCCCGTCATTATCACCTCTGCTACTTAAATTTCCCGCTTTATAAGCCGATTACGGCCTGGCATTACCCTATCCATAATTTAGGTGGGATGCCCGGTGCGTGGTTGGCAGATCCGCTGTTCTTTATTT",
    b"2" * 150,
    b"TCATCGACCCAGGTATCATCGCGACGGGTACGATTACTGGCGAAGGTGAGAATGTTTAAAATCCAGCCGCCGAGTTTTTCAGCAATGGTCACCCATGACCAACCGGTGAACAACGTGAGGGCCGCTGCCCAAACGCATAGCAGCGCAATA",
    b"2" * 150,
)


@pytest.fixture(scope="module")
def aligner():
    session = AlignmentSession.from_path(REFERENCE)
    yield session
    session.close()


def test_header():
    with ReferenceIndex.open(REFERENCE) as reference:
        assert reference.header_text() == "@SQ\tSN:PhiX\tLN:5386\n@SQ\tSN:chr\tLN:4639675"


def test_simple_align(aligner):
    r1, r2 = aligner.align_read_pair(*SIMPLE)
    assert len(r1) == 1 and len(r2) == 1
    assert r1[0].reference_start == 727806
    assert r2[0].reference_start == 727435


def test_split_align(aligner):
    r1, r2 = aligner.align_read_pair(*SPLIT)
    assert len(r1) == 2
    assert r1[0].reference_start == 931375
    assert r1[1].reference_start == 932605
    assert r2[0].reference_start == 932937


def test_inputs_unchanged(aligner):
    name, seq1, qual1, seq2, qual2 = SIMPLE
    buffers = [bytearray(b) for b in (seq1, qual1, seq2, qual2)]
    aligner.align_read_pair(name, *buffers)
    assert [bytes(b) for b in buffers] == [seq1, qual1, seq2, qual2]


def test_deterministic(aligner):
    first = aligner.align_read_pair(*SIMPLE)
    second = aligner.align_read_pair(*SIMPLE)
    for a, b in zip(first, second):
        assert [(r.reference_start, r.flag, r.query_sequence) for r in a] == \
               [(r.reference_start, r.flag, r.query_sequence) for r in b]


def test_load_failure(tmp_path):
    missing = tmp_path / "not_indexed.fa"
    with pytest.raises(ReferenceLoadError) as excinfo:
        ReferenceIndex.open(missing)
    assert excinfo.value.path == str(missing)


def test_concurrent_calls(aligner):
    expected = {
        "simple": aligner.align_read_pair(*SIMPLE),
        "split": aligner.align_read_pair(*SPLIT),
    }
    jobs = ["simple", "split"] * 50

    def run(kind):
        return kind, aligner.align_read_pair(*(SIMPLE if kind == "simple" else SPLIT))

    with ThreadPoolExecutor(max_workers=8) as pool:
        for kind, (r1, r2) in pool.map(run, jobs):
            e1, e2 = expected[kind]
            assert [r.to_string() for r in r1] == [r.to_string() for r in e1]
            assert [r.to_string() for r in r2] == [r.to_string() for r in e2]
