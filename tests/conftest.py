import ctypes
import threading
import time

import pytest

from bwalign.native.bindings import BntAnn1, BntSeq, BwaIdx, MemOpt
from bwalign.alignment import AlignmentParameters, AlignmentSession, PairedEndStatistics, ReferenceIndex

TEST_CONTIGS = [("PhiX", 5386), ("chr", 4639675)]
TEST_REFERENCE = "tests/test_ref.fa"

# bwa's 2-bit encoding, applied in place to the input sequence
NT4 = bytes.maketrans(b"ACGTacgt", b"\x00\x01\x02\x03\x00\x01\x02\x03")


def sam_line(name, flag, contig, pos, seq, qual, mate_pos=0):
    qual = qual if qual else b"*"
    return b"\t".join([
        name, str(flag).encode(), contig.encode(), str(pos).encode(), b"60",
        f"{len(seq)}M".encode() if contig != "*" else b"*",
        b"=" if contig != "*" else b"*", str(mate_pos).encode(), b"0", seq, qual,
    ])


def paired_responder(name, seq1, qual1, seq2, qual2):
    """Map read 1 to chr:1001 and read 2 to chr:1201 (1-based)."""
    return (
        sam_line(name, 99, "chr", 1001, seq1, qual1, 1201) + b"\n",
        sam_line(name, 147, "chr", 1201, seq2, qual2, 1001) + b"\n",
    )


class FakeBwaLibrary:
    """
    Pure-Python stand-in for libbwa.

    Builds real ctypes index structures, rewrites input sequences in place
    and hands back ctypes-allocated SAM buffers that must be freed exactly once.
    """

    def __init__(self, contigs=None, responder=paired_responder, delay=0.0):
        self.indexes = {TEST_REFERENCE: list(contigs or TEST_CONTIGS)}
        self.responder = responder
        self.delay = delay
        self.destroyed = []
        self.freed = []
        self.calls = []
        self.fill_scmat_calls = []
        self._allocated = {}
        self._keepalive = []
        self._lock = threading.Lock()

    # -- parameters --
    def mem_opt_init(self):
        opt = MemOpt(a=1, b=4, o_del=6, e_del=1, o_ins=6, e_ins=1,
                     pen_unpaired=17, pen_clip5=5, pen_clip3=5, w=100, T=30, flag=0)
        self.fill_scmat(1, 4, opt)
        self.fill_scmat_calls.clear()
        return opt

    def fill_scmat(self, a, b, opt):
        self.fill_scmat_calls.append((a, b))
        k = 0
        for i in range(4):
            for j in range(4):
                opt.mat[k] = a if i == j else -b
                k += 1
            opt.mat[k] = -1
            k += 1
        for _ in range(5):
            opt.mat[k] = -1
            k += 1

    # -- index --
    def idx_load(self, path, which):
        contigs = self.indexes.get(path)
        if contigs is None:
            return None
        anns = (BntAnn1 * len(contigs))()
        for i, (name, length) in enumerate(contigs):
            anns[i].name = name.encode()
            anns[i].len = length
        bns = BntSeq(n_seqs=len(contigs), anns=ctypes.cast(anns, ctypes.POINTER(BntAnn1)))
        idx = BwaIdx(bns=ctypes.pointer(bns))
        self._keepalive.append((anns, bns, idx))
        return ctypes.pointer(idx)

    def idx_destroy(self, idx):
        self.destroyed.append(ctypes.addressof(idx.contents))

    # -- alignment --
    def process_seq_pe(self, opt, idx, reads, pes):
        assert ctypes.addressof(idx.contents) not in self.destroyed
        inputs = []
        for read in reads:
            seq = ctypes.string_at(read.seq, read.l_seq)
            qual = ctypes.string_at(read.qual, read.l_seq) if read.qual else None
            inputs.append((seq, qual))
        name = ctypes.string_at(reads[0].name)
        name_ptrs = [ctypes.cast(read.name, ctypes.c_void_p).value for read in reads]

        with self._lock:
            self.calls.append({
                "name": name,
                "name_ptrs": name_ptrs,
                "inputs": inputs,
                "a": opt.a,
                "flag": opt.flag,
                "fr": (pes[1].failed, pes[1].low, pes[1].high, pes[1].avg, pes[1].std),
            })

        texts = self.responder(name, inputs[0][0], inputs[0][1], inputs[1][0], inputs[1][1])
        if self.delay:
            time.sleep(self.delay)

        for read, (seq, qual), text in zip(reads, inputs, texts):
            ctypes.memmove(read.seq, seq.translate(NT4), read.l_seq)
            buf = ctypes.create_string_buffer(text)
            with self._lock:
                self._allocated[ctypes.addressof(buf)] = buf
            read.sam = ctypes.addressof(buf)

    def free(self, ptr):
        with self._lock:
            if ptr not in self._allocated:
                raise AssertionError(f"free() of unknown or already freed pointer {ptr:#x}")
            del self._allocated[ptr]
            self.freed.append(ptr)

    @property
    def outstanding(self):
        return len(self._allocated)


@pytest.fixture
def fake_library():
    return FakeBwaLibrary()


@pytest.fixture
def reference(fake_library):
    ref = ReferenceIndex.open(TEST_REFERENCE, library=fake_library)
    yield ref
    if not ref.closed:
        ref.close()


@pytest.fixture
def session(fake_library, reference):
    return AlignmentSession(
        reference,
        AlignmentParameters.default(fake_library),
        PairedEndStatistics.default(),
    )
