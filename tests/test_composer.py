"""
Tests for artifact composition with the standard codecs
"""

import bz2
import gzip
import lzma

import pytest

from artifact.composer import (
    artifact_path,
    compose_document,
    compose_plan,
    member_ranges,
    verify_artifact,
)
from core.allocation import AllocationEntry, BudgetPlan, EntryKind
from core.codecs import Algorithm, AlgorithmLevel, CodecAdapter
from core.documents import Document
from core.hull import HullPoint
from core.metrics import MetricSample


def _point(doc_id, algorithm, level):
    return HullPoint(sample=MetricSample(doc_id, AlgorithmLevel(algorithm, level), 1.0, 1))


@pytest.fixture
def document(temp_dir, text_bytes):
    path = temp_dir / "app.log"
    path.write_bytes(text_bytes(50_000))
    return Document.from_path(path)


class TestMemberRanges:
    """Test how entries map to byte ranges."""

    def test_store(self):
        assert member_ranges(AllocationEntry.store("d", 100)) == []

    def test_single(self):
        entry = AllocationEntry.single("d", 100, _point("d", Algorithm.GZIP, 6))
        assert [(s, e) for s, e, _ in member_ranges(entry)] == [(0, 100)]

    def test_split(self):
        lower = _point("d", Algorithm.GZIP, 1)
        upper = _point("d", Algorithm.GZIP, 9)
        entry = AllocationEntry.split("d", 1000, lower, upper, 0.25)
        ranges = member_ranges(entry)

        assert [(s, e) for s, e, _ in ranges] == [(0, 250), (250, 1000)]
        assert ranges[0][2].level == 1
        assert ranges[1][2].level == 9

    def test_split_rounding_to_empty_part(self):
        lower = _point("d", Algorithm.GZIP, 1)
        upper = _point("d", Algorithm.GZIP, 9)
        entry = AllocationEntry.split("d", 3, lower, upper, 0.1)
        ranges = member_ranges(entry)

        assert len(ranges) == 1
        assert ranges[0][2].level == 9


class TestComposeDocument:
    """Test single-document composition."""

    @pytest.mark.parametrize("algorithm,low,high,decoder", [
        (Algorithm.GZIP, 1, 9, gzip.decompress),
        (Algorithm.BZIP2, 1, 9, bz2.decompress),
        (Algorithm.XZ, 0, 6, lzma.decompress),
    ])
    def test_split_decodes_with_standard_decoder(self, document, algorithm, low, high, decoder):
        entry = AllocationEntry.split(
            document.doc_id,
            document.size,
            _point(document.doc_id, algorithm, low),
            _point(document.doc_id, algorithm, high),
            0.4,
        )
        artifact, payload = compose_document(document, entry, CodecAdapter())

        assert decoder(payload) == document.read_all()
        assert len(artifact.members) == 2
        assert artifact.members[0].end == 20_000
        assert artifact.compressed_size == len(payload)

    def test_zstd_split(self, document):
        entry = AllocationEntry.split(
            document.doc_id,
            document.size,
            _point(document.doc_id, Algorithm.ZSTD, 1),
            _point(document.doc_id, Algorithm.ZSTD, 19),
            0.7,
        )
        adapter = CodecAdapter()
        _, payload = compose_document(document, entry, adapter)

        assert adapter.decompress(payload, Algorithm.ZSTD) == document.read_all()

    def test_store_is_raw_copy(self, document):
        artifact, payload = compose_document(document, AllocationEntry.store(document.doc_id, document.size))

        assert payload == document.read_all()
        assert artifact.kind == EntryKind.STORE
        assert artifact.compressed_size == document.size
        assert artifact.elapsed_s == 0.0


class TestComposePlan:
    """Test writing a whole plan."""

    def test_writes_one_file_per_document(self, temp_dir, text_bytes):
        docs = []
        for name in ["a.log", "b.log", "c.log"]:
            path = temp_dir / name
            path.write_bytes(text_bytes(8_000))
            docs.append(Document.from_path(path))

        plan = BudgetPlan(budget=1.0)
        plan.entries["a.log"] = AllocationEntry.single("a.log", docs[0].size, _point("a.log", Algorithm.XZ, 3))
        plan.entries["b.log"] = AllocationEntry.split(
            "b.log", docs[1].size,
            _point("b.log", Algorithm.BZIP2, 1), _point("b.log", Algorithm.BZIP2, 9), 0.5,
        )
        plan.entries["c.log"] = AllocationEntry.store("c.log", docs[2].size)

        out = temp_dir / "out"
        result = compose_plan(docs, plan, out, max_workers=2, show_progress=False)

        assert result.errors == {}
        assert list(result.artifacts) == ["a.log", "b.log", "c.log"]
        assert (out / "a.log.xz").exists()
        assert (out / "b.log.bz2").exists()
        assert (out / "c.log").read_bytes() == docs[2].read_all()
        assert result.total_size == sum((out / n).stat().st_size for n in ["a.log.xz", "b.log.bz2", "c.log"])

        for doc in docs:
            artifact = result.artifacts[doc.doc_id]
            assert verify_artifact(artifact.path, doc, artifact.algorithm)

    def test_refuses_to_overwrite_source(self, document, temp_dir):
        plan = BudgetPlan(budget=1.0)
        plan.entries[document.doc_id] = AllocationEntry.store(document.doc_id, document.size)

        result = compose_plan([document], plan, temp_dir, show_progress=False)

        assert document.doc_id in result.errors
        assert result.artifacts == {}
        assert document.path.read_bytes()

    def test_artifact_path(self, document, temp_dir):
        entry = AllocationEntry.single(document.doc_id, document.size, _point(document.doc_id, Algorithm.ZSTD, 3))
        assert artifact_path(temp_dir, document, entry).name == "app.log.zst"


class TestVerifyArtifact:
    """Test artifact verification."""

    def test_detects_mismatch(self, document, temp_dir):
        bad = temp_dir / "bad.gz"
        bad.write_bytes(gzip.compress(b"something else"))

        assert verify_artifact(bad, document, Algorithm.GZIP) is False

    def test_stored_copy(self, document, temp_dir):
        copy = temp_dir / "copy"
        copy.write_bytes(document.read_all())

        assert verify_artifact(copy, document, None) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
