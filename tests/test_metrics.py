"""
Tests for metric acquisition (exact and estimated)
"""

import pytest

from core.codecs import Algorithm, AlgorithmLevel
from core.documents import Document
from core.metrics import (
    EstimationConfig,
    FailureKind,
    MetricArena,
    MetricSample,
    acquire_metrics,
    choose_block_offsets,
    measure_estimated,
    measure_exact,
)

GZIP_1 = AlgorithmLevel(Algorithm.GZIP, 1)
GZIP_6 = AlgorithmLevel(Algorithm.GZIP, 6)
GZIP_9 = AlgorithmLevel(Algorithm.GZIP, 9)


@pytest.fixture
def big_document(temp_dir, random_bytes):
    path = temp_dir / "big.bin"
    path.write_bytes(random_bytes(1_000_000))
    return Document.from_path(path)


class TestEstimationConfig:
    """Test EstimationConfig validation."""

    def test_defaults(self):
        config = EstimationConfig()
        assert config.block_count == 10
        assert config.block_ratio == 0.01
        assert config.sample_ratio == pytest.approx(0.1)

    def test_invalid(self):
        with pytest.raises(ValueError):
            EstimationConfig(block_count=0)
        with pytest.raises(ValueError):
            EstimationConfig(block_ratio=0.0)
        with pytest.raises(ValueError):
            EstimationConfig(block_ratio=1.5)

    def test_to_dict(self):
        d = EstimationConfig(block_count=4, block_ratio=0.05, random=True, seed=7).to_dict()
        assert d["block_count"] == 4
        assert d["random"] is True
        assert d["seed"] == 7
        assert d["sample_ratio"] == pytest.approx(0.2)


class TestBlockOffsets:
    """Test block placement."""

    def test_evenly_spaced(self):
        offsets = choose_block_offsets(1_000_000, 10_000, 10)

        assert len(offsets) == 10
        assert offsets[0] == 0
        assert offsets[-1] == 990_000
        assert all(o % 10_000 == 0 for o in offsets)
        assert offsets == sorted(set(offsets))

    def test_random_is_seeded(self):
        a = choose_block_offsets(1_000_000, 10_000, 10, random=True, seed=42)
        b = choose_block_offsets(1_000_000, 10_000, 10, random=True, seed=42)

        assert a == b
        assert len(set(a)) == 10
        assert all(o % 10_000 == 0 and o + 10_000 <= 1_000_000 for o in a)

    def test_fewer_slots_than_blocks(self):
        assert choose_block_offsets(25, 10, 5) == [0, 10]


class TestMeasure:
    """Test single measurements with a scripted adapter."""

    def test_exact(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        sample = measure_exact(big_document, GZIP_6, adapter)

        assert sample.estimated is False
        assert sample.sample_ratio == 1.0
        assert sample.compressed_size == 400_000
        assert sample.elapsed_s == pytest.approx(0.03)

    def test_estimated_extrapolates_by_ten(self, big_document, make_adapter, gzip_profile):
        """10 blocks of 1% sample 10% of the document; results are scaled by 10."""
        adapter = make_adapter(gzip_profile)
        sample = measure_estimated(big_document, GZIP_6, adapter, EstimationConfig(block_count=10, block_ratio=0.01))

        assert sample.estimated is True
        assert sample.sample_ratio == pytest.approx(0.1)
        assert sample.compressed_size == 400_000
        assert sample.elapsed_s == pytest.approx(0.03)
        assert len(adapter.calls) == 10
        assert all(length == 10_000 for _, length, _ in adapter.calls)

    def test_estimated_parallel_blocks(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        config = EstimationConfig(parallel_blocks=True)
        sample = measure_estimated(big_document, GZIP_1, adapter, config)

        assert sample.compressed_size == 500_000
        assert len(adapter.calls) == 10

    def test_full_coverage_falls_back_to_exact(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        sample = measure_estimated(big_document, GZIP_6, adapter, EstimationConfig(block_count=10, block_ratio=0.1))

        assert sample.estimated is False
        assert len(adapter.calls) == 1


class TestMetricArena:
    """Test the write-once result store."""

    def test_write_once(self):
        arena = MetricArena()
        key = ("doc", GZIP_1)
        sample = MetricSample("doc", GZIP_1, 1.0, 10)
        arena.put(key, sample)

        assert arena.get(key) is sample
        assert len(arena) == 1
        with pytest.raises(KeyError):
            arena.put(key, sample)


class TestAcquireMetrics:
    """Test the parallel acquisition phase."""

    def test_all_pairs_measured(self, sample_documents, make_adapter, gzip_profile):
        from core.documents import register_documents

        documents, _ = register_documents(sample_documents)
        adapter = make_adapter(gzip_profile)
        result = acquire_metrics(documents, [GZIP_1, GZIP_6, GZIP_9], adapter=adapter, max_workers=2, show_progress=False)

        assert len(result.measurable_documents) == 2
        for doc in documents:
            assert [s.setting for s in result.samples[doc.doc_id]] == [GZIP_1, GZIP_6, GZIP_9]
        assert result.failures == []
        assert result.unsatisfiable == []

    def test_duplicate_settings_measured_once(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        result = acquire_metrics([big_document], [GZIP_1, GZIP_1], adapter=adapter, show_progress=False)

        assert len(result.samples[big_document.doc_id]) == 1
        assert len(adapter.calls) == 1

    def test_unsupported_setting_is_isolated(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile, unsupported={GZIP_6})
        result = acquire_metrics([big_document], [GZIP_1, GZIP_6, GZIP_9], adapter=adapter, show_progress=False)

        assert [s.setting for s in result.samples[big_document.doc_id]] == [GZIP_1, GZIP_9]
        assert len(result.failures) == 1
        assert result.failures[0].kind == FailureKind.UNSUPPORTED
        assert result.failures[0].setting == GZIP_6

    def test_unsatisfiable_document(self, temp_dir, big_document, make_adapter, gzip_profile):
        path = temp_dir / "gone.txt"
        path.write_bytes(b"x" * 100)
        gone = Document.from_path(path)
        path.unlink()

        adapter = make_adapter(gzip_profile)
        result = acquire_metrics([gone, big_document], [GZIP_1, GZIP_9], adapter=adapter, show_progress=False)

        assert result.unsatisfiable == ["gone.txt"]
        assert [d.doc_id for d in result.measurable_documents] == ["big.bin"]
        assert {f.kind for f in result.failures} == {FailureKind.IO_ERROR}

    def test_per_document_settings(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        result = acquire_metrics(
            [big_document],
            {big_document.doc_id: [GZIP_9]},
            adapter=adapter,
            show_progress=False,
        )
        assert [s.setting for s in result.samples[big_document.doc_id]] == [GZIP_9]

    def test_levels_share_blocks(self, big_document, make_adapter, gzip_profile):
        """All levels of a document are estimated on the same bytes."""
        adapter = make_adapter(gzip_profile)
        config = EstimationConfig(random=True, seed=3)
        acquire_metrics([big_document], [GZIP_1, GZIP_6, GZIP_9], adapter=adapter, estimation=config, show_progress=False)

        blocks = {}
        for setting, _, digest in adapter.calls:
            blocks.setdefault(setting, set()).add(digest)
        assert blocks[GZIP_1] == blocks[GZIP_6] == blocks[GZIP_9]
        assert len(blocks[GZIP_1]) == 10

    def test_to_dict(self, big_document, make_adapter, gzip_profile):
        adapter = make_adapter(gzip_profile)
        result = acquire_metrics([big_document], [GZIP_1], adapter=adapter, show_progress=False)
        d = result.to_dict()

        assert d["samples"]["big.bin"][0]["setting"] == "gzip_1"
        assert d["unsatisfiable"] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
