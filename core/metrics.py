"""
Mixpack Metric Acquisition

Measures (time, size) for every (document, setting) pair, either exactly on
the whole document or by estimation from a sample of blocks.

Estimation extrapolates linearly: a sample covering a fraction r of the
document yields size = sampled_size / r and time = sampled_time / r. This
assumes compression ratio and throughput are roughly stationary across the
document. It is a speed/accuracy trade, not a guarantee, and samples produced
this way are flagged `estimated` all the way to the report.

Usage:
    from core.metrics import acquire_metrics, EstimationConfig

    result = acquire_metrics(
        documents,
        settings,
        estimation=EstimationConfig(block_count=10, block_ratio=0.01),
    )
    for doc in result.measurable_documents:
        print(doc.doc_id, result.samples[doc.doc_id])
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from .codecs import (
    AlgorithmLevel,
    CodecAdapter,
    CodecIOError,
    CodecUnsupported,
    get_default_adapter,
)
from .documents import Document


@dataclass(frozen=True)
class EstimationConfig:
    """Block-sampling parameters for estimated measurements."""
    block_count: int = 10
    block_ratio: float = 0.01  # Size of one block as a fraction of the document
    random: bool = False  # Random block choice (seeded) instead of evenly spaced
    seed: Optional[int] = None
    parallel_blocks: bool = False  # Compress the blocks of one measurement concurrently

    def __post_init__(self):
        if self.block_count < 1:
            raise ValueError(f"block_count must be >= 1, got {self.block_count}")
        if not 0.0 < self.block_ratio <= 1.0:
            raise ValueError(f"block_ratio must be in (0, 1], got {self.block_ratio}")

    @property
    def sample_ratio(self) -> float:
        return min(1.0, self.block_count * self.block_ratio)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_count": self.block_count,
            "block_ratio": self.block_ratio,
            "random": self.random,
            "seed": self.seed,
            "parallel_blocks": self.parallel_blocks,
            "sample_ratio": self.sample_ratio,
        }


@dataclass(frozen=True)
class MetricSample:
    """Measured or estimated cost of one setting on one document."""
    doc_id: str
    setting: AlgorithmLevel
    elapsed_s: float
    compressed_size: int
    estimated: bool = False
    sample_ratio: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "setting": self.setting.name,
            "elapsed_s": self.elapsed_s,
            "compressed_size": self.compressed_size,
            "estimated": self.estimated,
            "sample_ratio": self.sample_ratio,
        }


class FailureKind(str, Enum):
    IO_ERROR = "io_error"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class SampleFailure:
    """A (document, setting) pair that produced no sample."""
    doc_id: str
    setting: AlgorithmLevel
    kind: FailureKind
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "setting": self.setting.name,
            "kind": self.kind.value,
            "reason": self.reason,
        }


SlotKey = Tuple[str, AlgorithmLevel]


class MetricArena:
    """Write-once result store shared by the measurement workers.

    Each worker owns exactly one (doc_id, setting) slot. Writing a slot
    twice is a bug and raises.
    """

    def __init__(self):
        self._slots: Dict[SlotKey, Union[MetricSample, SampleFailure]] = {}
        self._lock = threading.Lock()

    def put(self, key: SlotKey, value: Union[MetricSample, SampleFailure]) -> None:
        with self._lock:
            if key in self._slots:
                raise KeyError(f"Slot already written: {key[0]} / {key[1]}")
            self._slots[key] = value

    def get(self, key: SlotKey) -> Optional[Union[MetricSample, SampleFailure]]:
        return self._slots.get(key)

    def __len__(self):
        return len(self._slots)


@dataclass
class AcquisitionResult:
    """Everything the acquisition phase learned about the documents."""
    documents: List[Document]
    samples: Dict[str, List[MetricSample]] = field(default_factory=dict)
    failures: List[SampleFailure] = field(default_factory=list)
    unsatisfiable: List[str] = field(default_factory=list)
    elapsed_s: float = 0.0

    @property
    def measurable_documents(self) -> List[Document]:
        return [d for d in self.documents if self.samples.get(d.doc_id)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "samples": {
                doc_id: [s.to_dict() for s in samples]
                for doc_id, samples in self.samples.items()
            },
            "failures": [f.to_dict() for f in self.failures],
            "unsatisfiable": list(self.unsatisfiable),
            "elapsed_s": self.elapsed_s,
        }


def choose_block_offsets(
    doc_size: int,
    block_size: int,
    block_count: int,
    random: bool = False,
    seed: Optional[int] = None,
) -> List[int]:
    """Pick `block_count` non-overlapping, block-aligned offsets.

    The document is cut into floor(doc_size / block_size) aligned slots;
    evenly spaced slots are used unless `random` is set.
    """
    num_slots = doc_size // block_size
    if num_slots <= block_count:
        return [i * block_size for i in range(num_slots)]

    if random:
        rng = np.random.default_rng(seed)
        slots = np.sort(rng.choice(num_slots, size=block_count, replace=False))
    else:
        slots = np.unique(np.linspace(0, num_slots - 1, block_count).round().astype(np.int64))

    return [int(s) * block_size for s in slots]


def measure_exact(
    document: Document,
    setting: AlgorithmLevel,
    adapter: CodecAdapter,
) -> MetricSample:
    """Compress the whole document once and record time and size."""
    data = document.read_all()
    result = adapter.compress(data, setting)
    return MetricSample(
        doc_id=document.doc_id,
        setting=setting,
        elapsed_s=result.elapsed_s,
        compressed_size=result.compressed_size,
    )


def measure_estimated(
    document: Document,
    setting: AlgorithmLevel,
    adapter: CodecAdapter,
    estimation: EstimationConfig,
    offsets: Optional[Sequence[int]] = None,
) -> MetricSample:
    """Estimate time and size from a sample of blocks.

    Falls back to exact measurement when the sample would cover the whole
    document anyway.
    """
    block_size = max(1, int(round(document.size * estimation.block_ratio)))
    if estimation.sample_ratio >= 1.0 or block_size * estimation.block_count >= document.size:
        return measure_exact(document, setting, adapter)

    if offsets is None:
        offsets = choose_block_offsets(
            document.size,
            block_size,
            estimation.block_count,
            random=estimation.random,
            seed=estimation.seed,
        )

    def run_block(offset: int) -> Tuple[float, int]:
        data = document.read_range(offset, offset + block_size)
        result = adapter.compress(data, setting)
        return result.elapsed_s, result.compressed_size

    if estimation.parallel_blocks and len(offsets) > 1:
        with ThreadPoolExecutor(max_workers=len(offsets)) as pool:
            block_results = list(pool.map(run_block, offsets))
    else:
        block_results = [run_block(o) for o in offsets]

    sampled_time = sum(t for t, _ in block_results)
    sampled_size = sum(s for _, s in block_results)
    sample_ratio = (block_size * len(offsets)) / document.size

    return MetricSample(
        doc_id=document.doc_id,
        setting=setting,
        elapsed_s=sampled_time / sample_ratio,
        compressed_size=int(round(sampled_size / sample_ratio)),
        estimated=True,
        sample_ratio=sample_ratio,
    )


def _measure_slot(
    arena: MetricArena,
    document: Document,
    setting: AlgorithmLevel,
    adapter: CodecAdapter,
    estimation: Optional[EstimationConfig],
    offsets: Optional[Sequence[int]],
) -> None:
    key = (document.doc_id, setting)
    try:
        if estimation is None:
            sample = measure_exact(document, setting, adapter)
        else:
            sample = measure_estimated(document, setting, adapter, estimation, offsets)
    except CodecUnsupported as e:
        print(f"[WARN] {document.doc_id}: skipping {setting}: {e}", flush=True)
        arena.put(key, SampleFailure(document.doc_id, setting, FailureKind.UNSUPPORTED, str(e)))
        return
    except CodecIOError as e:
        print(f"[WARN] {document.doc_id}: cannot measure {setting}: {e}", flush=True)
        arena.put(key, SampleFailure(document.doc_id, setting, FailureKind.IO_ERROR, str(e)))
        return
    arena.put(key, sample)


def acquire_metrics(
    documents: Sequence[Document],
    settings: Union[Sequence[AlgorithmLevel], Mapping[str, Sequence[AlgorithmLevel]]],
    adapter: Optional[CodecAdapter] = None,
    estimation: Optional[EstimationConfig] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = True,
) -> AcquisitionResult:
    """Measure every (document, setting) pair on a worker pool.

    Args:
        documents: Registered documents
        settings: Settings for every document, or a mapping doc_id -> settings
        adapter: Codec adapter (standard codecs if None)
        estimation: Block-sampling parameters; exact measurement if None
        max_workers: Pool size (CPU count if None)
        show_progress: Show a tqdm progress bar

    Returns:
        AcquisitionResult with samples in setting order, isolated failures
        and the documents for which every setting failed
    """
    adapter = adapter or get_default_adapter()
    max_workers = max_workers or os.cpu_count() or 1

    if isinstance(settings, Mapping):
        plan = [(doc, list(dict.fromkeys(settings.get(doc.doc_id, [])))) for doc in documents]
    else:
        plan = [(doc, list(dict.fromkeys(settings))) for doc in documents]

    # One block choice per document so that all levels see the same bytes
    offsets_by_doc: Dict[str, Optional[List[int]]] = {}
    for doc, _ in plan:
        offsets_by_doc[doc.doc_id] = None
        if estimation is not None:
            block_size = max(1, int(round(doc.size * estimation.block_ratio)))
            if block_size * estimation.block_count < doc.size:
                offsets_by_doc[doc.doc_id] = choose_block_offsets(
                    doc.size,
                    block_size,
                    estimation.block_count,
                    random=estimation.random,
                    seed=estimation.seed,
                )

    num_tasks = sum(len(s) for _, s in plan)
    mode = "exact" if estimation is None else f"estimated, ratio={estimation.sample_ratio:g}"
    print(
        f"[MEASURE] {len(documents)} documents, {num_tasks} settings ({mode}), "
        f"{max_workers} workers",
        flush=True,
    )

    start = time.perf_counter()
    arena = MetricArena()
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(
                _measure_slot,
                arena,
                doc,
                setting,
                adapter,
                estimation,
                offsets_by_doc[doc.doc_id],
            )
            for doc, doc_settings in plan
            for setting in doc_settings
        ]
        for future in tqdm(as_completed(futures), total=len(futures), desc="Measuring", disable=not show_progress):
            future.result()

    result = AcquisitionResult(documents=list(documents))
    for doc, doc_settings in plan:
        doc_samples = []
        for setting in doc_settings:
            value = arena.get((doc.doc_id, setting))
            if isinstance(value, MetricSample):
                doc_samples.append(value)
            elif isinstance(value, SampleFailure):
                result.failures.append(value)
        result.samples[doc.doc_id] = doc_samples
        if not doc_samples:
            result.unsatisfiable.append(doc.doc_id)
            print(f"[WARN] {doc.doc_id}: no setting could be measured, excluding document", flush=True)

    result.elapsed_s = time.perf_counter() - start
    print(
        f"[MEASURE] {len(arena)} results in {result.elapsed_s:.2f}s "
        f"({len(result.failures)} failed, {len(result.unsatisfiable)} documents excluded)",
        flush=True,
    )
    return result
