"""
Mixpack Artifact - Output Composition

Turns a budget plan into one compressed file per document. A split entry is
written as two members of the same family back to back: the first
`split_offset` bytes at the cheaper level, the rest at the denser one. There
is no header, index or footer; `zcat`, `bzcat`, `xzcat` and `zstdcat` decode
the result as is.
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from tqdm import tqdm

from core.allocation import AllocationEntry, BudgetPlan, EntryKind
from core.codecs import (
    EXTENSIONS,
    Algorithm,
    AlgorithmLevel,
    CodecAdapter,
    CodecError,
    get_default_adapter,
)
from core.documents import Document


@dataclass
class MemberInfo:
    """One codec-native member of a composed artifact."""
    setting: str
    start: int
    end: int
    compressed_size: int
    elapsed_s: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "setting": self.setting,
            "start": self.start,
            "end": self.end,
            "compressed_size": self.compressed_size,
            "elapsed_s": self.elapsed_s,
        }


@dataclass
class ComposedArtifact:
    """A document's compressed output and what it cost."""
    doc_id: str
    kind: EntryKind
    original_size: int
    algorithm: Optional[Algorithm] = None
    members: List[MemberInfo] = field(default_factory=list)
    path: Optional[Path] = None
    stored_size: int = 0  # Bytes written for a store entry

    @property
    def compressed_size(self) -> int:
        if self.kind == EntryKind.STORE:
            return self.stored_size
        return sum(m.compressed_size for m in self.members)

    @property
    def elapsed_s(self) -> float:
        return sum(m.elapsed_s for m in self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "kind": self.kind.value,
            "algorithm": self.algorithm.value if self.algorithm else None,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "elapsed_s": self.elapsed_s,
            "path": str(self.path) if self.path else None,
            "members": [m.to_dict() for m in self.members],
        }


@dataclass
class CompositionResult:
    """All artifacts of one plan, plus per-document failures."""
    artifacts: Dict[str, ComposedArtifact] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    elapsed_s: float = 0.0

    @property
    def total_size(self) -> int:
        return sum(a.compressed_size for a in self.artifacts.values())

    @property
    def total_time(self) -> float:
        return sum(a.elapsed_s for a in self.artifacts.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_size": self.total_size,
            "total_time": self.total_time,
            "elapsed_s": self.elapsed_s,
            "artifacts": {doc_id: a.to_dict() for doc_id, a in self.artifacts.items()},
            "errors": dict(self.errors),
        }


def member_ranges(entry: AllocationEntry) -> List[Tuple[int, int, AlgorithmLevel]]:
    """Byte ranges and settings of the members an entry produces."""
    if entry.kind == EntryKind.STORE:
        return []
    if entry.kind == EntryKind.SINGLE:
        return [(0, entry.doc_size, entry.lower.setting)]

    offset = entry.split_offset
    ranges = [
        (0, offset, entry.lower.setting),
        (offset, entry.doc_size, entry.upper.setting),
    ]
    # A split that rounds to an end of the document degenerates to one member
    return [r for r in ranges if r[1] > r[0]]


def compose_document(
    document: Document,
    entry: AllocationEntry,
    adapter: Optional[CodecAdapter] = None,
) -> Tuple[ComposedArtifact, bytes]:
    """Compress one document according to its allocation entry.

    Returns:
        (artifact metadata, payload bytes)

    Raises:
        CodecIOError: if the document cannot be read
        CodecUnsupported: if the adapter rejects a setting
    """
    adapter = adapter or get_default_adapter()
    artifact = ComposedArtifact(
        doc_id=document.doc_id,
        kind=entry.kind,
        original_size=document.size,
    )

    if entry.kind == EntryKind.STORE:
        payload = document.read_all()
        artifact.stored_size = len(payload)
        return artifact, payload

    artifact.algorithm = entry.lower.setting.algorithm
    parts = []
    for start, end, setting in member_ranges(entry):
        data = document.read_range(start, end)
        result = adapter.compress(data, setting)
        parts.append(result.payload)
        artifact.members.append(MemberInfo(
            setting=setting.name,
            start=start,
            end=end,
            compressed_size=result.compressed_size,
            elapsed_s=result.elapsed_s,
        ))

    return artifact, b"".join(parts)


def artifact_path(output_dir: Path, document: Document, entry: AllocationEntry) -> Path:
    """Output file for a document: `<doc_id><ext>`, no extension when stored."""
    if entry.kind == EntryKind.STORE:
        return Path(output_dir) / document.doc_id
    return Path(output_dir) / f"{document.doc_id}{EXTENSIONS[entry.lower.setting.algorithm]}"


def compose_plan(
    documents: Sequence[Document],
    plan: BudgetPlan,
    output_dir,
    adapter: Optional[CodecAdapter] = None,
    max_workers: Optional[int] = None,
    show_progress: bool = True,
) -> CompositionResult:
    """Write one artifact per planned document, in parallel.

    Per-document codec failures are collected in `errors`; the other
    documents are still written.
    """
    adapter = adapter or get_default_adapter()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    by_id: Mapping[str, Document] = {d.doc_id: d for d in documents}
    planned = [(by_id[doc_id], entry) for doc_id, entry in plan.entries.items()]

    print(f"[COMPOSE] Writing {len(planned)} artifacts to {output_dir}", flush=True)

    def run(document: Document, entry: AllocationEntry) -> ComposedArtifact:
        path = artifact_path(output_dir, document, entry)
        if path.resolve() == document.path.resolve():
            raise CodecError(f"Refusing to overwrite source document {document.path}")
        artifact, payload = compose_document(document, entry, adapter)
        path.write_bytes(payload)
        artifact.path = path
        return artifact

    result = CompositionResult()
    start = time.perf_counter()
    with ThreadPoolExecutor(max_workers=max_workers or os.cpu_count() or 1) as pool:
        futures = {pool.submit(run, doc, entry): doc.doc_id for doc, entry in planned}
        for future in tqdm(as_completed(futures), total=len(futures), desc="Composing", disable=not show_progress):
            doc_id = futures[future]
            try:
                result.artifacts[doc_id] = future.result()
            except (CodecError, OSError) as e:
                print(f"[ERROR] {doc_id}: {e}", flush=True)
                result.errors[doc_id] = str(e)
    result.elapsed_s = time.perf_counter() - start

    # Keep plan order regardless of completion order
    result.artifacts = {
        doc_id: result.artifacts[doc_id]
        for doc_id in plan.entries
        if doc_id in result.artifacts
    }
    print(
        f"[COMPOSE] achieved size {result.total_size} bytes, "
        f"codec time {result.total_time:.4f}s (planned {plan.total_size:.0f} bytes, {plan.total_time:.4f}s)",
        flush=True,
    )
    return result


def verify_artifact(
    path,
    document: Document,
    algorithm: Optional[Algorithm],
    adapter: Optional[CodecAdapter] = None,
) -> bool:
    """Decode an artifact member by member and compare with its source.

    `algorithm` None means the artifact is a stored copy.
    """
    adapter = adapter or get_default_adapter()
    payload = Path(path).read_bytes()
    original = document.read_all()
    if algorithm is None:
        return payload == original
    return adapter.decompress(payload, algorithm) == original
