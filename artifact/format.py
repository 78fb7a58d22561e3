"""
Mixpack Run Report (JSON)

Defines the report written next to the compressed artifacts: samples, hulls
and the allocation of every document, the merged curves used for comparison,
and planned vs achieved totals.
"""

import json
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from core.allocation import BudgetPlan
from core.metrics import MetricSample


REPORT_VERSION = "1.0"


@dataclass
class DocumentReport:
    """Everything recorded about one document."""
    doc_id: str
    path: str
    size: int
    samples: List[Dict[str, Any]] = field(default_factory=list)
    hull: List[Dict[str, Any]] = field(default_factory=list)
    allocation: Optional[Dict[str, Any]] = None
    artifact: Optional[Dict[str, Any]] = None  # Achieved result, when composed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "path": self.path,
            "size": self.size,
            "samples": self.samples,
            "hull": self.hull,
            "allocation": self.allocation,
            "artifact": self.artifact,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DocumentReport":
        return cls(**d)


@dataclass
class RunReport:
    """Report of one planning (and optionally composition) run."""
    version: str = REPORT_VERSION
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    command: str = "optimize"

    budget: float = 0.0
    estimated: bool = False
    estimation: Optional[Dict[str, Any]] = None

    documents: List[DocumentReport] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    unsatisfiable: List[str] = field(default_factory=list)
    rejected: List[Dict[str, str]] = field(default_factory=list)  # Paths that never registered

    # Aggregate curves
    combined_hull: List[Dict[str, Any]] = field(default_factory=list)
    naive_curve: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    benefit_curve: List[Dict[str, Any]] = field(default_factory=list)

    totals: Dict[str, Any] = field(default_factory=dict)
    # Example: {
    #   "original_size": 2000,
    #   "planned_time": 3.0,
    #   "planned_size": 1150.0,
    #   "achieved_time": 2.91,    # None for plan-only runs
    #   "achieved_size": 1162,    # None for plan-only runs
    # }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "created_at": self.created_at,
            "command": self.command,
            "budget": self.budget,
            "estimated": self.estimated,
            "estimation": self.estimation,
            "documents": [d.to_dict() for d in self.documents],
            "failures": self.failures,
            "unsatisfiable": self.unsatisfiable,
            "rejected": self.rejected,
            "combined_hull": self.combined_hull,
            "naive_curve": self.naive_curve,
            "benefit_curve": self.benefit_curve,
            "totals": self.totals,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RunReport":
        d = dict(d)
        documents = [DocumentReport.from_dict(doc) for doc in d.pop("documents", [])]
        return cls(documents=documents, **d)

    def get_document(self, doc_id: str) -> Optional[DocumentReport]:
        for doc in self.documents:
            if doc.doc_id == doc_id:
                return doc
        return None

    def __repr__(self):
        return f"RunReport({self.command}, {len(self.documents)} documents, budget={self.budget}s)"


def naive_level_curve(samples: Mapping[str, Sequence[MetricSample]]) -> Dict[str, List[Dict[str, Any]]]:
    """Totals when every document uses the same level index, per algorithm.

    Documents with fewer measured levels are padded with their last one.
    """
    by_algorithm: Dict[str, Dict[str, List[MetricSample]]] = defaultdict(dict)
    for doc_id, doc_samples in samples.items():
        for s in doc_samples:
            by_algorithm[s.setting.algorithm.value].setdefault(doc_id, []).append(s)

    curves = {}
    for algorithm, docs in by_algorithm.items():
        per_doc = [sorted(ss, key=lambda s: s.setting.level) for ss in docs.values()]
        width = max(len(ss) for ss in per_doc)
        times = np.stack([
            np.pad(np.array([s.elapsed_s for s in ss], dtype=np.float64), (0, width - len(ss)), mode="edge")
            for ss in per_doc
        ])
        sizes = np.stack([
            np.pad(np.array([s.compressed_size for s in ss], dtype=np.int64), (0, width - len(ss)), mode="edge")
            for ss in per_doc
        ])
        reference = max(per_doc, key=len)
        curves[algorithm] = [
            {
                "level": reference[i].setting.level,
                "time": float(t),
                "size": int(s),
            }
            for i, (t, s) in enumerate(zip(times.sum(axis=0), sizes.sum(axis=0)))
        ]
    return curves


def benefit_curve(plan: BudgetPlan) -> List[Dict[str, Any]]:
    """Globally ordered segments with the cumulative time they represent."""
    if not plan.segments:
        return []
    cumulative = np.cumsum([s.cost for s in plan.segments])
    consumed = {(s.doc_id, s.index) for s in plan.consumed}
    curve = []
    for seg, total in zip(plan.segments, cumulative):
        d = seg.to_dict()
        d["cumulative_time"] = float(total)
        d["consumed"] = (seg.doc_id, seg.index) in consumed
        curve.append(d)
    return curve


def build_report(
    result,
    composition=None,
    rejected: Optional[Sequence[Tuple[str, str]]] = None,
    command: str = "optimize",
) -> RunReport:
    """Assemble a RunReport from an OptimizationResult and optional CompositionResult."""
    acquisition = result.acquisition
    plan = result.plan

    report = RunReport(
        command=command,
        budget=result.constraints.time_budget_s,
        estimated=result.estimated,
        estimation=result.constraints.estimation.to_dict() if result.constraints.estimation else None,
        failures=[f.to_dict() for f in acquisition.failures] if acquisition else [],
        unsatisfiable=list(acquisition.unsatisfiable) if acquisition else [],
        rejected=[{"path": path, "reason": reason} for path, reason in (rejected or [])],
        combined_hull=[p.to_dict() for p in result.combined],
    )

    for doc in result.documents:
        entry = plan.entries.get(doc.doc_id) if plan else None
        artifact = composition.artifacts.get(doc.doc_id) if composition else None
        report.documents.append(DocumentReport(
            doc_id=doc.doc_id,
            path=str(doc.path),
            size=doc.size,
            samples=[s.to_dict() for s in acquisition.samples.get(doc.doc_id, [])] if acquisition else [],
            hull=[p.to_dict() for p in result.hulls.get(doc.doc_id, [])],
            allocation=entry.to_dict() if entry else None,
            artifact=artifact.to_dict() if artifact else None,
        ))

    if acquisition:
        measured = {d: s for d, s in acquisition.samples.items() if s}
        report.naive_curve = naive_level_curve(measured)

    if plan:
        report.benefit_curve = benefit_curve(plan)
        report.totals = {
            "original_size": plan.original_size,
            "planned_time": plan.total_time,
            "planned_size": plan.total_size,
            "achieved_time": composition.total_time if composition else None,
            "achieved_size": composition.total_size if composition else None,
        }
    return report


def write_report(report: RunReport, path) -> Path:
    """Save a report as indented JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(report.to_dict(), f, indent=2)
    return path


def load_report(path) -> RunReport:
    """Load a report written by `write_report`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No report found at {path}")
    with open(path, "r") as f:
        return RunReport.from_dict(json.load(f))
