"""
Mixpack Optimizer - Budget-Constrained Selection

Runs the planning pipeline: measure every candidate setting, reduce each
document to its lower convex hull, then split the time budget across
documents.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from core.allocation import BudgetPlan, allocate_budget
from core.codecs import AlgorithmLevel, CodecAdapter
from core.documents import Document
from core.hull import CombinedPoint, HullPoint, build_lower_hull, combined_hull, format_hull
from core.metrics import AcquisitionResult, EstimationConfig, acquire_metrics


class NoMeasurableDocuments(Exception):
    """Every setting of every document failed to measure."""


@dataclass
class OptimizationConstraints:
    """Constraints for optimization."""
    time_budget_s: float = 1.0  # Total compression time across all documents
    estimation: Optional[EstimationConfig] = None  # None = exact measurement
    max_workers: Optional[int] = None  # Measurement pool size (CPU count if None)
    output_dir: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_budget_s": self.time_budget_s,
            "estimation": self.estimation.to_dict() if self.estimation else None,
            "max_workers": self.max_workers,
            "output_dir": str(self.output_dir) if self.output_dir else None,
        }


@dataclass
class OptimizationResult:
    """Result of the planning pipeline."""
    constraints: OptimizationConstraints
    documents: List[Document] = field(default_factory=list)

    acquisition: Optional[AcquisitionResult] = None
    hulls: Dict[str, List[HullPoint]] = field(default_factory=dict)
    combined: List[CombinedPoint] = field(default_factory=list)
    plan: Optional[BudgetPlan] = None

    # Metadata
    optimization_time_s: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def estimated(self) -> bool:
        return self.constraints.estimation is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constraints": self.constraints.to_dict(),
            "documents": [d.to_dict() for d in self.documents],
            "acquisition": self.acquisition.to_dict() if self.acquisition else None,
            "hulls": {
                doc_id: [p.to_dict() for p in hull]
                for doc_id, hull in self.hulls.items()
            },
            "combined_hull": [p.to_dict() for p in self.combined],
            "plan": self.plan.to_dict() if self.plan else None,
            "estimated": self.estimated,
            "optimization_time_s": self.optimization_time_s,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


def optimize_documents(
    documents: Sequence[Document],
    settings: Union[Sequence[AlgorithmLevel], Mapping[str, Sequence[AlgorithmLevel]]],
    constraints: OptimizationConstraints,
    adapter: Optional[CodecAdapter] = None,
    progress_callback: Optional[Callable[[str, float], None]] = None,
    show_progress: bool = True,
) -> OptimizationResult:
    """Plan the compression of a document set under a time budget.

    Pipeline:
    1. Measure (or estimate) every (document, setting) pair
    2. Build each document's lower convex hull
    3. Allocate the budget greedily across all hulls

    Args:
        documents: Registered documents
        settings: Settings for every document, or doc_id -> settings
        constraints: Budget and measurement options
        adapter: Codec adapter (standard codecs if None)
        progress_callback: Optional callback(status, progress)
        show_progress: Show tqdm progress bars

    Returns:
        OptimizationResult with samples, hulls and the budget plan

    Raises:
        NoMeasurableDocuments: if no document produced a single sample
        InfeasibleBudget: if the budget is below every cheapest setting
    """
    start_time = datetime.now()

    def log(msg: str, progress: float = 0.0):
        if progress_callback:
            progress_callback(msg, progress)
        print(f"[Optimizer] {msg}", flush=True)

    log(f"Planning {len(documents)} documents, budget {constraints.time_budget_s:.4f}s", 0.0)

    result = OptimizationResult(constraints=constraints, documents=list(documents))

    log("Measuring settings...", 0.05)
    acquisition = acquire_metrics(
        documents,
        settings,
        adapter=adapter,
        estimation=constraints.estimation,
        max_workers=constraints.max_workers,
        show_progress=show_progress,
    )
    result.acquisition = acquisition

    measurable = acquisition.measurable_documents
    if not measurable:
        raise NoMeasurableDocuments(
            f"None of the {len(documents)} documents could be measured with any setting"
        )

    log(f"Building hulls for {len(measurable)} documents...", 0.70)
    for doc in measurable:
        hull = build_lower_hull(acquisition.samples[doc.doc_id])
        result.hulls[doc.doc_id] = hull
        print(f"[HULL] {format_hull(doc.doc_id, hull)}", flush=True)
    result.combined = combined_hull(result.hulls)

    log("Allocating budget...", 0.85)
    result.plan = allocate_budget(
        result.hulls,
        {doc.doc_id: doc.size for doc in measurable},
        constraints.time_budget_s,
    )

    if result.plan.split_doc:
        entry = result.plan.entries[result.plan.split_doc]
        log(
            f"Split: {entry.doc_id} {entry.split_fraction:.3f} at {entry.lower.setting}, "
            f"rest at {entry.upper.setting}",
            0.95,
        )

    result.completed_at = datetime.now()
    result.optimization_time_s = (result.completed_at - start_time).total_seconds()
    log(f"Planning complete in {result.optimization_time_s:.1f}s", 1.0)
    return result
