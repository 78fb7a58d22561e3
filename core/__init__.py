"""
Mixpack Core Module

Codec adapter, document registry, metric acquisition, convex hulls and
budget allocation.

Usage:
    from core import register_documents, acquire_metrics, build_lower_hull, allocate_budget

    documents, _ = register_documents(["a.log", "b.log"])
    acquisition = acquire_metrics(documents, settings)
    hulls = {d: build_lower_hull(s) for d, s in acquisition.samples.items() if s}
    plan = allocate_budget(hulls, {d.doc_id: d.size for d in documents}, budget=2.0)
"""

from .codecs import (
    Algorithm,
    AlgorithmLevel,
    CodecAdapter,
    CodecError,
    CodecIOError,
    CodecUnsupported,
    get_default_adapter,
)

from .documents import (
    Document,
    register_documents,
)

from .metrics import (
    AcquisitionResult,
    EstimationConfig,
    MetricSample,
    SampleFailure,
    acquire_metrics,
    measure_estimated,
    measure_exact,
)

from .hull import (
    HullPoint,
    NonConvexHull,
    build_lower_hull,
    check_convex,
    combined_hull,
)

from .allocation import (
    AllocationEntry,
    BudgetPlan,
    EntryKind,
    InfeasibleBudget,
    allocate_budget,
    build_segments,
)

__version__ = "0.1.0"
__all__ = [
    # Codecs
    "Algorithm",
    "AlgorithmLevel",
    "CodecAdapter",
    "CodecError",
    "CodecIOError",
    "CodecUnsupported",
    "get_default_adapter",
    # Documents
    "Document",
    "register_documents",
    # Metrics
    "AcquisitionResult",
    "EstimationConfig",
    "MetricSample",
    "SampleFailure",
    "acquire_metrics",
    "measure_estimated",
    "measure_exact",
    # Hull
    "HullPoint",
    "NonConvexHull",
    "build_lower_hull",
    "check_convex",
    "combined_hull",
    # Allocation
    "AllocationEntry",
    "BudgetPlan",
    "EntryKind",
    "InfeasibleBudget",
    "allocate_budget",
    "build_segments",
]
