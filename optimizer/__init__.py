"""
Mixpack Optimizer - Budget-Constrained Level Mixing

Measure candidate settings, build per-document hulls and split a global
time budget across documents.

Usage:
    from optimizer import optimize_documents, OptimizationConstraints, generate_candidates

    result = optimize_documents(
        documents,
        generate_candidates(),
        OptimizationConstraints(time_budget_s=2.0),
    )

    print(f"Planned size: {result.plan.total_size:.0f} bytes")
"""

from .candidates import (
    ALGORITHM_PRESETS,
    AlgorithmPreset,
    candidates_for_documents,
    generate_candidates,
    parse_algorithm,
)

from .selector import (
    NoMeasurableDocuments,
    OptimizationConstraints,
    OptimizationResult,
    optimize_documents,
)

__all__ = [
    "ALGORITHM_PRESETS",
    "AlgorithmPreset",
    "candidates_for_documents",
    "generate_candidates",
    "parse_algorithm",
    "NoMeasurableDocuments",
    "OptimizationConstraints",
    "OptimizationResult",
    "optimize_documents",
]
