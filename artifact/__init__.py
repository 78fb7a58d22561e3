"""
Mixpack Artifact - Composed outputs and run reports
"""

from .composer import (
    ComposedArtifact,
    CompositionResult,
    compose_document,
    compose_plan,
    verify_artifact,
)

from .format import (
    RunReport,
    build_report,
    load_report,
    write_report,
)

__all__ = [
    "ComposedArtifact",
    "CompositionResult",
    "compose_document",
    "compose_plan",
    "verify_artifact",
    "RunReport",
    "build_report",
    "load_report",
    "write_report",
]
