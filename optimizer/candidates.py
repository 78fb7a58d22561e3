"""
Mixpack Optimizer - Candidate Settings

Generates the (algorithm, level) settings to measure for each document.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from core.codecs import Algorithm, AlgorithmLevel


@dataclass
class AlgorithmPreset:
    """Default level sweep for one algorithm family."""
    algorithm: Algorithm
    levels: List[int] = field(default_factory=list)
    description: str = ""

    def __repr__(self):
        return f"Preset({self.algorithm.value}, levels={self.levels[0]}..{self.levels[-1]})"


# Default level sweeps. zstd ultra levels (20-22) are excluded by default:
# they need large windows and are rarely on the hull for a time budget.
ALGORITHM_PRESETS: Dict[str, AlgorithmPreset] = {
    "gzip": AlgorithmPreset(
        algorithm=Algorithm.GZIP,
        levels=list(range(1, 10)),
        description="DEFLATE, fast and universally decodable",
    ),
    "bzip2": AlgorithmPreset(
        algorithm=Algorithm.BZIP2,
        levels=list(range(1, 10)),
        description="BWT, block size grows with level",
    ),
    "xz": AlgorithmPreset(
        algorithm=Algorithm.XZ,
        levels=list(range(0, 10)),
        description="LZMA2, slowest and densest",
    ),
    "zstd": AlgorithmPreset(
        algorithm=Algorithm.ZSTD,
        levels=list(range(1, 20)),
        description="Zstandard, wide speed/ratio range",
    ),
}


def parse_algorithm(name: str) -> Algorithm:
    """Map a user-facing name (including `xz2`) to an Algorithm."""
    name = name.strip().lower()
    aliases = {"gz": "gzip", "bz2": "bzip2", "xz2": "xz", "lzma": "xz", "zst": "zstd"}
    try:
        return Algorithm(aliases.get(name, name))
    except ValueError:
        raise ValueError(
            f"Unknown algorithm {name!r} (choose from: {', '.join(ALGORITHM_PRESETS)})"
        )


def generate_candidates(
    algorithms: Optional[Sequence[Algorithm]] = None,
    levels: Optional[Sequence[int]] = None,
    min_level: Optional[int] = None,
    max_level: Optional[int] = None,
) -> List[AlgorithmLevel]:
    """Generate the settings to measure.

    Args:
        algorithms: Families to include (all presets if None)
        levels: Explicit levels; passed through unchecked so that the codec
            adapter reports unsupported ones
        min_level: Drop preset levels below this
        max_level: Drop preset levels above this

    Returns:
        List of AlgorithmLevel, grouped by algorithm, levels ascending
    """
    if algorithms is None:
        algorithms = [p.algorithm for p in ALGORITHM_PRESETS.values()]

    candidates = []
    for algorithm in algorithms:
        preset = ALGORITHM_PRESETS[algorithm.value]
        algorithm_levels = list(levels) if levels is not None else list(preset.levels)

        for level in sorted(set(algorithm_levels)):
            if min_level is not None and level < min_level:
                continue
            if max_level is not None and level > max_level:
                continue
            candidates.append(AlgorithmLevel(algorithm, level))

    return candidates


def candidates_for_documents(
    restrictions: Mapping[str, Optional[Algorithm]],
    default_algorithms: Optional[Sequence[Algorithm]] = None,
    levels: Optional[Sequence[int]] = None,
) -> Dict[str, List[AlgorithmLevel]]:
    """Settings per document, honoring per-document algorithm restrictions.

    Args:
        restrictions: doc_id -> algorithm (None = unrestricted)
        default_algorithms: Families for unrestricted documents
        levels: Explicit levels for every family

    Returns:
        Dict mapping doc_id to its candidate settings
    """
    return {
        doc_id: generate_candidates(
            algorithms=[algorithm] if algorithm is not None else default_algorithms,
            levels=levels,
        )
        for doc_id, algorithm in restrictions.items()
    }
