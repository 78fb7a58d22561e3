"""
Mixpack Convex Hull

Reduces a document's (time, size) samples to its lower convex hull: the
operating points that are worth paying for. Along the hull time strictly
increases, size strictly decreases and the benefit rate (bytes saved per
extra second) strictly decreases. Samples that break any of these are
dropped; the hull is never bent to fit them.

The same construction, applied to summed times and sizes, gives the merged
hull of several documents. That one is only used for reporting.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .metrics import MetricSample


class NonConvexHull(ValueError):
    """A hull violates the ordering invariants the optimizer relies on."""


@dataclass(frozen=True)
class HullPoint:
    """A sample on the lower convex hull of its document."""
    sample: MetricSample
    benefit_rate: Optional[float] = None  # None on the first point (infinite priority)

    @property
    def time(self) -> float:
        return self.sample.elapsed_s

    @property
    def size(self) -> int:
        return self.sample.compressed_size

    @property
    def setting(self):
        return self.sample.setting

    def to_dict(self) -> Dict[str, Any]:
        d = self.sample.to_dict()
        d["benefit_rate"] = self.benefit_rate
        return d


@dataclass(frozen=True)
class CombinedPoint:
    """A point of the merged hull over several documents."""
    time: float
    size: int
    assignment: Dict[str, str] = field(default_factory=dict)  # doc_id -> setting name
    benefit_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "size": self.size,
            "assignment": dict(self.assignment),
            "benefit_rate": self.benefit_rate,
        }


def _cross(o: Tuple[float, float], a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def lower_hull_indices(points: Sequence[Tuple[float, float]]) -> List[int]:
    """Indices of the strictly convex, size-decreasing lower hull.

    Points are (time, size). Equal times keep the smallest size; points that
    do not strictly reduce size are dominated; collinear middle points are
    dropped so consecutive slopes strictly increase.
    """
    order = sorted(range(len(points)), key=lambda i: (points[i][0], points[i][1], i))

    frontier: List[int] = []
    for i in order:
        if frontier:
            last = points[frontier[-1]]
            if points[i][0] == last[0] or points[i][1] >= last[1]:
                continue
        frontier.append(i)

    chain: List[int] = []
    for i in frontier:
        while len(chain) >= 2 and _cross(points[chain[-2]], points[chain[-1]], points[i]) <= 0:
            chain.pop()
        chain.append(i)
    return chain


def _benefit_rate(prev: Tuple[float, float], cur: Tuple[float, float]) -> float:
    return (prev[1] - cur[1]) / (cur[0] - prev[0])


def build_lower_hull(samples: Sequence[MetricSample]) -> List[HullPoint]:
    """Build the lower convex hull of one document's samples."""
    points = [(s.elapsed_s, s.compressed_size) for s in samples]
    indices = lower_hull_indices(points)

    hull = []
    for k, i in enumerate(indices):
        rate = None if k == 0 else _benefit_rate(points[indices[k - 1]], points[i])
        hull.append(HullPoint(sample=samples[i], benefit_rate=rate))
    return hull


def check_convex(hull: Sequence[HullPoint]) -> None:
    """Raise NonConvexHull unless time rises, size falls and rates fall."""
    for k in range(1, len(hull)):
        prev, cur = hull[k - 1], hull[k]
        if not cur.time > prev.time:
            raise NonConvexHull(f"time not increasing at {cur.setting}: {prev.time} -> {cur.time}")
        if not cur.size < prev.size:
            raise NonConvexHull(f"size not decreasing at {cur.setting}: {prev.size} -> {cur.size}")
        if cur.benefit_rate is None:
            raise NonConvexHull(f"missing benefit rate at {cur.setting}")
        if k >= 2 and not cur.benefit_rate < prev.benefit_rate:
            raise NonConvexHull(
                f"benefit rate not decreasing at {cur.setting}: "
                f"{prev.benefit_rate} -> {cur.benefit_rate}"
            )


def combined_hull(hulls: Mapping[str, Sequence[HullPoint]]) -> List[CombinedPoint]:
    """Merged hull of several documents, from summed times and sizes.

    Every document starts at its cheapest hull point; the remaining hull
    steps of all documents are then applied in decreasing benefit-rate order,
    each step giving one aggregate (time, size) candidate.
    """
    hulls = {doc_id: list(h) for doc_id, h in hulls.items() if h}
    if not hulls:
        return []

    position = {doc_id: 0 for doc_id in hulls}
    steps = [
        (h[k].benefit_rate, doc_id, k)
        for doc_id, h in hulls.items()
        for k in range(1, len(h))
    ]
    doc_order = {doc_id: n for n, doc_id in enumerate(hulls)}
    steps.sort(key=lambda s: (-s[0], doc_order[s[1]], s[2]))

    def snapshot() -> Tuple[Tuple[float, float], Dict[str, str]]:
        time = sum(hulls[d][k].time for d, k in position.items())
        size = sum(hulls[d][k].size for d, k in position.items())
        assignment = {d: hulls[d][k].setting.name for d, k in position.items()}
        return (time, size), assignment

    candidates = [snapshot()]
    for _, doc_id, k in steps:
        position[doc_id] = k
        candidates.append(snapshot())

    points = [c[0] for c in candidates]
    indices = lower_hull_indices(points)
    merged = []
    for n, i in enumerate(indices):
        rate = None if n == 0 else _benefit_rate(points[indices[n - 1]], points[i])
        merged.append(CombinedPoint(
            time=points[i][0],
            size=int(points[i][1]),
            assignment=candidates[i][1],
            benefit_rate=rate,
        ))
    return merged


def format_hull(doc_id: str, hull: Sequence[HullPoint]) -> str:
    """Human-readable hull listing, one `time ; size (benefit: rate)` per line."""
    lines = [f"Hull for '{doc_id}' (time in s ; compressed size)"]
    for p in hull:
        rate = "first" if p.benefit_rate is None else f"{p.benefit_rate:.1f} B/s"
        flag = " ~" if p.sample.estimated else ""
        lines.append(f"  {p.setting.name:<10} {p.time:.4f} ; {p.size} (benefit: {rate}){flag}")
    return "\n".join(lines)
