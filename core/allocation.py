"""
Mixpack Budget Allocation - Assign compression settings per document

Splits one global time budget across documents. Each document's hull is cut
into segments (store -> first point, then point to point). Segments of all
documents are merged into one list ordered by benefit rate and consumed
greedily, in order within each document. The first divisible segment that
does not fit is taken fractionally, which ends the allocation: at most one
document per plan is split between two levels.

For separable concave benefit curves under one linear budget this greedy
order is optimal (exchange argument). Two kinds of segment cannot be split
and are skipped instead when they do not fit:

- the entry segment (store -> first point): a split would leave part of the
  document uncompressed, which is not an allocation we produce
- a segment between two different algorithms: members of different
  families cannot be concatenated into one decodable artifact

A skipped document keeps what it already has (store if nothing) and the
pass continues with the other documents. Leftover budget then goes to
documents still stored, along their unfolded hull, which may produce the
plan's one split. Documents that every setting enlarges are stored.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .hull import HullPoint, check_convex


class InfeasibleBudget(Exception):
    """Not even one document can afford its cheapest setting."""

    def __init__(self, budget: float, minimum_budget: float):
        self.budget = budget
        self.minimum_budget = minimum_budget
        super().__init__(
            f"Time budget {budget:.4f}s is below the cheapest setting of every "
            f"document (minimum required: {minimum_budget:.4f}s)"
        )


class EntryKind(str, Enum):
    STORE = "store"
    SINGLE = "single"
    SPLIT = "split"


@dataclass(frozen=True)
class Segment:
    """One increment of a document's hull."""
    doc_id: str
    index: int
    start: Optional[HullPoint]  # None = store baseline
    end: HullPoint
    cost: float
    benefit: float
    remaining_size: int  # Document bytes still unreduced at segment start

    @property
    def rate(self) -> float:
        if self.cost <= 0:
            return math.inf if self.benefit > 0 else -math.inf
        return self.benefit / self.cost

    @property
    def is_entry(self) -> bool:
        return self.start is None

    @property
    def divisible(self) -> bool:
        return (
            self.start is not None
            and self.start.setting.algorithm == self.end.setting.algorithm
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "index": self.index,
            "entry": self.is_entry,
            "from": self.start.setting.name if self.start else "store",
            "to": self.end.setting.name,
            "cost": self.cost,
            "benefit": self.benefit,
            "rate": self.rate if math.isfinite(self.rate) else None,
        }


@dataclass(frozen=True)
class AllocationEntry:
    """Compression decision for one document."""
    doc_id: str
    doc_size: int
    kind: EntryKind = EntryKind.STORE
    lower: Optional[HullPoint] = None
    upper: Optional[HullPoint] = None
    split_fraction: Optional[float] = None  # Portion compressed with `lower`

    @classmethod
    def store(cls, doc_id: str, doc_size: int) -> "AllocationEntry":
        return cls(doc_id=doc_id, doc_size=doc_size)

    @classmethod
    def single(cls, doc_id: str, doc_size: int, point: HullPoint) -> "AllocationEntry":
        return cls(doc_id=doc_id, doc_size=doc_size, kind=EntryKind.SINGLE, lower=point)

    @classmethod
    def split(
        cls,
        doc_id: str,
        doc_size: int,
        lower: HullPoint,
        upper: HullPoint,
        split_fraction: float,
    ) -> "AllocationEntry":
        if not 0.0 < split_fraction < 1.0:
            raise ValueError(f"split_fraction must be in (0, 1), got {split_fraction}")
        if lower.setting.algorithm != upper.setting.algorithm:
            raise ValueError(f"cannot split {doc_id} across {lower.setting} and {upper.setting}")
        return cls(
            doc_id=doc_id,
            doc_size=doc_size,
            kind=EntryKind.SPLIT,
            lower=lower,
            upper=upper,
            split_fraction=split_fraction,
        )

    @property
    def time(self) -> float:
        if self.kind == EntryKind.STORE:
            return 0.0
        if self.kind == EntryKind.SINGLE:
            return self.lower.time
        f = self.split_fraction
        return f * self.lower.time + (1.0 - f) * self.upper.time

    @property
    def size(self) -> float:
        if self.kind == EntryKind.STORE:
            return float(self.doc_size)
        if self.kind == EntryKind.SINGLE:
            return float(self.lower.size)
        f = self.split_fraction
        return f * self.lower.size + (1.0 - f) * self.upper.size

    @property
    def benefit(self) -> float:
        return self.doc_size - self.size

    @property
    def split_offset(self) -> int:
        """Byte offset where the `upper` setting takes over."""
        if self.kind != EntryKind.SPLIT:
            return self.doc_size
        return int(round(self.split_fraction * self.doc_size))

    @property
    def estimated(self) -> bool:
        return any(p is not None and p.sample.estimated for p in (self.lower, self.upper))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "doc_size": self.doc_size,
            "kind": self.kind.value,
            "lower": self.lower.setting.name if self.lower else None,
            "upper": self.upper.setting.name if self.upper else None,
            "split_fraction": self.split_fraction,
            "split_offset": self.split_offset if self.kind == EntryKind.SPLIT else None,
            "planned_time": self.time,
            "planned_size": self.size,
            "estimated": self.estimated,
        }


@dataclass
class BudgetPlan:
    """Per-document allocation under one global time budget."""
    budget: float
    entries: Dict[str, AllocationEntry] = field(default_factory=dict)
    segments: List[Segment] = field(default_factory=list)  # Global consumption order
    consumed: List[Segment] = field(default_factory=list)
    split_doc: Optional[str] = None

    @property
    def total_time(self) -> float:
        return sum(e.time for e in self.entries.values())

    @property
    def total_size(self) -> float:
        return sum(e.size for e in self.entries.values())

    @property
    def original_size(self) -> int:
        return sum(e.doc_size for e in self.entries.values())

    @property
    def total_benefit(self) -> float:
        return sum(e.benefit for e in self.entries.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "budget": self.budget,
            "total_time": self.total_time,
            "total_size": self.total_size,
            "original_size": self.original_size,
            "total_benefit": self.total_benefit,
            "split_doc": self.split_doc,
            "entries": {doc_id: e.to_dict() for doc_id, e in self.entries.items()},
        }


def build_segments(doc_id: str, doc_size: int, hull: Sequence[HullPoint]) -> List[Segment]:
    """Cut a document's hull into segments, starting from the store baseline.

    The entry segment goes to the hull point with the best rate from the
    baseline (the furthest one on ties). Cheaper hull points before it lie
    above the line from the baseline and are never a greedy stopping point.
    """
    check_convex(hull)
    if not hull:
        return []

    def entry_rate(p: HullPoint) -> float:
        if p.time <= 0:
            return math.inf if doc_size - p.size > 0 else -math.inf
        return (doc_size - p.size) / p.time

    first = 0
    for j in range(1, len(hull)):
        if entry_rate(hull[j]) >= entry_rate(hull[first]):
            first = j

    segments = [Segment(
        doc_id=doc_id,
        index=0,
        start=None,
        end=hull[first],
        cost=hull[first].time,
        benefit=doc_size - hull[first].size,
        remaining_size=doc_size,
    )]
    for k in range(first + 1, len(hull)):
        prev, cur = hull[k - 1], hull[k]
        segments.append(Segment(
            doc_id=doc_id,
            index=len(segments),
            start=prev,
            end=cur,
            cost=cur.time - prev.time,
            benefit=prev.size - cur.size,
            remaining_size=prev.size,
        ))
    return segments


def _best_affordable(
    doc_id: str,
    doc_size: int,
    hull: Sequence[HullPoint],
    remaining: float,
    allow_split: bool = True,
) -> Optional[AllocationEntry]:
    """Smallest entry of one document that fits in `remaining` seconds.

    Walks the unfolded hull: the furthest affordable point, extended by a
    split towards the next point when both use the same algorithm. Returns
    None when nothing affordable shrinks the document.
    """
    k = -1
    for j, p in enumerate(hull):
        if p.time <= remaining:
            k = j
    if k < 0:
        return None

    best = AllocationEntry.single(doc_id, doc_size, hull[k])
    if allow_split and k + 1 < len(hull):
        lower, upper = hull[k], hull[k + 1]
        fraction = (upper.time - remaining) / (upper.time - lower.time)
        if lower.setting.algorithm == upper.setting.algorithm and 0.0 < fraction < 1.0:
            best = AllocationEntry.split(doc_id, doc_size, lower, upper, split_fraction=fraction)
    if best.size >= doc_size:
        return None
    return best


def allocate_budget(
    hulls: Mapping[str, Sequence[HullPoint]],
    doc_sizes: Mapping[str, int],
    budget: float,
) -> BudgetPlan:
    """Greedy global allocation of a time budget across documents.

    Args:
        hulls: doc_id -> lower convex hull (documents with empty hulls are skipped)
        doc_sizes: doc_id -> original size in bytes
        budget: Total time budget in seconds

    Returns:
        BudgetPlan with one entry per document that has a hull

    Raises:
        InfeasibleBudget: if the budget is below every document's cheapest setting
        NonConvexHull: if a hull violates the convexity precondition
    """
    if budget < 0:
        raise ValueError(f"budget must be >= 0, got {budget}")

    hulls = {doc_id: list(h) for doc_id, h in hulls.items() if h}
    if not hulls:
        raise ValueError("No document has a usable hull")

    minimum_budget = min(h[0].time for h in hulls.values())
    if budget < minimum_budget:
        raise InfeasibleBudget(budget, minimum_budget)

    doc_order = {doc_id: n for n, doc_id in enumerate(hulls)}
    per_doc = {
        doc_id: build_segments(doc_id, doc_sizes[doc_id], h)
        for doc_id, h in hulls.items()
    }
    ordered = sorted(
        (s for segs in per_doc.values() for s in segs),
        key=lambda s: (-s.rate, -s.remaining_size, doc_order[s.doc_id], s.index),
    )

    print(
        f"[ALLOCATE] {len(ordered)} segments across {len(hulls)} documents, "
        f"budget {budget:.4f}s",
        flush=True,
    )

    plan = BudgetPlan(budget=budget, segments=ordered)
    position = {doc_id: -1 for doc_id in hulls}
    blocked = set()
    remaining = budget
    split: Optional[AllocationEntry] = None

    for seg in ordered:
        if remaining <= 0:
            break
        if seg.doc_id in blocked or seg.index != position[seg.doc_id] + 1:
            continue
        if seg.benefit <= 0:
            # Every setting enlarges the document
            blocked.add(seg.doc_id)
            continue

        if seg.cost <= remaining:
            remaining -= seg.cost
            position[seg.doc_id] = seg.index
            plan.consumed.append(seg)
        elif seg.divisible:
            fraction = 1.0 - remaining / seg.cost
            # Leftover below float resolution of the segment buys nothing
            if fraction < 1.0:
                split = AllocationEntry.split(
                    seg.doc_id,
                    doc_sizes[seg.doc_id],
                    seg.start,
                    seg.end,
                    split_fraction=fraction,
                )
                plan.consumed.append(seg)
            remaining = 0.0
            break
        else:
            blocked.add(seg.doc_id)

    for doc_id in hulls:
        pos = position[doc_id]
        size = doc_sizes[doc_id]
        if split is not None and split.doc_id == doc_id:
            plan.entries[doc_id] = split
            plan.split_doc = doc_id
        elif pos < 0:
            plan.entries[doc_id] = AllocationEntry.store(doc_id, size)
        else:
            plan.entries[doc_id] = AllocationEntry.single(doc_id, size, per_doc[doc_id][pos].end)

    # Leftover budget: documents still stored may afford the hull points
    # folded into the entry segment they were blocked on
    if remaining > 0:
        stored = [d for d in hulls if plan.entries[d].kind == EntryKind.STORE]
        stored.sort(key=lambda d: (-per_doc[d][0].rate, doc_order[d]))
        for doc_id in stored:
            entry = _best_affordable(
                doc_id, doc_sizes[doc_id], hulls[doc_id], remaining,
                allow_split=plan.split_doc is None,
            )
            if entry is None:
                continue
            plan.entries[doc_id] = entry
            if entry.kind == EntryKind.SPLIT:
                plan.split_doc = doc_id
                remaining = 0.0
                break
            remaining -= entry.time

    for doc_id, entry in plan.entries.items():
        if entry.kind == EntryKind.STORE:
            print(f"[WARN] {doc_id}: no affordable setting reduces its size, storing uncompressed", flush=True)

    print(
        f"[ALLOCATE] planned time {plan.total_time:.4f}s, "
        f"size {plan.total_size:.0f}/{plan.original_size} bytes",
        flush=True,
    )
    return plan
