"""Provenance, admission control and source-diversity statistics.

Admission filters a batch by per-sample trust and a per-source quota that
applies within a single call. Diversity is measured over the admitted
sources only.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provenance:
    """Origin of one sample"""
    source: str
    trust: float
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if not isinstance(self.source, str) or not self.source:
            raise ValueError("Provenance source must be a non-empty string")
        if not 0.0 <= float(self.trust) <= 1.0:
            raise ValueError(f"Provenance trust must lie in [0, 1], got {self.trust}")

    def to_dict(self) -> dict:
        return {"source": self.source, "trust": self.trust, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Mapping) -> Provenance:
        return cls(
            source=str(data["source"]),
            trust=float(data["trust"]),
            timestamp=float(data.get("timestamp", 0.0)),
        )


def coerce_provenance(items: Iterable) -> list[Provenance]:
    return [p if isinstance(p, Provenance) else Provenance.from_dict(p) for p in items]


@dataclass(frozen=True)
class AdmissionPolicy:
    min_trust: float = 0.3
    max_per_source: int = 50


def admit(
    samples: np.ndarray,
    provenance: Sequence[Provenance],
    policy: AdmissionPolicy = AdmissionPolicy(),
) -> tuple[np.ndarray, list[Provenance]]:
    """
    Apply trust threshold and per-source quota.

    Args:
        samples: (n, d) batch
        provenance: index-aligned provenance for the batch
        policy: admission thresholds

    Returns:
        Tuple of (admitted samples, their provenance), still index-aligned
    """
    counts: Counter = Counter()
    keep: list[int] = []
    dropped_trust = 0
    dropped_quota = 0

    for i, prov in enumerate(provenance):
        if prov.trust < policy.min_trust:
            dropped_trust += 1
            continue
        if counts[prov.source] >= policy.max_per_source:
            dropped_quota += 1
            continue
        counts[prov.source] += 1
        keep.append(i)

    if dropped_trust or dropped_quota:
        logger.debug(
            f"Admission dropped {dropped_trust} low-trust and {dropped_quota} over-quota samples "
            f"({len(keep)}/{len(provenance)} admitted)"
        )

    admitted = samples[keep] if keep else samples[:0]
    return admitted, [provenance[i] for i in keep]


def shannon_entropy(labels: Sequence[str]) -> float:
    """Base-2 entropy of the label distribution."""
    total = len(labels)
    if total == 0:
        return 0.0
    entropy = 0.0
    for count in Counter(labels).values():
        p = count / total
        entropy -= p * math.log2(p)
    return entropy


def herfindahl_index(labels: Sequence[str]) -> float:
    """Sum of squared label shares (1.0 = a single label)."""
    total = len(labels)
    if total == 0:
        return 0.0
    return sum((count / total) ** 2 for count in Counter(labels).values())


@dataclass(frozen=True)
class DiversityReport:
    unique_sources: int
    entropy_bits: float
    herfindahl: float

    def sufficient(self, min_sources: int, min_entropy_bits: float) -> bool:
        return self.unique_sources >= min_sources and self.entropy_bits >= min_entropy_bits


def assess_diversity(provenance: Sequence[Provenance]) -> DiversityReport:
    sources = [p.source for p in provenance]
    return DiversityReport(
        unique_sources=len(set(sources)),
        entropy_bits=shannon_entropy(sources),
        herfindahl=herfindahl_index(sources),
    )
