"""Stratified trust-weighted reservoir sampling."""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import numpy as np

from gating.provenance import Provenance

logger = logging.getLogger(__name__)


class StratifiedReservoirSampler:
    """
    Balanced subsample across sources.

    Each source (stratum) gets ceil(stratum_trust / total_trust * capacity)
    slots. Inside a stratum, sample i draws key U ** (1 / trust_i) and the
    largest keys win (Efraimidis-Spirakis weighted reservoir). Rounding up
    per stratum means the result can slightly exceed ``capacity``.
    """

    def __init__(self, capacity: int = 200, rng: Optional[np.random.Generator] = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.rng: np.random.Generator = rng or np.random.default_rng()

    def quotas(self, provenance: Sequence[Provenance]) -> dict[str, int]:
        strata = self._group(provenance)
        total_trust = sum(p.trust for p in provenance)
        if total_trust <= 0:
            return {source: 0 for source in strata}
        return {
            source: math.ceil(sum(provenance[i].trust for i in idx) / total_trust * self.capacity)
            for source, idx in strata.items()
        }

    def sample(self, samples: np.ndarray, provenance: Sequence[Provenance]) -> np.ndarray:
        """
        Draw the stratified subsample.

        Args:
            samples: (n, d) admitted batch
            provenance: index-aligned provenance

        Returns:
            Selected rows, strata concatenated in first-seen source order
        """
        if len(provenance) == 0:
            return samples[:0]

        strata = self._group(provenance)
        quotas = self.quotas(provenance)

        chosen: list[int] = []
        for source, idx in strata.items():
            chosen.extend(self._weighted_reservoir(idx, provenance, quotas[source]))

        logger.debug(f"Stratified sample: {len(chosen)} rows from {len(strata)} strata")
        return samples[chosen]

    def _weighted_reservoir(self, idx: list[int], provenance: Sequence[Provenance], k: int) -> list[int]:
        # zero-trust rows carry no weight and are never drawn
        idx = [i for i in idx if provenance[i].trust > 0]
        if k <= 0 or not idx:
            return []
        trust = np.array([provenance[i].trust for i in idx], dtype=float)
        keys = np.power(self.rng.random(len(idx)), 1.0 / trust)
        top = np.argsort(-keys, kind="stable")[:k]
        return [idx[j] for j in sorted(top)]

    @staticmethod
    def _group(provenance: Sequence[Provenance]) -> dict[str, list[int]]:
        strata: dict[str, list[int]] = {}
        for i, prov in enumerate(provenance):
            strata.setdefault(prov.source, []).append(i)
        return strata
