"""Model state and gate metrics records."""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np


@dataclass(frozen=True)
class ModelState:
    """
    Gaussian summary of the stream held by the gate.

    Attributes:
        mean: location vector (length d)
        covariance: scatter matrix (d x d)
        updated_at: clock reading of the last update
        checkpoint: checkpoint index this state was captured as (0 if never)
    """
    mean: np.ndarray
    covariance: np.ndarray
    updated_at: float
    checkpoint: int = 0

    @property
    def dim(self) -> int:
        return int(self.mean.shape[0])

    def copy(self, **changes) -> ModelState:
        """Deep copy; keyword arguments replace fields on the copy."""
        fields = {
            "mean": np.array(self.mean, dtype=float, copy=True),
            "covariance": np.array(self.covariance, dtype=float, copy=True),
            "updated_at": self.updated_at,
            "checkpoint": self.checkpoint,
        }
        fields.update(changes)
        return ModelState(**fields)

    def to_dict(self) -> dict:
        return {
            "mean": self.mean.tolist(),
            "covariance": self.covariance.tolist(),
            "updated_at": self.updated_at,
            "checkpoint": self.checkpoint,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ModelState:
        return cls(
            mean=np.asarray(data["mean"], dtype=float),
            covariance=np.asarray(data["covariance"], dtype=float),
            updated_at=float(data["updated_at"]),
            checkpoint=int(data.get("checkpoint", 0)),
        )


@dataclass
class GateMetrics:
    """
    Running snapshot of gate health.

    Attributes:
        mahalanobis_drift: last candidate mean distance from the reference
        spectral_norm: largest whitened eigenvalue of the last candidate
        kl_divergence: KL(candidate || reference) of the last candidate
        provenance_entropy: base-2 entropy of admitted sources
        herfindahl_index: sum of squared source shares
        anchor_anomaly_rate: share of golden points anomalous under the adaptive model
        update_rejections: corridor rejections inside the rolling window
        total_rejections: lifetime corridor rejections
        toxicity: externally supplied flow toxicity score
    """
    mahalanobis_drift: float = 0.0
    spectral_norm: float = 1.0
    kl_divergence: float = 0.0
    provenance_entropy: float = 0.0
    herfindahl_index: float = 0.0
    anchor_anomaly_rate: float = 0.0
    update_rejections: int = 0
    total_rejections: int = 0
    toxicity: float = 0.0

    def copy(self) -> GateMetrics:
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "mahalanobis_drift": self.mahalanobis_drift,
            "spectral_norm": self.spectral_norm,
            "kl_divergence": self.kl_divergence,
            "provenance_entropy": self.provenance_entropy,
            "herfindahl_index": self.herfindahl_index,
            "anchor_anomaly_rate": self.anchor_anomaly_rate,
            "update_rejections": self.update_rejections,
            "total_rejections": self.total_rejections,
            "toxicity": self.toxicity,
        }
