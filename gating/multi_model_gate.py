"""Multi-Model Gate

Adversarial-resistant dual-model architecture:
- Adaptive model: learns from the live stream
- Reference model: robust fit of the golden set, never updated
- Gating: accept an adaptive update only inside the corridor of the reference
- Circuit breakers: freeze, roll back or alert on anomalies
- Rollback: restore the newest checkpoint wholesale

Update pipeline (one atomic decision per batch):
1. Admission control (trust threshold, per-source quota)
2. Diversity guard (distinct sources, provenance entropy)
3. Stratified trust-weighted reservoir sampling
4. Influence clipping against the current adaptive model
5. Robust re-estimation (Catoni mean + MRCD shrunk toward the reference)
6. Corridor check (Mahalanobis drift -> spectral band -> KL divergence)
7. Bounded EMA merge into the adaptive model
8. Circuit breaker evaluation
9. Periodic checkpoint

Steps 1-6 run on a snapshot of the adaptive model; metric recording and
steps 7-9 run under the gate lock, so concurrent updates never interleave
their mutations.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import numpy as np

from core.config import GateConfig
from core.exceptions import DimensionMismatchError
from estimators.divergence import gaussian_kl, mahalanobis_distances, mahalanobis_norm
from estimators.linalg import inverse, log_det, matrix_power
from estimators.robust import (
    as_samples,
    catoni_mean,
    influence_clip,
    mrcd,
    whitened_eigenvalues,
    within_spectral_band,
)
from gating.checkpoints import CheckpointStore
from gating.circuit_breaker import (
    BreakerAction,
    CircuitBreaker,
    CircuitBreakerRegistry,
    default_breakers,
)
from gating.model_state import GateMetrics, ModelState
from gating.provenance import AdmissionPolicy, Provenance, admit, assess_diversity, coerce_provenance
from gating.sampler import StratifiedReservoirSampler

logger = logging.getLogger(__name__)

AlertSink = Callable[[str, str], None]

LEARNING_RATE_SOURCE_FACTOR = 0.1


class GateMode(Enum):
    LIVE = "live"
    FROZEN = "frozen"


class RejectionKind(Enum):
    """Expected (non-exceptional) ways an update can be turned down"""
    FROZEN = "frozen"
    ALL_SAMPLES_REJECTED = "all_samples_rejected"
    INSUFFICIENT_DIVERSITY = "insufficient_diversity"
    MEAN_DRIFT = "mean_drift"
    SPECTRAL = "spectral"
    KL_DIVERGENCE = "kl_divergence"


@dataclass(frozen=True)
class UpdateResult:
    accepted: bool
    reason: Optional[str] = None
    rejection: Optional[RejectionKind] = None

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "reason": self.reason,
            "rejection": self.rejection.value if self.rejection else None,
        }


@dataclass(frozen=True)
class CorridorVerdict:
    """Outcome of the corridor check; unset metrics were not reached"""
    passed: bool
    mahalanobis_drift: float
    spectral_norm: Optional[float] = None
    kl_divergence: Optional[float] = None
    rejection: Optional[RejectionKind] = None
    reason: Optional[str] = None


class MultiModelGate:
    """
    Keeps an adaptive model inside a corridor around a golden reference.

    The reference is fitted once with MRCD (shrunk toward identity) and its
    inverse, inverse square root and log-determinant are cached. The adaptive
    model starts as a copy of the reference and changes only through the
    bounded merge or a wholesale rollback.
    """

    def __init__(
        self,
        golden_set,
        config: Union[GateConfig, Mapping[str, Any], None] = None,
        alert_sink: Optional[AlertSink] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[np.random.Generator] = None,
        breakers: Optional[Sequence[CircuitBreaker]] = None,
    ):
        """
        Initialize the gate.

        Args:
            golden_set: (n, d) trusted samples, n >= 2
            config: GateConfig or a mapping of overrides on the defaults
            alert_sink: optional callable(type, message), invoked synchronously
            clock: monotonic time source in seconds
            rng: random generator for reservoir sampling
            breakers: replaces the default circuit breaker set
        """
        self.config = config if isinstance(config, GateConfig) else GateConfig.from_overrides(config)
        self._clock = clock
        self._alert_sink = alert_sink
        self._lock = threading.RLock()

        golden = as_samples(golden_set)
        if golden.shape[0] < 2:
            raise ValueError("Golden set needs at least two samples")
        if not np.all(np.isfinite(golden)):
            raise ValueError("Golden set contains non-finite values")
        self._golden = golden.copy()

        now = clock()
        reference = mrcd(golden, alpha=self.config.reference_shrinkage)
        self._reference = ModelState(
            mean=reference.mean,
            covariance=reference.covariance,
            updated_at=now,
        )
        self._ref_inv = inverse(reference.covariance)
        self._ref_inv_sqrt = matrix_power(reference.covariance, -0.5)
        self._ref_log_det = log_det(reference.covariance)

        self._adaptive = self._reference.copy()

        self._checkpoints = CheckpointStore(self.config.checkpoint_capacity)
        self._checkpoints.capture(self._adaptive)
        self._last_checkpoint_at = now

        self._metrics = GateMetrics()
        self._rejection_times: deque[float] = deque()

        self._breakers = CircuitBreakerRegistry(
            default_breakers(self.config) if breakers is None else breakers,
            clock,
        )
        self._frozen_until: Optional[float] = None
        self._frozen_by: Optional[str] = None

        self._admission = AdmissionPolicy(
            min_trust=self.config.min_trust,
            max_per_source=self.config.max_per_source,
        )
        self._sampler = StratifiedReservoirSampler(self.config.sample_capacity, rng=rng)

        logger.info(
            f"Multi-model gate initialized: dim={self.dim}, golden_samples={golden.shape[0]}, "
            f"tau_mu={self.config.tau_mu}, tau_sigma={self.config.tau_sigma}, kl={self.config.kl_threshold}"
        )

    @property
    def dim(self) -> int:
        return self._reference.dim

    # ------------------------------------------------------------------
    # Update pipeline
    # ------------------------------------------------------------------

    def robust_update(self, batch, provenance: Sequence[Union[Provenance, Mapping]]) -> UpdateResult:
        """
        Run one batch through the gated update pipeline.

        Args:
            batch: (n, d) samples
            provenance: index-aligned Provenance records (or mappings with
                source/trust/timestamp)

        Returns:
            UpdateResult; rejections are results, never exceptions

        Raises:
            DimensionMismatchError: batch/provenance lengths or dimension disagree
            ValueError: non-finite samples or invalid provenance
            SingularMatrixError: a covariance could not be inverted; nothing
                about the models has changed
        """
        samples, prov = self._validate_batch(batch, provenance)

        with self._lock:
            if self._is_frozen():
                return self._frozen_result()
            adaptive = self._adaptive.copy()

        # 1. Admission control
        admitted, admitted_prov = admit(samples, prov, self._admission)
        if not admitted_prov:
            logger.info("Update rejected: all samples rejected by admission control")
            return UpdateResult(
                accepted=False,
                reason="All samples rejected by admission control",
                rejection=RejectionKind.ALL_SAMPLES_REJECTED,
            )

        # 2. Diversity guard
        diversity = assess_diversity(admitted_prov)
        with self._lock:
            self._metrics.provenance_entropy = diversity.entropy_bits
            self._metrics.herfindahl_index = diversity.herfindahl

        if not diversity.sufficient(self.config.min_unique_sources, self.config.min_entropy_bits):
            logger.info(
                f"Update rejected: {diversity.unique_sources} sources, "
                f"entropy={diversity.entropy_bits:.3f} bits"
            )
            return UpdateResult(
                accepted=False,
                reason=(
                    f"Insufficient source diversity: {diversity.unique_sources} sources, "
                    f"entropy {diversity.entropy_bits:.3f} bits"
                ),
                rejection=RejectionKind.INSUFFICIENT_DIVERSITY,
            )

        # 3. Stratified reservoir sampling (generator is not thread-safe)
        with self._lock:
            sampled = self._sampler.sample(admitted, admitted_prov)

        if sampled.shape[0] < 2:
            logger.info(f"Update rejected: only {sampled.shape[0]} samples carry positive trust")
            return UpdateResult(
                accepted=False,
                reason=f"Too few trusted samples to estimate: {sampled.shape[0]}",
                rejection=RejectionKind.ALL_SAMPLES_REJECTED,
            )

        # 4. Influence clipping against the current adaptive model
        clipped = influence_clip(sampled, adaptive.mean, adaptive.covariance, self.config.clip_radius)

        # 5. Robust re-estimation, shrunk toward the reference
        candidate_mean = catoni_mean(clipped, c=self.config.catoni_c)
        candidate_cov = mrcd(
            clipped,
            alpha=self.config.candidate_shrinkage,
            prior_cov=self._reference.covariance,
        ).covariance

        # 6. Corridor check
        verdict = self._check_corridor(candidate_mean, candidate_cov)

        with self._lock:
            # a concurrent update may have frozen the gate since the snapshot
            if self._is_frozen():
                return self._frozen_result()

            self._record_corridor_metrics(verdict)

            if not verdict.passed:
                self._register_rejection(verdict)
                return UpdateResult(
                    accepted=False,
                    reason=f"Gate violation: {verdict.reason}",
                    rejection=verdict.rejection,
                )

            # 7. Bounded merge
            eta = self.learning_rate(diversity.unique_sources)
            self._merge(candidate_mean, candidate_cov, eta)

            # 8. Circuit breakers
            self._check_circuit_breakers()

            # 9. Periodic checkpoint
            if self._clock() - self._last_checkpoint_at >= self.config.checkpoint_interval_seconds:
                self._checkpoint_locked()

        logger.info(
            f"Update accepted: eta={eta:.4f}, drift={verdict.mahalanobis_drift:.3f}, "
            f"kl={verdict.kl_divergence:.4f}, sampled={sampled.shape[0]}"
        )
        return UpdateResult(accepted=True)

    def learning_rate(self, unique_sources: int) -> float:
        """eta = min(eta_max, 1 / (1 + 0.1 * unique_sources)), independent of batch size."""
        return min(self.config.eta_max, 1.0 / (1.0 + LEARNING_RATE_SOURCE_FACTOR * unique_sources))

    def _frozen_result(self) -> UpdateResult:
        remaining = self._frozen_until - self._clock()
        return UpdateResult(
            accepted=False,
            reason=f"Learning frozen by {self._frozen_by} ({remaining:.0f}s remaining)",
            rejection=RejectionKind.FROZEN,
        )

    def _validate_batch(self, batch, provenance) -> tuple[np.ndarray, list[Provenance]]:
        prov = coerce_provenance(provenance)
        samples = np.asarray(batch, dtype=float)
        if samples.size == 0:
            samples = samples.reshape(0, self.dim)

        if samples.ndim != 2 or samples.shape[1] != self.dim:
            raise DimensionMismatchError(
                f"Batch must have shape (n, {self.dim}), got {samples.shape}"
            )
        if samples.shape[0] != len(prov):
            raise DimensionMismatchError(
                f"Batch has {samples.shape[0]} samples but provenance has {len(prov)} entries"
            )
        if not np.all(np.isfinite(samples)):
            raise ValueError("Batch contains non-finite values")
        return samples, prov

    def _check_corridor(self, mean: np.ndarray, covariance: np.ndarray) -> CorridorVerdict:
        """
        Compare a candidate against the reference, stopping at the first failure.

        1. ||mu_c - mu_R|| under Sigma_R^{-1} <= tau_mu
        2. eigenvalues of Sigma_R^{-1/2} Sigma_c Sigma_R^{-1/2} in [1 - tau_sigma, 1 + tau_sigma]
        3. KL(candidate || reference) <= kl_threshold
        """
        cfg = self.config

        drift = mahalanobis_norm(mean - self._reference.mean, self._ref_inv)
        if drift > cfg.tau_mu:
            return CorridorVerdict(
                passed=False,
                mahalanobis_drift=drift,
                rejection=RejectionKind.MEAN_DRIFT,
                reason=f"Mean drift too large: {drift:.3f} > {cfg.tau_mu}",
            )

        eigenvalues = whitened_eigenvalues(covariance, ref_inv_sqrt=self._ref_inv_sqrt)
        spectral = float(eigenvalues.max())
        if not within_spectral_band(eigenvalues, cfg.tau_sigma):
            return CorridorVerdict(
                passed=False,
                mahalanobis_drift=drift,
                spectral_norm=spectral,
                rejection=RejectionKind.SPECTRAL,
                reason=(
                    f"Spectral norm outside corridor (±{cfg.tau_sigma}): "
                    f"eigenvalues in [{eigenvalues.min():.3f}, {spectral:.3f}]"
                ),
            )

        kl = gaussian_kl(
            mean,
            covariance,
            self._reference.mean,
            self._reference.covariance,
            sigma_r_inv=self._ref_inv,
            log_det_r=self._ref_log_det,
        )
        if kl > cfg.kl_threshold:
            return CorridorVerdict(
                passed=False,
                mahalanobis_drift=drift,
                spectral_norm=spectral,
                kl_divergence=kl,
                rejection=RejectionKind.KL_DIVERGENCE,
                reason=f"KL divergence too large: {kl:.4f} > {cfg.kl_threshold}",
            )

        return CorridorVerdict(
            passed=True,
            mahalanobis_drift=drift,
            spectral_norm=spectral,
            kl_divergence=kl,
        )

    def _record_corridor_metrics(self, verdict: CorridorVerdict) -> None:
        self._metrics.mahalanobis_drift = verdict.mahalanobis_drift
        if verdict.spectral_norm is not None:
            self._metrics.spectral_norm = verdict.spectral_norm
        if verdict.kl_divergence is not None:
            self._metrics.kl_divergence = verdict.kl_divergence

    def _register_rejection(self, verdict: CorridorVerdict) -> None:
        now = self._clock()
        self._rejection_times.append(now)
        self._refresh_rejection_count(now)
        self._metrics.total_rejections += 1

        logger.info(
            f"Update rejected ({verdict.rejection.value}): {verdict.reason} "
            f"[{self._metrics.update_rejections} in window]"
        )

        if self._metrics.update_rejections > self.config.rejection_limit:
            self._rollback_locked()
            self._alert("GATE_VIOLATION", verdict.reason or "Gate rejection threshold exceeded")

    def _refresh_rejection_count(self, now: float) -> None:
        horizon = now - self.config.rejection_window_seconds
        while self._rejection_times and self._rejection_times[0] <= horizon:
            self._rejection_times.popleft()
        self._metrics.update_rejections = len(self._rejection_times)

    def _merge(self, candidate_mean: np.ndarray, candidate_cov: np.ndarray, eta: float) -> None:
        """
        EMA merge with bounded step.

        The merged state and its anchor anomaly rate are computed first and
        committed together.
        """
        current = self._adaptive
        merged = ModelState(
            mean=(1.0 - eta) * current.mean + eta * candidate_mean,
            covariance=(1.0 - eta) * current.covariance + eta * candidate_cov,
            updated_at=self._clock(),
            checkpoint=current.checkpoint,
        )
        anomaly_rate = self._anchor_anomaly_rate(merged)

        self._adaptive = merged
        self._metrics.anchor_anomaly_rate = anomaly_rate

    def _anchor_anomaly_rate(self, state: ModelState) -> float:
        """Fraction of golden points farther than the anchor cutoff under ``state``."""
        distances = mahalanobis_distances(self._golden, state.mean, inverse(state.covariance))
        return float(np.mean(distances > self.config.anchor_cutoff))

    # ------------------------------------------------------------------
    # Circuit breakers, freeze, rollback, checkpoints
    # ------------------------------------------------------------------

    def _check_circuit_breakers(self) -> None:
        self._refresh_rejection_count(self._clock())

        for breaker in self._breakers.evaluate(self._metrics):
            alert_type = breaker.name.upper()
            if breaker.action is BreakerAction.ROLLBACK:
                self._rollback_locked()
                self._alert(alert_type, "Automatic rollback triggered")
            elif breaker.action is BreakerAction.FREEZE:
                self._freeze(breaker)
                self._alert(alert_type, "Learning frozen")
            else:
                self._alert(alert_type, "Threshold exceeded")

    def _freeze(self, breaker: CircuitBreaker) -> None:
        until = self._clock() + breaker.cooldown_seconds
        if self._frozen_until is None or until > self._frozen_until:
            self._frozen_until = until
            self._frozen_by = breaker.name
        logger.warning(f"Learning frozen by {breaker.name} for {breaker.cooldown_seconds:.0f}s")

    def _is_frozen(self) -> bool:
        if self._frozen_until is None:
            return False
        if self._clock() < self._frozen_until:
            return True
        logger.info(f"Freeze by {self._frozen_by} expired, gate is live again")
        self._frozen_until = None
        self._frozen_by = None
        return False

    @property
    def mode(self) -> GateMode:
        with self._lock:
            return GateMode.FROZEN if self._is_frozen() else GateMode.LIVE

    def rollback(self) -> bool:
        """
        Replace the adaptive model with a copy of the newest checkpoint.

        Returns:
            True if a checkpoint was restored, False if history was empty
        """
        with self._lock:
            return self._rollback_locked()

    def _rollback_locked(self) -> bool:
        checkpoint = self._checkpoints.latest()
        if checkpoint is None:
            logger.error("No checkpoints available for rollback")
            return False

        self._adaptive = checkpoint
        self._metrics.anchor_anomaly_rate = self._anchor_anomaly_rate(checkpoint)
        logger.warning(
            f"[ROLLBACK] Reverted to checkpoint {checkpoint.checkpoint} (captured at {checkpoint.updated_at:.3f})"
        )
        return True

    def checkpoint(self) -> ModelState:
        """Snapshot the adaptive model; returns a copy of the stored checkpoint."""
        with self._lock:
            return self._checkpoint_locked()

    def _checkpoint_locked(self) -> ModelState:
        snapshot = self._checkpoints.capture(self._adaptive)
        self._last_checkpoint_at = self._clock()
        return snapshot

    def set_toxicity(self, score: float) -> None:
        """Feed the externally computed flow-toxicity score (VPIN-like, in [0, 1])."""
        score = float(score)
        if not math.isfinite(score) or not 0.0 <= score <= 1.0:
            raise ValueError(f"Toxicity score must lie in [0, 1], got {score}")
        with self._lock:
            self._metrics.toxicity = score

    def _alert(self, alert_type: str, message: str) -> None:
        logger.error(f"[ALERT] {alert_type}: {message}")
        if self._alert_sink is None:
            return
        try:
            self._alert_sink(alert_type, message)
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Alert sink failed for {alert_type}: {e}")

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def get_metrics(self) -> GateMetrics:
        with self._lock:
            return self._metrics.copy()

    def get_models(self) -> dict[str, ModelState]:
        with self._lock:
            return {
                "adaptive": self._adaptive.copy(),
                "reference": self._reference.copy(),
            }

    def get_checkpoints(self) -> list[ModelState]:
        with self._lock:
            return self._checkpoints.snapshots()

    def status(self) -> dict:
        """JSON-ready view for dashboards and the CLI."""
        with self._lock:
            frozen = self._is_frozen()
            latest = self._checkpoints.latest()
            return {
                "mode": GateMode.FROZEN.value if frozen else GateMode.LIVE.value,
                "frozen_by": self._frozen_by if frozen else None,
                "freeze_remaining": max(0.0, self._frozen_until - self._clock()) if frozen else 0.0,
                "dim": self.dim,
                "metrics": self._metrics.to_dict(),
                "checkpoints": len(self._checkpoints),
                "latest_checkpoint": latest.checkpoint if latest else None,
                "breakers": self._breakers.get_status(),
                "config": self.config.to_dict(),
            }
