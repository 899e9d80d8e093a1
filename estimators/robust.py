"""Robust Estimators

Adversarial-resistant location and scatter estimates:
- Catoni-style bounded-influence mean
- Median-of-means
- MRCD: trimmed covariance shrunk toward a trusted prior
- Influence clipping by Mahalanobis distance
- Spectral corridor check between two covariance matrices

All functions are stateless. ``data`` is an (n, d) array-like of samples.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

import numpy as np

from core.exceptions import DimensionMismatchError
from estimators.divergence import mahalanobis_distances
from estimators.linalg import inverse, matrix_power, multiply, symmetric_eig

CATONI_RATIO_CAP = 3.0
CATONI_TOLERANCE = 1e-6
ZERO_RESIDUAL = 1e-9


class CovarianceEstimate(NamedTuple):
    mean: np.ndarray
    covariance: np.ndarray


def as_samples(data) -> np.ndarray:
    x = np.asarray(data, dtype=float)
    if x.ndim != 2 or x.shape[0] == 0 or x.shape[1] == 0:
        raise DimensionMismatchError(f"Expected a non-empty (n, d) sample matrix, got shape {x.shape}")
    return x


def sample_covariance(data, mu) -> np.ndarray:
    """Unbiased scatter of ``data`` around a given center (divides by n - 1)."""
    x = as_samples(data)
    n = x.shape[0]
    if n < 2:
        raise ValueError("Sample covariance needs at least two samples")
    resid = x - np.asarray(mu, dtype=float)
    return (resid.T @ resid) / (n - 1)


def catoni_mean(data, c: float = 2.0, max_iters: int = 10) -> np.ndarray:
    """
    Catoni-style bounded-influence mean.

    Starts at the coordinatewise median and reweights each residual r by
    tanh(min(|r| / c, 3)) / |r|, so a single sample moves the estimate by
    at most a bounded amount however far away it lies.

    Args:
        data: (n, d) samples
        c: influence scale (typically 2-4)
        max_iters: iteration cap

    Returns:
        Robust mean vector of length d
    """
    if c <= 0:
        raise ValueError("c must be positive")
    x = as_samples(data)
    mu = np.median(x, axis=0)

    for _ in range(max_iters):
        resid = x - mu
        norms = np.linalg.norm(resid, axis=1)

        weights = np.ones_like(norms)
        moving = norms >= ZERO_RESIDUAL
        weights[moving] = np.tanh(np.minimum(norms[moving] / c, CATONI_RATIO_CAP)) / norms[moving]

        step = (weights @ resid) / weights.sum()
        mu = mu + step

        if np.linalg.norm(step) < CATONI_TOLERANCE:
            break

    return mu


def median_of_means(data, num_blocks: int = 10, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Coordinatewise median of block means over a random partition.

    Breakdown point is roughly 0.5 - 1 / (2 * num_blocks). The last block
    absorbs the remainder when n is not a multiple of num_blocks.
    """
    x = as_samples(data)
    n = x.shape[0]
    if num_blocks < 1 or num_blocks > n:
        raise ValueError(f"num_blocks must lie in [1, {n}], got {num_blocks}")

    rng = rng or np.random.default_rng()
    shuffled = x[rng.permutation(n)]
    block_size = n // num_blocks

    block_means = []
    for b in range(num_blocks):
        start = b * block_size
        end = n if b == num_blocks - 1 else (b + 1) * block_size
        block_means.append(shuffled[start:end].mean(axis=0))

    return np.median(np.vstack(block_means), axis=0)


def mrcd(
    data,
    alpha: float = 0.3,
    prior_cov=None,
    h: Optional[int] = None,
    n_iter: int = 10,
) -> CovarianceEstimate:
    """
    Minimum regularized covariance determinant (fixed-round approximation).

    Each round keeps the h samples closest to the current estimate in
    Mahalanobis distance, re-estimates mean and raw covariance on them and
    shrinks: alpha * raw + (1 - alpha) * prior.

    Args:
        data: (n, d) samples
        alpha: weight on the raw trimmed covariance, in [0, 1]
        prior_cov: shrinkage target (identity when omitted)
        h: subset size (n // 2 when omitted, never below 2)
        n_iter: number of concentration rounds

    Returns:
        CovarianceEstimate(mean, covariance)
    """
    x = as_samples(data)
    n, d = x.shape
    if n < 2:
        raise ValueError("MRCD needs at least two samples")
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must lie in [0, 1], got {alpha}")

    h = max(n // 2, 2) if h is None else int(h)
    if not 2 <= h <= n:
        raise ValueError(f"h must lie in [2, {n}], got {h}")

    prior = np.eye(d) if prior_cov is None else np.asarray(prior_cov, dtype=float)
    if prior.shape != (d, d):
        raise DimensionMismatchError(f"Prior covariance shape {prior.shape} does not match dimension {d}")

    mu = np.median(x, axis=0)
    sigma = sample_covariance(x, mu)

    for _ in range(n_iter):
        distances = mahalanobis_distances(x, mu, inverse(sigma))
        closest = np.argsort(distances, kind="stable")[:h]
        subset = x[closest]

        mu = subset.mean(axis=0)
        raw = sample_covariance(subset, mu)
        sigma = alpha * raw + (1.0 - alpha) * prior

    return CovarianceEstimate(mean=mu, covariance=sigma)


def influence_clip(data, mu, sigma, radius: float = 3.0, *, sigma_inv=None) -> np.ndarray:
    """
    Pull every sample farther than ``radius`` (Mahalanobis) back onto the radius.

    Samples inside the radius are returned unchanged; the others keep their
    direction from ``mu`` with the residual rescaled to exactly ``radius``.
    """
    if radius <= 0:
        raise ValueError("radius must be positive")
    x = as_samples(data)
    center = np.asarray(mu, dtype=float)
    precision = inverse(sigma) if sigma_inv is None else sigma_inv

    distances = mahalanobis_distances(x, center, precision)
    scale = np.ones_like(distances)
    outside = distances > radius
    scale[outside] = radius / distances[outside]

    return center + (x - center) * scale[:, np.newaxis]


def whitened_eigenvalues(sigma_a, sigma_r=None, *, ref_inv_sqrt=None) -> np.ndarray:
    """Eigenvalues of S_r^{-1/2} S_a S_r^{-1/2}, ascending."""
    if ref_inv_sqrt is None:
        if sigma_r is None:
            raise ValueError("Either sigma_r or ref_inv_sqrt is required")
        ref_inv_sqrt = matrix_power(sigma_r, -0.5)
    whitened = multiply(multiply(ref_inv_sqrt, sigma_a), ref_inv_sqrt)
    eigenvalues, _ = symmetric_eig(whitened)
    return eigenvalues


def within_spectral_band(eigenvalues, tau: float) -> bool:
    eigs = np.asarray(eigenvalues, dtype=float)
    return bool(eigs.min() >= 1.0 - tau and eigs.max() <= 1.0 + tau)


def spectral_corridor_check(sigma_a, sigma_r, tau: float = 0.2) -> bool:
    """True iff every eigenvalue of the whitened matrix lies in [1 - tau, 1 + tau]."""
    return within_spectral_band(whitened_eigenvalues(sigma_a, sigma_r), tau)

