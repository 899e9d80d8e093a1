from __future__ import annotations

from typing import Optional

import numpy as np

from core.exceptions import DimensionMismatchError
from estimators.linalg import inverse, log_det


def mahalanobis_distances(data, mu, sigma_inv) -> np.ndarray:
    """Row-wise Mahalanobis distance of ``data`` from ``mu`` under a precomputed inverse covariance."""
    x = np.atleast_2d(np.asarray(data, dtype=float))
    center = np.asarray(mu, dtype=float)
    precision = np.asarray(sigma_inv, dtype=float)
    if x.shape[1] != center.shape[0] or precision.shape != (center.shape[0], center.shape[0]):
        raise DimensionMismatchError(
            f"Mahalanobis shapes disagree: data {x.shape}, mean {center.shape}, precision {precision.shape}"
        )
    diffs = x - center
    d2 = np.einsum("ij,jk,ik->i", diffs, precision, diffs)
    return np.sqrt(np.maximum(d2, 0.0))


def mahalanobis_norm(x, sigma_inv) -> float:
    v = np.asarray(x, dtype=float)
    return float(mahalanobis_distances(v[np.newaxis, :], np.zeros_like(v), sigma_inv)[0])


def gaussian_kl(
    mu_c,
    sigma_c,
    mu_r,
    sigma_r,
    *,
    sigma_r_inv: Optional[np.ndarray] = None,
    log_det_r: Optional[float] = None,
) -> float:
    """
    KL(N(mu_c, sigma_c) || N(mu_r, sigma_r)) in nats.

    0.5 * [tr(S_r^-1 S_c) + (mu_r - mu_c)^T S_r^-1 (mu_r - mu_c) - d + ln(det S_r / det S_c)]

    The reference inverse and log-determinant may be passed in when the
    caller already holds them.
    """
    mc = np.asarray(mu_c, dtype=float)
    mr = np.asarray(mu_r, dtype=float)
    sc = np.asarray(sigma_c, dtype=float)
    d = mc.shape[0]
    if mr.shape != (d,) or sc.shape != (d, d):
        raise DimensionMismatchError("KL divergence operands have mismatched dimensions")

    precision = inverse(sigma_r) if sigma_r_inv is None else np.asarray(sigma_r_inv, dtype=float)
    ld_r = log_det(sigma_r) if log_det_r is None else float(log_det_r)

    trace_term = float(np.trace(precision @ sc))
    diff = mr - mc
    quad_term = float(diff @ precision @ diff)
    return 0.5 * (trace_term + quad_term - d + ld_r - log_det(sc))
