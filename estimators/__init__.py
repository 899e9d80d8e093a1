"""Robust estimator library

Stateless numerical building blocks for the multi-model gate:

- linalg:     Gauss-Jordan inverse, LU log-determinant, symmetric eigen, matrix powers
- divergence: Mahalanobis distances, closed-form Gaussian KL divergence
- robust:     bounded-influence mean, median-of-means, MRCD, influence
              clipping, spectral corridor check
"""

from __future__ import annotations

from estimators.divergence import gaussian_kl, mahalanobis_distances, mahalanobis_norm
from estimators.linalg import inverse, log_det, matrix_power, matvec, multiply, symmetric_eig
from estimators.robust import (
    CovarianceEstimate,
    catoni_mean,
    influence_clip,
    median_of_means,
    mrcd,
    spectral_corridor_check,
    whitened_eigenvalues,
)

__all__ = [
    "CovarianceEstimate",
    "catoni_mean",
    "gaussian_kl",
    "influence_clip",
    "inverse",
    "log_det",
    "mahalanobis_distances",
    "mahalanobis_norm",
    "matrix_power",
    "matvec",
    "median_of_means",
    "mrcd",
    "multiply",
    "spectral_corridor_check",
    "symmetric_eig",
    "whitened_eigenvalues",
]
