"""Dense linear-algebra primitives used by the robust estimators.

Matrices are 2-D float arrays. Inversion is explicit Gauss-Jordan with
partial pivoting so that near-singular covariances are reported as
``SingularMatrixError`` instead of silently producing huge entries.
"""

from __future__ import annotations

import numpy as np

from core.exceptions import DimensionMismatchError, SingularMatrixError

PIVOT_TOLERANCE = 1e-12
LOG_DET_FLOOR = 1e-10
EIGEN_FLOOR = 1e-10


def as_square(a) -> np.ndarray:
    m = np.asarray(a, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise DimensionMismatchError(f"Expected a square matrix, got shape {m.shape}")
    return m


def inverse(a) -> np.ndarray:
    """
    Invert a square matrix by Gauss-Jordan elimination with partial pivoting.

    Raises:
        SingularMatrixError: if a pivot magnitude falls below 1e-12
    """
    m = as_square(a)
    n = m.shape[0]
    aug = np.hstack([m, np.eye(n)])

    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(aug[i:, i])))
        if pivot_row != i:
            aug[[i, pivot_row]] = aug[[pivot_row, i]]

        pivot = aug[i, i]
        if abs(pivot) < PIVOT_TOLERANCE:
            raise SingularMatrixError("Matrix is singular and cannot be inverted")
        aug[i] /= pivot

        factors = aug[:, i].copy()
        factors[i] = 0.0
        aug -= np.outer(factors, aug[i])

    return aug[:, n:]


def multiply(a, b) -> np.ndarray:
    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    if left.ndim != 2 or right.ndim != 2 or left.shape[1] != right.shape[0]:
        raise DimensionMismatchError(f"Cannot multiply shapes {left.shape} and {right.shape}")
    return left @ right


def matvec(a, v) -> np.ndarray:
    m = np.asarray(a, dtype=float)
    x = np.asarray(v, dtype=float)
    if m.ndim != 2 or x.ndim != 1 or m.shape[1] != x.shape[0]:
        raise DimensionMismatchError(f"Cannot multiply matrix {m.shape} by vector {x.shape}")
    return m @ x


def log_det(a) -> float:
    """
    Log-determinant from an LU (Doolittle) factorisation.

    Each pivot and each diagonal term of U is floored by 1e-10, so the
    result stays finite for nearly singular input.
    """
    u = as_square(a).copy()
    n = u.shape[0]

    for i in range(n):
        for k in range(i + 1, n):
            factor = u[k, i] / (u[i, i] + LOG_DET_FLOOR)
            u[k, i:] -= factor * u[i, i:]

    return float(np.sum(np.log(np.abs(np.diag(u)) + LOG_DET_FLOOR)))


def symmetric_eig(a) -> tuple[np.ndarray, np.ndarray]:
    """Eigenvalues (ascending) and orthonormal eigenvectors of a symmetric matrix."""
    m = as_square(a)
    sym = 0.5 * (m + m.T)
    eigenvalues, eigenvectors = np.linalg.eigh(sym)
    return eigenvalues, eigenvectors


def matrix_power(a, p: float) -> np.ndarray:
    """
    Real power of a symmetric positive semi-definite matrix.

    Reconstructs ``V diag(max(lambda, 1e-10) ** p) V^T``.
    """
    eigenvalues, eigenvectors = symmetric_eig(a)
    scaled = np.power(np.maximum(eigenvalues, EIGEN_FLOOR), p)
    return (eigenvectors * scaled) @ eigenvectors.T
