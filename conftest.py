"""pytest configuration for robust gate tests"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure repository root is in Python path
repo_root = Path(__file__).parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from gating.provenance import Provenance  # noqa: E402


class FakeClock:
    """Settable monotonic clock for cooldown and checkpoint tests."""

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def advance(self, seconds: float) -> None:
        self.now += float(seconds)

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def golden_set():
    """
    200 points in 2-D, uniform on [-2.75, 2.75]^2, mirrored through the origin.

    Mirroring pins the median (and so the robust center) at the origin. The
    range is chosen so the trimmed covariance is close to the identity the
    reference is shrunk toward; a re-submitted golden batch then stays in the
    spectral band. A standard-normal set of this size does not (whitened
    eigenvalues near 0.82).
    """
    half = np.random.default_rng(7).uniform(-2.75, 2.75, size=(100, 2))
    return np.vstack([half, -half])


@pytest.fixture
def make_provenance():
    """Builder: n records cycling over ``sources`` distinct source ids."""

    def _make(n: int, sources: int = 8, trust: float = 0.9, prefix: str = "src") -> list[Provenance]:
        return [
            Provenance(source=f"{prefix}-{i % sources}", trust=trust, timestamp=float(i))
            for i in range(n)
        ]

    return _make


@pytest.fixture
def restore_root_logger():
    """Undo handlers and level changes made by setup_logger."""
    import logging

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers = handlers
    root.setLevel(level)
