"""
Tests for stratified trust-weighted reservoir sampling.
"""

import numpy as np

from gating.provenance import Provenance
from gating.sampler import StratifiedReservoirSampler


def _tagged(prov):
    """Samples whose first column is their row index."""
    return np.column_stack([np.arange(len(prov), dtype=float), np.zeros(len(prov))])


def _weighted_batch():
    prov = (
        [Provenance("a", 1.0) for _ in range(8)]
        + [Provenance("b", 0.5) for _ in range(8)]
        + [Provenance("c", 0.25) for _ in range(16)]
    )
    return _tagged(prov), prov


class TestStratifiedReservoirSampler:
    """Test quota allocation and weighted selection."""

    def test_quotas_follow_trust_mass(self):
        """Test each stratum gets ceil(trust share * capacity) slots."""
        _, prov = _weighted_batch()
        sampler = StratifiedReservoirSampler(capacity=8, rng=np.random.default_rng(0))
        assert sampler.quotas(prov) == {"a": 4, "b": 2, "c": 2}

    def test_sample_respects_quotas(self):
        """Test the subsample holds each stratum's quota."""
        samples, prov = _weighted_batch()
        sampler = StratifiedReservoirSampler(capacity=8, rng=np.random.default_rng(0))

        out = sampler.sample(samples, prov)
        rows = out[:, 0].astype(int)

        assert len(out) == 8
        assert sum(prov[i].source == "a" for i in rows) == 4
        assert sum(prov[i].source == "b" for i in rows) == 2
        assert sum(prov[i].source == "c" for i in rows) == 2

    def test_strata_in_first_seen_order(self):
        """Test strata are concatenated in first-seen order, rows sorted inside."""
        samples, prov = _weighted_batch()
        out = StratifiedReservoirSampler(capacity=8, rng=np.random.default_rng(1)).sample(samples, prov)
        rows = out[:, 0].astype(int)

        assert all(r < 8 for r in rows[:4])
        assert all(8 <= r < 16 for r in rows[4:6])
        assert all(r >= 16 for r in rows[6:])
        assert list(rows[:4]) == sorted(rows[:4])

    def test_rounding_up_can_exceed_capacity(self):
        """Test three equal strata round 10/3 up to 4 each."""
        prov = [Provenance(s, 1.0) for s in ("a", "b", "c") for _ in range(5)]
        out = StratifiedReservoirSampler(capacity=10, rng=np.random.default_rng(0)).sample(_tagged(prov), prov)
        assert len(out) == 12

    def test_small_batch_kept_whole(self):
        """Test a batch under its quotas is returned in full."""
        prov = [Provenance(s, 0.9) for s in ("a", "b", "c", "d")] * 5
        samples = _tagged(prov)
        out = StratifiedReservoirSampler(capacity=200, rng=np.random.default_rng(0)).sample(samples, prov)
        assert sorted(out[:, 0].astype(int)) == list(range(20))

    def test_high_trust_preferred(self):
        """Test within a stratum heavier trust wins most slots."""
        prov = [Provenance("a", 1.0) for _ in range(50)] + [Provenance("a", 0.05) for _ in range(50)]
        sampler = StratifiedReservoirSampler(capacity=20, rng=np.random.default_rng(42))

        rows = sampler.sample(_tagged(prov), prov)[:, 0].astype(int)

        assert len(rows) == 20
        assert sum(r < 50 for r in rows) >= 15

    def test_seeded_is_reproducible(self):
        """Test equal seeds draw the same subsample."""
        samples, prov = _weighted_batch()
        a = StratifiedReservoirSampler(capacity=8, rng=np.random.default_rng(9)).sample(samples, prov)
        b = StratifiedReservoirSampler(capacity=8, rng=np.random.default_rng(9)).sample(samples, prov)
        np.testing.assert_array_equal(a, b)

    def test_empty_batch(self):
        """Test empty provenance yields an empty subsample."""
        out = StratifiedReservoirSampler(capacity=5).sample(np.zeros((0, 2)), [])
        assert out.shape == (0, 2)

    def test_zero_trust_never_drawn(self):
        """Test zero-trust rows are skipped and an all-zero batch yields nothing."""
        prov = [Provenance("a", 0.0) for _ in range(4)] + [Provenance("a", 0.8) for _ in range(2)]
        out = StratifiedReservoirSampler(capacity=10, rng=np.random.default_rng(1)).sample(_tagged(prov), prov)
        assert sorted(out[:, 0].tolist()) == [4.0, 5.0]

        zero = [Provenance(f"s{i % 3}", 0.0) for i in range(9)]
        empty = StratifiedReservoirSampler(capacity=10).sample(_tagged(zero), zero)
        assert empty.shape == (0, 2)
