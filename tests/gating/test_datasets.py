"""
Tests for golden-set and stream loaders.
"""

import numpy as np
import pandas as pd
import pytest

from core.exceptions import DimensionMismatchError
from gating.datasets import feature_columns, iter_stream_batches, load_frame, load_golden_set


@pytest.fixture
def stream_frame():
    return pd.DataFrame(
        {
            "x": [1.0, 2.0, 3.0, 4.0, 5.0],
            "y": [0.5, 0.5, 0.5, 0.5, 0.5],
            "source": ["a", "b", "a", "c", "b"],
            "trust": [0.9, 0.8, 0.9, 0.7, 0.8],
            "timestamp": [10.0, 11.0, 12.0, 13.0, 14.0],
            "batch": ["k2", "k1", "k2", "k1", "k2"],
            "toxicity": [0.1, 0.2, 0.3, np.nan, 0.05],
        }
    )


class TestLoadGoldenSet:
    """Test golden-set loading."""

    def test_csv_numeric_columns(self, tmp_path):
        """Test all numeric non-provenance columns become features."""
        path = tmp_path / "golden.csv"
        pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [4.0, 5.0, 6.0], "source": ["s", "s", "s"]}).to_csv(
            path, index=False
        )

        data, cols = load_golden_set(path)

        assert cols == ["a", "b"]
        np.testing.assert_array_equal(data, [[1.0, 4.0], [2.0, 5.0], [3.0, 6.0]])

    def test_explicit_features_and_na(self, tmp_path):
        """Test explicit feature order is kept and incomplete rows dropped."""
        path = tmp_path / "golden.csv"
        pd.DataFrame({"a": [1.0, np.nan, 3.0], "b": [4.0, 5.0, 6.0]}).to_csv(path, index=False)

        data, cols = load_golden_set(path, features=["b", "a"])

        assert cols == ["b", "a"]
        np.testing.assert_array_equal(data, [[4.0, 1.0], [6.0, 3.0]])

    def test_missing_feature(self, tmp_path):
        """Test an unknown feature name is reported."""
        path = tmp_path / "golden.csv"
        pd.DataFrame({"a": [1.0, 2.0]}).to_csv(path, index=False)
        with pytest.raises(DimensionMismatchError, match="zz"):
            load_golden_set(path, features=["zz"])

    def test_missing_file(self, tmp_path):
        """Test a missing dataset raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_frame(tmp_path / "absent.csv")

    def test_no_numeric_columns(self):
        """Test a frame without numeric features is refused."""
        with pytest.raises(DimensionMismatchError):
            feature_columns(pd.DataFrame({"source": ["a"], "label": ["x"]}))


class TestIterStreamBatches:
    """Test splitting a stream into gate batches."""

    def test_batch_column_first_seen_order(self, stream_frame):
        """Test rows group by batch key in first-seen order."""
        batches = list(iter_stream_batches(stream_frame, ["x", "y"]))

        assert [b.key for b in batches] == ["k2", "k1"]
        np.testing.assert_array_equal(batches[0].samples[:, 0], [1.0, 3.0, 5.0])
        assert [p.source for p in batches[0].provenance] == ["a", "a", "b"]
        assert [p.timestamp for p in batches[1].provenance] == [11.0, 13.0]

    def test_toxicity_is_batch_max(self, stream_frame):
        """Test per-batch toxicity is the max of the non-missing values."""
        batches = {b.key: b for b in iter_stream_batches(stream_frame, ["x", "y"])}
        assert batches["k2"].toxicity == pytest.approx(0.3)
        assert batches["k1"].toxicity == pytest.approx(0.2)

    def test_fixed_size_chunks(self, stream_frame):
        """Test chunking by batch size when there is no batch column."""
        frame = stream_frame.drop(columns=["batch", "toxicity"])
        batches = list(iter_stream_batches(frame, ["x"], batch_size=2))

        assert [len(b.samples) for b in batches] == [2, 2, 1]
        assert [b.key for b in batches] == ["0", "1", "2"]
        assert all(b.toxicity is None for b in batches)

    def test_batch_size_required(self, stream_frame):
        """Test chunking needs a positive batch size."""
        with pytest.raises(ValueError):
            list(iter_stream_batches(stream_frame.drop(columns=["batch"]), ["x"]))

    def test_datetime_timestamps(self, stream_frame):
        """Test datetime timestamps become epoch seconds."""
        frame = stream_frame.copy()
        frame["timestamp"] = pd.to_datetime(["1970-01-01T00:00:10Z"] * 5)
        batch = next(iter_stream_batches(frame, ["x"]))
        assert batch.provenance[0].timestamp == pytest.approx(10.0)

    def test_missing_provenance_column(self, stream_frame):
        """Test the trust column is required."""
        with pytest.raises(DimensionMismatchError):
            list(iter_stream_batches(stream_frame.drop(columns=["trust"]), ["x"]))
