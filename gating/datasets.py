"""Tabular loaders for golden sets and provenance-tagged streams.

Stream columns:
- feature columns (explicit, or every numeric column not listed below)
- source: provenance source identifier
- trust: provenance trust in [0, 1]
- timestamp: optional observation instant (numeric or datetime)
- batch: optional batch key; rows are grouped by it in first-seen order
- toxicity: optional externally computed flow toxicity per row
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Sequence

import numpy as np
import pandas as pd

from core.exceptions import DimensionMismatchError
from gating.provenance import Provenance

PROVENANCE_COLUMNS = ("source", "trust", "timestamp", "batch", "toxicity")


def load_frame(path: str | Path) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Dataset not found: {p}")
    if p.suffix.lower() in (".parquet", ".pq"):
        return pd.read_parquet(p)
    return pd.read_csv(p)


def feature_columns(df: pd.DataFrame, features: Optional[Sequence[str]] = None) -> list[str]:
    if features:
        missing = [c for c in features if c not in df.columns]
        if missing:
            raise DimensionMismatchError(f"Missing feature columns: {missing}")
        return list(features)
    cols = [
        c for c in df.columns
        if c not in PROVENANCE_COLUMNS and pd.api.types.is_numeric_dtype(df[c])
    ]
    if not cols:
        raise DimensionMismatchError("No numeric feature columns found")
    return cols


def load_golden_set(path: str | Path, features: Optional[Sequence[str]] = None) -> tuple[np.ndarray, list[str]]:
    """
    Load the golden dataset.

    Returns:
        Tuple of ((n, d) float matrix, feature column names)
    """
    df = load_frame(path)
    cols = feature_columns(df, features)
    data = df[cols].dropna().to_numpy(dtype=float)
    return data, cols


@dataclass(frozen=True)
class StreamBatch:
    key: str
    samples: np.ndarray
    provenance: list[Provenance]
    toxicity: Optional[float] = None


def stream_timestamps(df: pd.DataFrame) -> np.ndarray:
    """Per-row timestamps as float seconds (zeros when the column is absent)."""
    if "timestamp" not in df.columns:
        return np.zeros(len(df))
    ts = df["timestamp"]
    if pd.api.types.is_numeric_dtype(ts):
        return ts.to_numpy(dtype=float)
    parsed = pd.to_datetime(ts, utc=True)
    epoch = pd.Timestamp("1970-01-01", tz="UTC")
    return (parsed - epoch).dt.total_seconds().to_numpy(dtype=float)


def iter_stream_batches(
    df: pd.DataFrame,
    features: Sequence[str],
    batch_size: Optional[int] = None,
) -> Iterator[StreamBatch]:
    """
    Split a stream frame into gate batches.

    Grouping uses the ``batch`` column when present, otherwise consecutive
    chunks of ``batch_size`` rows.
    """
    for col in ("source", "trust"):
        if col not in df.columns:
            raise DimensionMismatchError(f"Stream is missing required column: {col}")

    frame = df.dropna(subset=list(features) + ["source", "trust"]).reset_index(drop=True)
    timestamps = stream_timestamps(frame)

    if "batch" in frame.columns:
        keys = frame["batch"].astype(str).to_numpy()
        groups = [(key, np.flatnonzero(keys == key)) for key in pd.unique(keys)]
    else:
        if not batch_size or batch_size < 1:
            raise ValueError("batch_size is required when the stream has no 'batch' column")
        groups = [
            (str(start // batch_size), np.arange(start, min(start + batch_size, len(frame))))
            for start in range(0, len(frame), batch_size)
        ]

    for key, idx in groups:
        rows = frame.iloc[idx]
        provenance = [
            Provenance(source=str(src), trust=float(trust), timestamp=float(ts))
            for src, trust, ts in zip(rows["source"], rows["trust"], timestamps[idx])
        ]
        toxicity = None
        if "toxicity" in rows.columns and rows["toxicity"].notna().any():
            toxicity = float(rows["toxicity"].max())
        yield StreamBatch(
            key=key,
            samples=rows[list(features)].to_numpy(dtype=float),
            provenance=provenance,
            toxicity=toxicity,
        )
