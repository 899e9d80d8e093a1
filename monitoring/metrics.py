from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from gating.model_state import GateMetrics

DEFAULT_METRICS_PATH = Path("gate_data") / "monitoring" / "metrics.json"


@dataclass(frozen=True)
class MetricsSnapshot:
    ts: str
    mode: str
    metrics: dict[str, float]


def _now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_metrics(
    metrics: GateMetrics,
    *,
    mode: str = "live",
    path: str | Path = DEFAULT_METRICS_PATH,
) -> MetricsSnapshot:
    snap = MetricsSnapshot(
        ts=_now_ts(),
        mode=mode,
        metrics={k: float(v) for k, v in metrics.to_dict().items()},
    )
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(snap.__dict__, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return snap


def read_metrics(*, path: str | Path = DEFAULT_METRICS_PATH) -> dict | None:
    p = Path(path)
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
