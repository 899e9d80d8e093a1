from __future__ import annotations

import logging
import time
from collections import Counter
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from core.config import Settings, load_config
from core.exceptions import SingularMatrixError
from core.logger import setup_logger
from estimators.linalg import log_det, symmetric_eig
from gating.datasets import iter_stream_batches, load_frame, load_golden_set, stream_timestamps
from gating.multi_model_gate import MultiModelGate, UpdateResult
from interfaces.cli.output import CommandResult, to_json
from monitoring.alerts import AlertLog
from monitoring.events import record_decision
from monitoring.metrics import write_metrics

DEFAULT_OUT_DIR = Path("gate_data") / "replay"
# Rejection key for batches whose covariance could not be inverted
SINGULAR_MATRIX = "singular_matrix"


def _settings(config_path: Optional[str | Path]) -> Settings:
    if config_path is None:
        return Settings.default()
    return load_config(config_path)


class _ReplayClock:
    """
    Event-time clock for replays.

    Advances to the newest stream timestamp seen so far and never moves
    backwards, so cooldowns and checkpoint cadence follow the recorded stream.
    """

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def advance_to(self, ts: float) -> None:
        self.now = max(self.now, float(ts))

    def __call__(self) -> float:
        return self.now


def inspect_command(
    config_path: Optional[str | Path],
    *,
    golden: str | Path,
    features: Optional[Sequence[str]] = None,
) -> CommandResult:
    settings = _settings(config_path)
    setup_logger(settings.app)
    logger = logging.getLogger("robust_gate.cli")

    data, cols = load_golden_set(golden, features)
    gate = MultiModelGate(data, settings.gate)
    reference = gate.get_models()["reference"]
    eigenvalues, _ = symmetric_eig(reference.covariance)

    logger.info(f"inspect: golden={golden} samples={data.shape[0]} dim={gate.dim}")
    payload = {
        "golden": str(golden),
        "samples": int(data.shape[0]),
        "features": cols,
        "reference": {
            "mean": reference.mean.tolist(),
            "covariance": reference.covariance.tolist(),
            "eigenvalues": eigenvalues.tolist(),
            "log_det": log_det(reference.covariance),
        },
    }
    return CommandResult(exit_code=0, output=to_json(payload))


def replay_command(
    config_path: Optional[str | Path],
    *,
    golden: str | Path,
    stream: str | Path,
    features: Optional[Sequence[str]] = None,
    batch_size: Optional[int] = None,
    seed: Optional[int] = None,
    out_dir: str | Path = DEFAULT_OUT_DIR,
) -> CommandResult:
    """
    Replay a recorded stream through a fresh gate.

    Writes alerts.jsonl, events.jsonl and metrics.json under ``out_dir``.
    """
    settings = _settings(config_path)
    setup_logger(settings.app)
    logger = logging.getLogger("robust_gate.cli")

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    events_path = out / "events.jsonl"
    metrics_path = out / "metrics.json"

    data, cols = load_golden_set(golden, features)
    frame = load_frame(stream)
    has_timestamps = "timestamp" in frame.columns

    if has_timestamps and len(frame):
        clock = _ReplayClock(start=float(np.nanmin(stream_timestamps(frame))))
    else:
        clock = time.monotonic
    alert_log = AlertLog(out / "alerts.jsonl")
    fired: list[str] = []

    def sink(alert_type: str, message: str) -> None:
        fired.append(alert_type)
        alert_log(alert_type, message)

    gate = MultiModelGate(
        data,
        settings.gate,
        alert_sink=sink,
        clock=clock,
        rng=np.random.default_rng(seed),
    )
    rollback_alerts = {"GATE_VIOLATION"} | {
        name.upper() for name, s in gate.status()["breakers"].items() if s["action"] == "rollback"
    }

    accepted = 0
    rejected: Counter[str] = Counter()
    batches = 0

    for batch in iter_stream_batches(frame, cols, batch_size=batch_size):
        batches += 1
        if isinstance(clock, _ReplayClock) and batch.provenance:
            clock.advance_to(max(p.timestamp for p in batch.provenance))
        if batch.toxicity is not None:
            gate.set_toxicity(batch.toxicity)

        try:
            result = gate.robust_update(batch.samples, batch.provenance)
        except SingularMatrixError as e:
            # the gate is unchanged; count the batch as rejected and go on
            logger.warning(f"replay: batch {batch.key} rejected, singular covariance: {e}")
            result = UpdateResult(accepted=False, reason=str(e))
            kind = SINGULAR_MATRIX
        else:
            kind = None if result.accepted else result.rejection.value

        if result.accepted:
            accepted += 1
        else:
            rejected[kind] += 1

        record_decision(
            result,
            rejection=kind,
            batch=batch.key,
            samples=batch.samples.shape[0],
            mode=gate.mode.value,
            path=events_path,
        )

    metrics = gate.get_metrics()
    write_metrics(metrics, mode=gate.mode.value, path=metrics_path)

    rollbacks = sum(1 for t in fired if t in rollback_alerts)
    logger.info(
        f"replay: batches={batches} accepted={accepted} rejected={sum(rejected.values())} rollbacks={rollbacks}"
    )

    payload = {
        "golden": str(golden),
        "stream": str(stream),
        "features": cols,
        "batches": batches,
        "accepted": accepted,
        "rejected": dict(rejected),
        "rollbacks": rollbacks,
        "alerts": len(fired),
        "mode": gate.mode.value,
        "metrics": metrics.to_dict(),
        "out_dir": str(out),
    }
    return CommandResult(exit_code=0, output=to_json(payload))
