"""Gate decision event log (JSON lines)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from gating.multi_model_gate import UpdateResult

DEFAULT_EVENTS_PATH = Path("gate_data") / "monitoring" / "events.jsonl"

DECISION_KIND = "gate_update"


@dataclass(frozen=True)
class GateEvent:
    ts: str
    kind: str
    payload: dict


def _now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


def append_event(
    kind: str,
    payload: dict,
    *,
    path: str | Path = DEFAULT_EVENTS_PATH,
) -> GateEvent:
    event = GateEvent(ts=_now_ts(), kind=str(kind), payload=dict(payload))
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event.__dict__, ensure_ascii=False, default=str) + "\n")
    return event


def record_decision(
    result: UpdateResult,
    *,
    batch: str,
    samples: int,
    mode: str,
    rejection: Optional[str] = None,
    path: str | Path = DEFAULT_EVENTS_PATH,
) -> GateEvent:
    """
    Log one robust_update outcome together with the batch it was made on.

    ``rejection`` overrides the result's rejection kind, for outcomes the
    gate reports by raising (a singular covariance).
    """
    payload = {"batch": batch, "samples": int(samples), "mode": mode}
    payload.update(result.to_dict())
    if rejection is not None:
        payload["rejection"] = rejection
    return append_event(DECISION_KIND, payload, path=path)


def read_recent_events(
    *,
    path: str | Path = DEFAULT_EVENTS_PATH,
    limit: int = 200,
    kind: Optional[str] = None,
) -> list[dict]:
    p = Path(path)
    if not p.exists():
        return []

    out: list[dict] = []
    for line in p.read_text(encoding="utf-8").splitlines():
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if kind is None or event.get("kind") == kind:
            out.append(event)
    return out[-int(max(1, limit)) :]
