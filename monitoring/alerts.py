from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_ALERTS_PATH = Path("gate_data") / "monitoring" / "alerts.jsonl"


@dataclass(frozen=True)
class Alert:
    ts: str
    alert_type: str
    message: str


def _now_ts() -> str:
    return datetime.now(timezone.utc).isoformat()


class AlertLog:
    """
    Append-only JSONL alert sink.

    Instances are callable with ``(alert_type, message)`` so they plug
    straight into ``MultiModelGate(alert_sink=...)``.
    """

    def __init__(self, path: str | Path = DEFAULT_ALERTS_PATH):
        self.path = Path(path)
        self.count = 0
        self._lock = threading.Lock()

    def __call__(self, alert_type: str, message: str) -> Alert:
        a = Alert(ts=_now_ts(), alert_type=str(alert_type), message=str(message))
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(a.__dict__, ensure_ascii=False) + "\n")
            self.count += 1
        return a


def read_recent_alerts(*, path: str | Path = DEFAULT_ALERTS_PATH, limit: int = 200) -> list[dict]:
    p = Path(path)
    if not p.exists():
        return []

    out: list[dict] = []
    for line in p.read_text(encoding="utf-8").splitlines()[-int(max(1, limit)) :]:
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed alert line in {p}")
    return out
