"""
Gate Circuit Breakers

Auto-halt conditions evaluated after every accepted update:
- anchor_anomaly: golden set looks anomalous under the adaptive model
- provenance_concentration: Herfindahl index too high
- kl_divergence_spike: KL jump well above the corridor threshold
- update_rejection_spike: too many corridor rejections in the window
- toxic_flow: externally supplied toxicity score too high

A breaker whose cooldown has not elapsed since its last trigger is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from core.config import GateConfig
from gating.model_state import GateMetrics

logger = logging.getLogger(__name__)


class BreakerAction(Enum):
    """What the gate does when a breaker trips"""
    FREEZE = "freeze"      # stop learning until cooldown expires
    ROLLBACK = "rollback"  # restore newest checkpoint
    ALERT = "alert"        # notify only


@dataclass(frozen=True)
class CircuitBreaker:
    name: str
    condition: Callable[[GateMetrics], bool]
    action: BreakerAction
    cooldown_seconds: float


def default_breakers(config: GateConfig) -> list[CircuitBreaker]:
    kl_spike = config.kl_threshold * 2
    rejection_limit = config.rejection_limit
    return [
        CircuitBreaker(
            name="anchor_anomaly",
            condition=lambda m: m.anchor_anomaly_rate > 1e-4,
            action=BreakerAction.ROLLBACK,
            cooldown_seconds=300,
        ),
        CircuitBreaker(
            name="provenance_concentration",
            condition=lambda m: m.herfindahl_index > 0.2,
            action=BreakerAction.FREEZE,
            cooldown_seconds=60,
        ),
        CircuitBreaker(
            name="kl_divergence_spike",
            condition=lambda m: m.kl_divergence > kl_spike,
            action=BreakerAction.ROLLBACK,
            cooldown_seconds=600,
        ),
        CircuitBreaker(
            name="update_rejection_spike",
            condition=lambda m: m.update_rejections > rejection_limit,
            action=BreakerAction.ALERT,
            cooldown_seconds=300,
        ),
        CircuitBreaker(
            name="toxic_flow",
            condition=lambda m: m.toxicity > 0.75,
            action=BreakerAction.FREEZE,
            cooldown_seconds=120,
        ),
    ]


class CircuitBreakerRegistry:
    """
    Holds breaker definitions and their last-trigger instants.

    Cooldowns are measured on the injected clock, never on wall time.
    """

    def __init__(self, breakers: Sequence[CircuitBreaker], clock: Callable[[], float]):
        names = [b.name for b in breakers]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate circuit breaker names: {names}")
        self.breakers: list[CircuitBreaker] = list(breakers)
        self.clock = clock
        self._last_trigger: dict[str, float] = {}

    def evaluate(self, metrics: GateMetrics) -> list[CircuitBreaker]:
        """
        Check every breaker that is out of cooldown.

        Returns:
            Breakers that tripped, in registration order; their trigger
            instants are recorded before returning.
        """
        now = self.clock()
        tripped: list[CircuitBreaker] = []

        for breaker in self.breakers:
            if self.cooldown_remaining(breaker.name, now=now) > 0:
                continue
            if breaker.condition(metrics):
                self._last_trigger[breaker.name] = now
                tripped.append(breaker)
                logger.warning(f"Circuit breaker tripped: {breaker.name} (action={breaker.action.value})")

        return tripped

    def last_trigger(self, name: str) -> Optional[float]:
        return self._last_trigger.get(name)

    def cooldown_remaining(self, name: str, now: Optional[float] = None) -> float:
        last = self._last_trigger.get(name)
        if last is None:
            return 0.0
        breaker = self.get(name)
        now = self.clock() if now is None else now
        return max(0.0, breaker.cooldown_seconds - (now - last))

    def get(self, name: str) -> CircuitBreaker:
        for breaker in self.breakers:
            if breaker.name == name:
                return breaker
        raise KeyError(name)

    def get_status(self) -> dict[str, dict]:
        now = self.clock()
        return {
            b.name: {
                "action": b.action.value,
                "cooldown_seconds": b.cooldown_seconds,
                "last_trigger": self._last_trigger.get(b.name),
                "cooldown_remaining": self.cooldown_remaining(b.name, now=now),
            }
            for b in self.breakers
        }
