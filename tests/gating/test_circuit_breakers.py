"""
Tests for circuit breaker definitions and cooldown bookkeeping.
"""

import pytest

from core.config import GateConfig
from gating.circuit_breaker import BreakerAction, CircuitBreaker, CircuitBreakerRegistry, default_breakers
from gating.model_state import GateMetrics


def _registry(clock, config=None):
    return CircuitBreakerRegistry(default_breakers(config or GateConfig()), clock)


class TestDefaultBreakers:
    """Test the default breaker set."""

    def test_names_actions_cooldowns(self):
        """Test the five breakers with their actions and cooldowns."""
        breakers = {b.name: b for b in default_breakers(GateConfig())}
        assert set(breakers) == {
            "anchor_anomaly",
            "provenance_concentration",
            "kl_divergence_spike",
            "update_rejection_spike",
            "toxic_flow",
        }
        assert breakers["anchor_anomaly"].action is BreakerAction.ROLLBACK
        assert breakers["anchor_anomaly"].cooldown_seconds == 300
        assert breakers["provenance_concentration"].action is BreakerAction.FREEZE
        assert breakers["provenance_concentration"].cooldown_seconds == 60
        assert breakers["kl_divergence_spike"].action is BreakerAction.ROLLBACK
        assert breakers["kl_divergence_spike"].cooldown_seconds == 600
        assert breakers["update_rejection_spike"].action is BreakerAction.ALERT
        assert breakers["toxic_flow"].action is BreakerAction.FREEZE
        assert breakers["toxic_flow"].cooldown_seconds == 120

    @pytest.mark.parametrize(
        "field,value,name",
        [
            ("anchor_anomaly_rate", 1e-3, "anchor_anomaly"),
            ("herfindahl_index", 0.25, "provenance_concentration"),
            ("kl_divergence", 0.25, "kl_divergence_spike"),
            ("update_rejections", 11, "update_rejection_spike"),
            ("toxicity", 0.8, "toxic_flow"),
        ],
    )
    def test_each_condition(self, clock, field, value, name):
        """Test each breaker trips on its own metric alone."""
        metrics = GateMetrics()
        setattr(metrics, field, value)
        tripped = _registry(clock).evaluate(metrics)
        assert [b.name for b in tripped] == [name]

    def test_healthy_metrics_trip_nothing(self, clock):
        """Test default metrics are below every threshold."""
        assert _registry(clock).evaluate(GateMetrics()) == []

    def test_thresholds_are_strict(self, clock):
        """Test values exactly at a threshold do not trip."""
        metrics = GateMetrics(herfindahl_index=0.2, kl_divergence=0.2, update_rejections=10, toxicity=0.75)
        assert _registry(clock).evaluate(metrics) == []

    def test_kl_spike_follows_config(self, clock):
        """Test the KL spike threshold is twice the configured bound."""
        registry = _registry(clock, GateConfig(kl_threshold=0.5))
        assert registry.evaluate(GateMetrics(kl_divergence=0.9)) == []
        assert [b.name for b in registry.evaluate(GateMetrics(kl_divergence=1.1))] == ["kl_divergence_spike"]


class TestCooldowns:
    """Test cooldown gating on the injected clock."""

    def test_cooldown_blocks_retrigger(self, clock):
        """Test a breaker is skipped until its cooldown has elapsed."""
        registry = _registry(clock)
        toxic = GateMetrics(toxicity=0.9)

        assert len(registry.evaluate(toxic)) == 1
        assert registry.evaluate(toxic) == []

        clock.advance(119)
        assert registry.evaluate(toxic) == []
        assert registry.cooldown_remaining("toxic_flow") == pytest.approx(1.0)

        clock.advance(1)
        assert [b.name for b in registry.evaluate(toxic)] == ["toxic_flow"]
        assert registry.last_trigger("toxic_flow") == 120.0

    def test_cooldowns_are_independent(self, clock):
        """Test one breaker's cooldown does not mute another."""
        registry = _registry(clock)
        registry.evaluate(GateMetrics(toxicity=0.9))
        tripped = registry.evaluate(GateMetrics(toxicity=0.9, herfindahl_index=0.5))
        assert [b.name for b in tripped] == ["provenance_concentration"]

    def test_status(self, clock):
        """Test status reports action, last trigger and remaining cooldown."""
        registry = _registry(clock)
        registry.evaluate(GateMetrics(herfindahl_index=0.5))
        clock.advance(15)

        status = registry.get_status()

        assert status["provenance_concentration"]["last_trigger"] == 0.0
        assert status["provenance_concentration"]["cooldown_remaining"] == pytest.approx(45.0)
        assert status["toxic_flow"]["last_trigger"] is None
        assert status["toxic_flow"]["action"] == "freeze"

    def test_duplicate_names_rejected(self, clock):
        """Test breaker names must be unique."""
        b = CircuitBreaker("x", lambda m: True, BreakerAction.ALERT, 10)
        with pytest.raises(ValueError):
            CircuitBreakerRegistry([b, b], clock)

    def test_unknown_breaker(self, clock):
        """Test looking up an unknown breaker raises KeyError."""
        with pytest.raises(KeyError):
            _registry(clock).get("nope")
