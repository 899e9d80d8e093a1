"""Gated Robust-Update Pipeline

ARCHITECTURAL BOUNDARIES:
=========================

Two statistical models of one live stream:

1. DUAL MODEL:
   - reference: robust fit of the golden set, set once, READ ONLY
   - adaptive:  learns from the stream, changed ONLY by the bounded merge
                or replaced wholesale by a rollback

2. UPDATE FLOW:
   batch + provenance → admission → diversity guard → stratified sample
   → influence clip → robust re-estimate → corridor check
   → [pass] bounded merge → circuit breakers → periodic checkpoint
   → [fail] reject (rollback once rejections pile up)

3. SAFETY:
   - Rejections are results, not exceptions
   - Freeze mode blocks learning until the breaker cooldown expires
   - Bounded checkpoint history (FIFO) for rollback
   - No I/O inside the pipeline; alerts go to an injected sink

Module Structure:
-----------------
gating/
├── provenance.py       - Provenance records, admission control, diversity
├── sampler.py          - Stratified trust-weighted reservoir sampling
├── model_state.py      - ModelState and GateMetrics
├── circuit_breaker.py  - Breaker definitions and cooldown registry
├── checkpoints.py      - Bounded checkpoint store
├── multi_model_gate.py - Main orchestrator
└── datasets.py         - Golden set / stream loaders (pandas)
"""

from __future__ import annotations

from gating.checkpoints import CheckpointStore
from gating.circuit_breaker import BreakerAction, CircuitBreaker, CircuitBreakerRegistry, default_breakers
from gating.model_state import GateMetrics, ModelState
from gating.multi_model_gate import GateMode, MultiModelGate, RejectionKind, UpdateResult
from gating.provenance import AdmissionPolicy, Provenance
from gating.sampler import StratifiedReservoirSampler

__version__ = "0.1.0"

__all__ = [
    "AdmissionPolicy",
    "BreakerAction",
    "CheckpointStore",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "GateMetrics",
    "GateMode",
    "ModelState",
    "MultiModelGate",
    "Provenance",
    "RejectionKind",
    "StratifiedReservoirSampler",
    "UpdateResult",
    "default_breakers",
]
