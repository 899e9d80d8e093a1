"""Bounded checkpoint history for adaptive-model rollback."""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from gating.model_state import ModelState

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    FIFO history of model snapshots.

    Holds at most ``capacity`` deep copies; the oldest is evicted first.
    Checkpoint indices increase monotonically and are never reused.
    """

    def __init__(self, capacity: int = 20):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._history: deque[ModelState] = deque(maxlen=capacity)
        self._next_index = 0

    def capture(self, state: ModelState) -> ModelState:
        """Store a deep copy of ``state`` tagged with the next checkpoint index."""
        snapshot = state.copy(checkpoint=self._next_index)
        self._next_index += 1

        if len(self._history) == self.capacity:
            evicted = self._history[0]
            logger.debug(f"Evicting checkpoint {evicted.checkpoint}")
        self._history.append(snapshot)

        logger.info(f"[CHECKPOINT] Saved checkpoint {snapshot.checkpoint}")
        return snapshot.copy()

    def latest(self) -> Optional[ModelState]:
        if not self._history:
            return None
        return self._history[-1].copy()

    def oldest(self) -> Optional[ModelState]:
        if not self._history:
            return None
        return self._history[0].copy()

    def snapshots(self) -> list[ModelState]:
        return [s.copy() for s in self._history]

    def __len__(self) -> int:
        return len(self._history)
