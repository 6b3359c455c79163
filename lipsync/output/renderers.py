"""Renderer adapters

Concrete MouthRenderer implementations for running the pipeline without an
avatar attached: one records parameter values, one logs them.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

from lipsync.models.interfaces import MouthRenderer


logger = logging.getLogger(__name__)


class RecordingRenderer(MouthRenderer):
    """Keeps the latest value of every parameter and a bounded history.

    Attributes:
        values: Latest value per parameter id
        history: Recent (parameter_id, value) pairs, oldest first
    """

    def __init__(self, max_history: int = 1000):
        self.values: Dict[str, float] = {}
        self.history: Deque[Tuple[str, float]] = deque(maxlen=max_history)

    def set_parameter(self, parameter_id: str, value: float) -> None:
        self.values[parameter_id] = value
        self.history.append((parameter_id, value))

    def get(self, parameter_id: str, default: Optional[float] = None) -> Optional[float]:
        return self.values.get(parameter_id, default)

    def values_for(self, parameter_id: str) -> List[float]:
        """Recorded values of one parameter, oldest first"""
        return [value for pid, value in self.history if pid == parameter_id]

    def clear(self) -> None:
        self.values.clear()
        self.history.clear()


class LoggingRenderer(MouthRenderer):
    """Logs every parameter update at DEBUG level"""

    def __init__(self, name: str = "avatar"):
        self.name = name

    def set_parameter(self, parameter_id: str, value: float) -> None:
        logger.debug(f"[{self.name}] {parameter_id} = {value:.3f}")
