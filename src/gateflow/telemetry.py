"""Current sample and rolling history per device."""

from __future__ import annotations

from collections import deque
from typing import Generic, TypeVar

SampleT = TypeVar("SampleT")


class TelemetryStore(Generic[SampleT]):
    """Keeps the latest sample and a capped history for each registered id."""

    def __init__(self, history_limit: int) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self._current: dict[str, SampleT] = {}
        self._history: dict[str, deque[SampleT]] = {}

    def register(self, device_id: str) -> None:
        self._history.setdefault(device_id, deque(maxlen=self.history_limit))

    def record(self, device_id: str, sample: SampleT) -> SampleT:
        self.register(device_id)
        self._current[device_id] = sample
        self._history[device_id].append(sample)
        return sample

    def get_current(self, device_id: str) -> SampleT | None:
        return self._current.get(device_id)

    def get_history(self, device_id: str) -> list[SampleT]:
        return list(self._history.get(device_id, ()))

    def forget(self, device_id: str) -> None:
        self._current.pop(device_id, None)
        self._history.pop(device_id, None)

    def current_items(self) -> dict[str, SampleT]:
        return dict(self._current)

    def clear(self) -> None:
        self._current.clear()
        self._history.clear()

    def histories(self) -> dict[str, list[SampleT]]:
        return {device_id: list(samples) for device_id, samples in self._history.items() if samples}
