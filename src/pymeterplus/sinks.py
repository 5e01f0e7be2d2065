"""Presentation and history sinks.

Values and failures travel on separate channels: a sink never receives an
error object where it expects a number.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol

from pymeterplus.exceptions import MeterCommunicationError, MeterError
from pymeterplus.models.reading import Characteristic, HistoryEntry

CharacteristicValue = float | int | bool


class PresentationSink(Protocol):
    def publish_values(self, values: Mapping[Characteristic, CharacteristicValue]) -> None:
        """Update the given characteristics with fresh values."""
        ...

    def publish_failure(self, characteristics: frozenset[Characteristic], error: MeterError) -> None:
        """Put the given characteristics in the communication-failure state."""
        ...


class HistorySink(Protocol):
    def add_entry(self, entry: HistoryEntry) -> None: ...


class NullHistorySink:
    """History sink used when history is not configured."""

    def add_entry(self, entry: HistoryEntry) -> None:
        return None


class CachedPresentationSink:
    """In-memory characteristic cache, mirroring a host's ``onGet`` handlers.

    :meth:`get` returns the last published value, or raises
    :class:`MeterCommunicationError` while the characteristic carries a
    failure marker. A later value clears the marker.
    """

    def __init__(self, initial: Mapping[Characteristic, CharacteristicValue] | None = None) -> None:
        self._values: dict[Characteristic, CharacteristicValue] = dict(initial or {})
        self._failures: dict[Characteristic, MeterError] = {}

    def publish_values(self, values: Mapping[Characteristic, CharacteristicValue]) -> None:
        for characteristic, value in values.items():
            self._values[characteristic] = value
            self._failures.pop(characteristic, None)

    def publish_failure(self, characteristics: frozenset[Characteristic], error: MeterError) -> None:
        for characteristic in characteristics:
            self._failures[characteristic] = error

    def get(self, characteristic: Characteristic) -> CharacteristicValue | None:
        error = self._failures.get(characteristic)
        if error is not None:
            raise MeterCommunicationError(f"{characteristic} unavailable: {error}") from error
        return self._values.get(characteristic)

    def failed(self) -> frozenset[Characteristic]:
        return frozenset(self._failures)

    def snapshot(self, characteristics: Iterable[Characteristic] | None = None) -> dict[Characteristic, CharacteristicValue]:
        keys = list(characteristics) if characteristics is not None else list(self._values)
        return {key: self._values[key] for key in keys if key in self._values and key not in self._failures}
