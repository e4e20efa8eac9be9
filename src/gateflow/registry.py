"""In-memory registries for tanks, gate walls and pipelines.

Each registry is an ordinary object owned by whoever composes the service, so
tests can build as many independent networks as they need.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from .models import GateWall, Pipeline, Tank, utcnow

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordError(ValueError):
    """Base class for rejected registry operations."""


class DuplicateRecordError(RecordError):
    pass


class RecordNotFoundError(RecordError):
    pass


class Registry(Generic[RecordT]):
    """Ordered collection of records keyed by their ``id``."""

    model: ClassVar[type[BaseModel]]
    label: ClassVar[str]
    editable: ClassVar[frozenset[str]]

    def __init__(self) -> None:
        self._records: dict[str, RecordT] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def create(self, data: dict[str, Any] | RecordT) -> RecordT:
        """Validate and store a new record. Raises on a duplicate id."""
        record = self.model.model_validate(data)
        if record.id in self._records:
            raise DuplicateRecordError(f"{self.label} with ID '{record.id}' already exists")
        self._records[record.id] = record
        logger.info("Created %s %s", self.label.lower(), record.id)
        return record

    def get_all(self) -> list[RecordT]:
        return list(self._records.values())

    def get_by_id(self, record_id: str) -> RecordT | None:
        return self._records.get(record_id)

    def require(self, record_id: str) -> RecordT:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"{self.label} ID '{record_id}' not found")
        return record

    def update(self, record_id: str, updates: dict[str, Any]) -> RecordT:
        """Apply the editable subset of ``updates`` and re-validate the record.

        Keys outside the editable set are ignored.
        """
        record = self.require(record_id)
        changes = {k: v for k, v in updates.items() if k in self.editable and v is not None}
        merged = {**record.model_dump(), **changes, "updated_at": utcnow()}
        updated = self.model.model_validate(merged)
        self._records[record_id] = updated
        return updated

    def remove(self, record_id: str) -> RecordT:
        record = self.require(record_id)
        del self._records[record_id]
        logger.info("Removed %s %s", self.label.lower(), record_id)
        return record

    def clear(self) -> None:
        self._records.clear()


class TankRegistry(Registry[Tank]):
    model = Tank
    label = "Tank"
    editable = frozenset({
        "name", "capacity", "country", "state", "district", "mandal",
        "habitation", "latitude", "longitude", "altitude", "connected_pipelines",
    })


class GateWallRegistry(Registry[GateWall]):
    model = GateWall
    label = "Gate wall"
    editable = frozenset({
        "name", "type", "state", "district", "mandal", "habitation", "latitude",
        "longitude", "altitude", "connected_pipelines", "firmware_version",
        "controller_id", "installation_date",
    })


class PipelineRegistry(Registry[Pipeline]):
    model = Pipeline
    label = "Pipeline"
    editable = frozenset({
        "name", "points", "connected_gate_walls", "connected_devices",
        "material", "diameter", "length",
    })
