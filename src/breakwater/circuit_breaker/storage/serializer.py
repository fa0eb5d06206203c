"""Snapshot codecs."""

from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from breakwater.circuit_breaker.exceptions import StorageReadError, StorageWriteError
from breakwater.circuit_breaker.state import CircuitSnapshot


class SnapshotSerializer(Protocol):
    """Encode snapshots to bytes and back."""

    def encode(self, snapshot: CircuitSnapshot) -> bytes:
        """Encode ``snapshot``; raise ``StorageWriteError`` on failure."""

    def decode(self, service_key: str, data: bytes) -> CircuitSnapshot:
        """Decode ``data``; raise ``StorageReadError`` on malformed input."""


class _PersistedState(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    state: Literal["closed", "open", "half-open"]
    failure_count: int = Field(ge=0)
    success_count: int = Field(ge=0)
    last_failure_time: int | None = Field(default=None, ge=0)


class JsonSnapshotSerializer:
    """JSON codec for the persisted state mapping."""

    def encode(self, snapshot: CircuitSnapshot) -> bytes:
        try:
            persisted = _PersistedState.model_validate(snapshot.to_payload())
        except ValidationError as exc:
            raise StorageWriteError(
                f"Failed to encode circuit state for '{snapshot.service_key}': {exc}"
            ) from exc
        return persisted.model_dump_json().encode("utf-8")

    def decode(self, service_key: str, data: bytes) -> CircuitSnapshot:
        try:
            persisted = _PersistedState.model_validate_json(data)
        except ValidationError as exc:
            raise StorageReadError(
                f"Failed to decode circuit state for '{service_key}': "
                f"{exc.error_count()} validation error(s)"
            ) from exc
        return CircuitSnapshot.from_payload(service_key, persisted.model_dump())
