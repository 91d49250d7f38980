"""
Parking lot data model.

Metadata (low-churn, written by operators) and state (high-churn, written by
feeders) are stored and exchanged independently, keyed by ParkingLotID. The
ParkingLot view joining both is only ever composed at read time.

On the wire every field name is kebab-case:

    {"available-spots": {"CAR": 12}, "last-updated": "2023-05-01T12:00:00Z"}

Every field is optional and unknown fields are kept as-is, so older servers
keep accepting (and returning) payloads from newer feeders. Known fields are
still type-checked; a violation is a malformed payload.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Mapping

from pydantic import BaseModel, ConfigDict, NonNegativeInt, StringConstraints, TypeAdapter

ParkingLotID = Annotated[str, StringConstraints(min_length=1)]


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_kebab,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        allow_inf_nan=False,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict holding exactly the fields that were supplied."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class Coordinate(WireModel):
    latitude: float
    longitude: float


class PricingRule(WireModel):
    # ISO 8601 duration, e.g. "PT1H"
    duration: str
    price: float
    repeating: bool = False


class Rule(WireModel):
    weekdays: str | None = None
    hours: str | None = None
    pricing: list[PricingRule] = []


class ParkingLotMetadata(WireModel):
    name: str | None = None
    address: str | None = None
    location: Coordinate | None = None
    resources: list[str] | None = None
    # Spot categories are kept as plain strings so new categories pass through.
    total_spots: dict[str, NonNegativeInt] | None = None
    features: list[str] | None = None
    comment: dict[str, str] | None = None
    currency: str | None = None
    rules: list[Rule] | None = None


class ParkingLotState(WireModel):
    last_updated: datetime | None = None
    available_spots: dict[str, NonNegativeInt] | None = None


MetadataMap = dict[str, ParkingLotMetadata]
StateMap = dict[str, ParkingLotState]

_metadata_map = TypeAdapter(dict[ParkingLotID, ParkingLotMetadata])
_state_map = TypeAdapter(dict[ParkingLotID, ParkingLotState])


def parse_metadatas(data: Any) -> MetadataMap:
    """Validate a decoded JSON body as {id: metadata}. Raises pydantic.ValidationError."""
    return _metadata_map.validate_python(data)


def parse_states(data: Any) -> StateMap:
    """Validate a decoded JSON body as {id: state}. Raises pydantic.ValidationError."""
    return _state_map.validate_python(data)


def to_wire_map(entries: Mapping[str, WireModel]) -> dict[str, dict[str, Any]]:
    return {lot_id: entry.to_wire() for lot_id, entry in entries.items()}


@dataclass(frozen=True)
class ParkingLot:
    """Read-time join of one lot's metadata and (possibly not yet reported) state."""

    metadata: ParkingLotMetadata
    state: ParkingLotState | None = None


def compose_parking_lots(
    metadatas: Mapping[str, ParkingLotMetadata],
    states: Mapping[str, ParkingLotState],
) -> dict[str, ParkingLot]:
    """Join by ID. Lots without metadata are unknown and are left out."""
    return {
        lot_id: ParkingLot(metadata=metadata, state=states.get(lot_id))
        for lot_id, metadata in metadatas.items()
    }
