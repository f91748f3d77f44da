"""Itinerary models - the ordered, per-day item list attached to a quote."""

import uuid
from datetime import date, timedelta

from pydantic import BaseModel, Field, model_validator

from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.common import ItemType


class ItemInfo(BaseModel):
    """Denormalized display snapshot of a catalog entry."""

    name_kor: str | None = None
    name_eng: str | None = None
    description_eng: str | None = None
    images: list[str] = Field(default_factory=list)
    lat: float | None = None
    lng: float | None = None

    @classmethod
    def from_place(cls, place: CatalogPlace) -> "ItemInfo":
        return cls(
            name_kor=place.name_kor or None,
            name_eng=place.name_eng or None,
            description_eng=place.description_eng,
            images=list(place.images),
            lat=place.lat,
            lng=place.lng,
        )


class ItineraryItem(BaseModel):
    """One entry of an itinerary.

    A TBD item has no catalog reference and is awaiting human resolution;
    every other item points at a catalog entry.
    """

    id: str
    type: ItemType = ItemType.place
    day_number: int = Field(..., ge=1)
    order_index: int = Field(..., ge=0)
    item_id: int | None = None
    item_name: str
    note: str | None = None
    is_tbd: bool = False
    item_info: ItemInfo | None = None

    @model_validator(mode="after")
    def validate_tbd_reference(self) -> "ItineraryItem":
        """Ensure is_tbd <=> item_id is None."""
        if self.is_tbd and self.item_id is not None:
            raise ValueError("TBD items must not reference a catalog entry")
        if not self.is_tbd and self.item_id is None:
            raise ValueError("non-TBD items must reference a catalog entry")
        return self

    @classmethod
    def from_place(
        cls,
        place: CatalogPlace,
        *,
        day_number: int,
        order_index: int,
        note: str | None,
    ) -> "ItineraryItem":
        """Build a catalog-backed item."""
        return cls(
            id=new_item_id("ai"),
            type=place.type,
            day_number=day_number,
            order_index=order_index,
            item_id=place.id,
            item_name=place.display_name,
            note=note,
            is_tbd=False,
            item_info=ItemInfo.from_place(place),
        )

    @classmethod
    def tbd(cls, name: str, *, day_number: int, order_index: int, note: str) -> "ItineraryItem":
        """Build a placeholder item with no catalog reference."""
        return cls(
            id=new_item_id("tbd"),
            type=ItemType.place,
            day_number=day_number,
            order_index=order_index,
            item_id=None,
            item_name=name,
            note=note,
            is_tbd=True,
            item_info=None,
        )


class ItineraryDocument(BaseModel):
    """Persisted item list plus its optimistic-concurrency version."""

    itinerary_id: int
    items: list[ItineraryItem] = Field(default_factory=list)
    version: int = 0


class ItinerarySummaryLine(BaseModel):
    """Compact per-item line handed to the completion service."""

    day_number: int
    name: str
    type: str

    def render(self) -> str:
        return f"Day {self.day_number}: {self.name} ({self.type})"


class SessionContext(BaseModel):
    """Chat session the itinerary belongs to (trip facts + attached quote)."""

    session_id: str
    itinerary_id: int | None = None
    region: str | None = None
    duration: int | None = Field(None, ge=1)
    travel_date: date | None = None
    interest_main: list[str] = Field(default_factory=list)
    interest_sub: list[str] = Field(default_factory=list)
    attractions: list[str] = Field(default_factory=list)
    is_completed: bool = False

    @property
    def interests(self) -> list[str]:
        return [*self.interest_main, *self.interest_sub]

    def trip_dates(self) -> tuple[date, date] | None:
        """Return (start, end) when both travel date and duration are known."""
        if self.travel_date is None or not self.duration:
            return None
        return self.travel_date, self.travel_date + timedelta(days=self.duration - 1)


def new_item_id(prefix: str) -> str:
    """Opaque, unique itinerary item id."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def summarize_items(items: list[ItineraryItem]) -> list[ItinerarySummaryLine]:
    """Per-day summary in itinerary order."""
    ordered = sorted(items, key=lambda i: (i.day_number, i.order_index))
    return [
        ItinerarySummaryLine(day_number=i.day_number, name=i.item_name or "Unknown", type=i.type.value)
        for i in ordered
    ]
