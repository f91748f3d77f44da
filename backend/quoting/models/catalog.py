"""Catalog models - places the engine may pick from."""

from pydantic import BaseModel, Field

from backend.quoting.models.common import Eligibility, ItemType


class CatalogPlace(BaseModel):
    """A catalog entry (place, restaurant, accommodation...)."""

    id: int
    type: ItemType = ItemType.place
    name_kor: str = ""
    name_eng: str = ""
    keyword: str | None = None
    description: str | None = None
    description_eng: str | None = None
    categories: list[str] = Field(default_factory=list)
    region: str | None = None
    address_english: str | None = None
    images: list[str] = Field(default_factory=list)
    lat: float | None = None
    lng: float | None = None
    ai_enabled: bool = True

    @property
    def display_name(self) -> str:
        return self.name_eng or self.name_kor


class ScoredPlace(BaseModel):
    """Catalog entry paired with a trigram similarity score."""

    place: CatalogPlace
    score: float


class CatalogFilter(BaseModel):
    """Filter for ``CatalogRepository.search``.

    Groups are AND'd together; values inside a group are OR'd:
    - ``regions``: substring match on region or English address
    - ``text_query``: substring match on any of ``text_fields``
    - ``categories`` / ``keyword_terms``: any category tag, or any term found
      in keyword/description
    - ``name_terms``: any term found in the English or Korean name
    """

    type: ItemType | None = ItemType.place
    eligibility: Eligibility = Eligibility.eligible
    regions: list[str] = Field(default_factory=list)
    text_query: str | None = None
    text_fields: tuple[str, ...] = (
        "name_eng",
        "name_kor",
        "keyword",
        "description",
        "description_eng",
    )
    categories: list[str] = Field(default_factory=list)
    keyword_terms: list[str] = Field(default_factory=list)
    name_terms: list[str] = Field(default_factory=list)
    exclude_ids: list[int] = Field(default_factory=list)
    limit: int | None = 20
