"""Unit tests for the tiered place matcher."""

from typing import Any

import pytest

from backend.quoting.db.inmemory import InMemoryCatalogRepository
from backend.quoting.matching.place_matcher import PlaceMatcher, length_distance
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType, MatchTier
from backend.quoting.models.results import MatchInput
from tests.fakes import sample_places


class SpyCatalog(InMemoryCatalogRepository):
    """Records every search and fuzzy_search round trip."""

    def __init__(self, places: list[CatalogPlace], fuzzy_error: Exception | None = None) -> None:
        super().__init__(places)
        self.searches: list[CatalogFilter] = []
        self.fuzzy_calls: list[dict[str, Any]] = []
        self.fuzzy_error = fuzzy_error

    async def search(self, criteria: CatalogFilter) -> list[CatalogPlace]:
        self.searches.append(criteria)
        return await super().search(criteria)

    async def fuzzy_search(
        self,
        queries: list[str],
        *,
        type: ItemType | None,
        threshold: float,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> dict[str, ScoredPlace]:
        self.fuzzy_calls.append({"queries": list(queries), "region": region})
        if self.fuzzy_error is not None:
            raise self.fuzzy_error
        return await super().fuzzy_search(
            queries, type=type, threshold=threshold, region=region, eligibility=eligibility
        )


@pytest.fixture
def spy() -> SpyCatalog:
    return SpyCatalog(sample_places())


@pytest.fixture
def matcher(spy: SpyCatalog) -> PlaceMatcher:
    return PlaceMatcher(spy)


class TestTiers:
    """Each tier resolves what the cheaper tiers could not."""

    @pytest.mark.asyncio
    async def test_exact_match_is_case_insensitive(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="  GWANGJANG market ")])

        assert result.tier == MatchTier.exact
        assert result.place is not None
        assert result.place.id == 3

    @pytest.mark.asyncio
    async def test_exact_match_on_korean_name(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="경복궁")])

        assert result.tier == MatchTier.exact
        assert result.place is not None
        assert result.place.id == 1

    @pytest.mark.asyncio
    async def test_localized_name_is_tried(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Kwangjang", localized_name="광장시장")])

        assert result.tier == MatchTier.exact
        assert result.place is not None
        assert result.place.id == 3

    @pytest.mark.asyncio
    async def test_partial_match_when_input_is_contained(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Bukchon Hanok Village")])

        assert result.tier == MatchTier.partial
        assert result.place is not None
        assert result.place.id == 2

    @pytest.mark.asyncio
    async def test_partial_match_when_name_is_contained(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Evening at N Seoul Tower")])

        assert result.tier == MatchTier.partial
        assert result.place is not None
        assert result.place.id == 5

    @pytest.mark.asyncio
    async def test_partial_prefers_closest_length(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="market")])

        assert result.tier == MatchTier.partial
        assert result.place is not None
        assert result.place.name_eng == "Gwangjang Market"

    @pytest.mark.asyncio
    async def test_partial_tie_keeps_catalog_order(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="palace")])

        assert result.place is not None
        assert result.place.id == 1

    @pytest.mark.asyncio
    async def test_fuzzy_match_on_typo(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Gyeongbokgun Palace")])

        assert result.tier == MatchTier.fuzzy
        assert result.place is not None
        assert result.place.id == 1
        assert result.score is not None and result.score > 0.3

    @pytest.mark.asyncio
    async def test_unmatched(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Zzyzx Qwerty")])

        assert result.tier == MatchTier.unmatched
        assert result.place is None
        assert result.matched is False

    @pytest.mark.asyncio
    async def test_empty_input(self, matcher: PlaceMatcher, spy: SpyCatalog) -> None:
        assert await matcher.match([]) == []
        assert spy.searches == []


class TestBatching:
    @pytest.mark.asyncio
    async def test_results_follow_input_order_with_two_round_trips(
        self, matcher: PlaceMatcher, spy: SpyCatalog
    ) -> None:
        inputs = [
            MatchInput(name="Zzyzx Qwerty"),
            MatchInput(name="Gwangjang Market"),
            MatchInput(name="Gyeongbokgun Palace"),
            MatchInput(name="Bukchon Hanok Village"),
        ]

        results = await matcher.match(inputs)

        assert [r.input.name for r in results] == [i.name for i in inputs]
        assert [r.tier for r in results] == [
            MatchTier.unmatched,
            MatchTier.exact,
            MatchTier.fuzzy,
            MatchTier.partial,
        ]
        assert len(spy.searches) == 1
        assert len(spy.fuzzy_calls) == 1
        # Only inputs left over by the exact and partial tiers reach the fuzzy tier
        assert spy.fuzzy_calls[0]["queries"] == ["gyeongbokgun palace", "zzyzx qwerty"]

    @pytest.mark.asyncio
    async def test_no_fuzzy_round_trip_when_all_resolved(
        self, matcher: PlaceMatcher, spy: SpyCatalog
    ) -> None:
        await matcher.match([MatchInput(name="N Seoul Tower"), MatchInput(name="Insadong")])

        assert spy.fuzzy_calls == []

    @pytest.mark.asyncio
    async def test_region_is_passed_to_fuzzy_tier(
        self, matcher: PlaceMatcher, spy: SpyCatalog
    ) -> None:
        await matcher.match([MatchInput(name="Haeundae Beech")], region="부산")

        assert spy.fuzzy_calls[0]["region"] == "부산"

    @pytest.mark.asyncio
    async def test_fuzzy_failure_degrades_to_unmatched(self) -> None:
        spy = SpyCatalog(sample_places(), fuzzy_error=RuntimeError("function similarity does not exist"))
        matcher = PlaceMatcher(spy)

        results = await matcher.match(
            [MatchInput(name="Gwangjang Market"), MatchInput(name="Gyeongbokgun Palace")]
        )

        assert [r.tier for r in results] == [MatchTier.exact, MatchTier.unmatched]


class TestEligibility:
    @pytest.mark.asyncio
    async def test_ineligible_entries_are_not_selected(self, matcher: PlaceMatcher) -> None:
        [result] = await matcher.match([MatchInput(name="Private Hanok Gallery")])

        assert result.tier == MatchTier.unmatched

    @pytest.mark.asyncio
    async def test_find_ineligible_matches(self, matcher: PlaceMatcher) -> None:
        blocked = await matcher.find_ineligible_matches(
            ["Private Hanok Gallery", "Gwangjang Market", "Private Hanok Galery"]
        )

        assert sorted(blocked) == ["Private Hanok Galery", "Private Hanok Gallery"]
        assert blocked["Private Hanok Gallery"].tier == MatchTier.exact
        assert blocked["Private Hanok Gallery"].strength == 1.0
        typo = blocked["Private Hanok Galery"]
        assert typo.tier == MatchTier.fuzzy
        assert typo.score is not None and 0.3 < typo.strength < 1.0

    @pytest.mark.asyncio
    async def test_find_ineligible_matches_empty(self, matcher: PlaceMatcher) -> None:
        assert await matcher.find_ineligible_matches([]) == {}


class TestPrefetch:
    @pytest.mark.asyncio
    async def test_generic_and_filler_words_are_not_fetched(
        self, matcher: PlaceMatcher, spy: SpyCatalog
    ) -> None:
        await matcher.match([MatchInput(name="Visit the Namsan Tower")])

        [criteria] = spy.searches
        assert criteria.name_terms == ["namsan", "visit the namsan tower"]

    @pytest.mark.asyncio
    async def test_generic_word_alone_is_still_a_name(
        self, matcher: PlaceMatcher, spy: SpyCatalog
    ) -> None:
        await matcher.match([MatchInput(name="Market")])

        [criteria] = spy.searches
        assert criteria.name_terms == ["market"]


class TestNameCandidates:
    @pytest.mark.asyncio
    async def test_closest_length_first(self, matcher: PlaceMatcher) -> None:
        places = await matcher.find_name_candidates("market", limit=5)

        assert [p.id for p in places] == [3, 10]

    @pytest.mark.asyncio
    async def test_limit(self, matcher: PlaceMatcher) -> None:
        places = await matcher.find_name_candidates("a", limit=2)

        assert len(places) == 2


def test_length_distance() -> None:
    place = CatalogPlace(id=1, name_eng="N Seoul Tower", name_kor="N서울타워")
    assert length_distance(place, "Seoul Tower") == 2
    assert length_distance(place, "  N Seoul Tower  ") == 0
