"""Tiered place-name matcher: exact, partial, then trigram similarity.

Each tier only sees inputs the previous tiers left unresolved. Exact and
partial share one bulk prefetch; fuzzy is a single batched round trip.
"""

import logging
import re

from backend.quoting.db.repositories import CatalogRepository
from backend.quoting.models.catalog import CatalogFilter, CatalogPlace, ScoredPlace
from backend.quoting.models.common import Eligibility, ItemType, MatchTier
from backend.quoting.models.results import MatchInput, MatchResult
from backend.quoting.utils.metrics import record_match_tiers

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 0.3

_WORD_RE = re.compile(r"[^\W_]+")

# Category words shared by many entries; alone they do not identify a place
GENERIC_WORDS = frozenset(
    {
        "palace",
        "temple",
        "market",
        "park",
        "tower",
        "village",
        "museum",
        "beach",
        "mountain",
        "restaurant",
        "cafe",
        "hotel",
        "street",
        "station",
    }
)

_STOP_WORDS = frozenset(
    {"the", "and", "for", "with", "near", "from", "into", "our", "some", "visit"}
)


def _key(text: str | None) -> str:
    return (text or "").strip().lower()


def _input_keys(item: MatchInput) -> list[str]:
    keys = [_key(item.name), _key(item.localized_name)]
    return [k for k in keys if k]


def length_distance(place: CatalogPlace, name: str) -> int:
    """Character-length gap between the English name and ``name``."""
    return abs(len(place.name_eng or place.name_kor) - len(name.strip()))


class PlaceMatcher:
    """Resolves free-text place names against the catalog.

    Parameterized by eligibility so the same logic serves both normal
    selection (``ai_enabled`` entries) and the excluded-place check.
    """

    def __init__(self, catalog: CatalogRepository, item_type: ItemType | None = ItemType.place):
        self._catalog = catalog
        self._item_type = item_type

    async def match(
        self,
        inputs: list[MatchInput],
        *,
        fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD,
        region: str | None = None,
        eligibility: Eligibility = Eligibility.eligible,
    ) -> list[MatchResult]:
        """Match each input; one result per input, in input order."""
        if not inputs:
            return []

        resolved: dict[int, MatchResult] = {}

        prefetched = await self._prefetch(inputs, eligibility)

        # Tier 1: exact (case-insensitive) on either name
        exact_map: dict[str, CatalogPlace] = {}
        for place in prefetched:
            for name in (place.name_eng, place.name_kor):
                if _key(name):
                    exact_map.setdefault(_key(name), place)

        for idx, item in enumerate(inputs):
            for key in _input_keys(item):
                if key in exact_map:
                    resolved[idx] = MatchResult(input=item, tier=MatchTier.exact, place=exact_map[key])
                    break

        # Tier 2: bidirectional containment, closest length wins
        for idx, item in enumerate(inputs):
            if idx in resolved:
                continue
            best = self._best_partial(item, prefetched)
            if best is not None:
                resolved[idx] = MatchResult(input=item, tier=MatchTier.partial, place=best)

        # Tier 3: trigram similarity, one round trip for every leftover input
        unresolved = [idx for idx in range(len(inputs)) if idx not in resolved]
        if unresolved:
            fuzzy = await self._fuzzy(
                [inputs[idx] for idx in unresolved], fuzzy_threshold, region, eligibility
            )
            for idx in unresolved:
                hits = [fuzzy[k] for k in _input_keys(inputs[idx]) if k in fuzzy]
                if not hits:
                    continue
                scored = max(hits, key=lambda s: s.score)
                logger.debug(
                    f"Fuzzy match '{inputs[idx].name}' -> {scored.place.id} ({scored.score:.2f})"
                )
                resolved[idx] = MatchResult(
                    input=inputs[idx],
                    tier=MatchTier.fuzzy,
                    place=scored.place,
                    score=scored.score,
                )

        results = [
            resolved.get(idx) or MatchResult(input=item, tier=MatchTier.unmatched)
            for idx, item in enumerate(inputs)
        ]
        self._report(results, eligibility)
        return results

    async def find_ineligible_matches(
        self, names: list[str], *, fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    ) -> dict[str, MatchResult]:
        """Names that resolve to an entry excluded from automated selection.

        Unmatched names are left out, so callers can compare match strength
        against the eligible result for the same name.
        """
        if not names:
            return {}
        results = await self.match(
            [MatchInput(name=n) for n in names],
            fuzzy_threshold=fuzzy_threshold,
            eligibility=Eligibility.ineligible,
        )
        return {r.input.name: r for r in results if r.matched}

    async def find_name_candidates(self, name: str, *, limit: int = 5) -> list[CatalogPlace]:
        """Eligible entries whose name contains ``name``, closest length first.

        No exclusion list: a user may want a place already used elsewhere.
        """
        places = await self._catalog.search(
            CatalogFilter(type=self._item_type, name_terms=[name.strip()], limit=None)
        )
        places.sort(key=lambda p: length_distance(p, name))
        return places[:limit]

    async def _prefetch(
        self, inputs: list[MatchInput], eligibility: Eligibility
    ) -> list[CatalogPlace]:
        # Whole inputs plus distinctive words, so names inside an input are fetched too
        keys = {key for item in inputs for key in _input_keys(item)}
        words = {
            w
            for key in keys
            for w in _WORD_RE.findall(key)
            if len(w) > 2 and w not in GENERIC_WORDS and w not in _STOP_WORDS
        }
        terms = sorted(keys | words)
        return await self._catalog.search(
            CatalogFilter(
                type=self._item_type,
                eligibility=eligibility,
                name_terms=terms,
                limit=None,
            )
        )

    @staticmethod
    def _best_partial(item: MatchInput, candidates: list[CatalogPlace]) -> CatalogPlace | None:
        best: CatalogPlace | None = None
        best_distance: int | None = None
        keys = _input_keys(item)
        for place in candidates:
            names = [k for k in (_key(place.name_eng), _key(place.name_kor)) if k]
            if not any(k in n or n in k for k in keys for n in names):
                continue
            distance = length_distance(place, item.name)
            if best_distance is None or distance < best_distance:
                best, best_distance = place, distance
        return best

    async def _fuzzy(
        self,
        items: list[MatchInput],
        threshold: float,
        region: str | None,
        eligibility: Eligibility,
    ) -> dict[str, ScoredPlace]:
        queries = sorted({key for item in items for key in _input_keys(item)})
        try:
            return await self._catalog.fuzzy_search(
                queries,
                type=self._item_type,
                threshold=threshold,
                region=region,
                eligibility=eligibility,
            )
        except Exception as e:
            logger.warning(
                f"Fuzzy match failed for {len(queries)} queries, leaving them unmatched: {e}"
            )
            return {}

    @staticmethod
    def _report(results: list[MatchResult], eligibility: Eligibility) -> None:
        counts = {tier.value: 0 for tier in MatchTier}
        for r in results:
            counts[r.tier.value] += 1
        logger.info(
            f"Matched {len(results)} names ({eligibility.value}): "
            f"exact={counts['exact']} partial={counts['partial']} "
            f"fuzzy={counts['fuzzy']} unmatched={counts['unmatched']}"
        )
        if eligibility is Eligibility.eligible:
            record_match_tiers(counts)
