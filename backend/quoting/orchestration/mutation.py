"""Itinerary mutation engine.

Executes exactly one action per call against the stored item list:
regenerate_day, add_item, remove_item, replace_item or general_feedback.
A declined request (ambiguous, nothing matched, out-of-range day) is a
normal ``success=False`` result with the list left untouched.

Writes are whole-list replacements made under a per-itinerary lock and an
optimistic version check, so a partially applied edit is never stored.
"""

import logging
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from backend.quoting.config import Settings, get_settings
from backend.quoting.db.repositories import ItineraryNotFoundError, ItineraryStore
from backend.quoting.matching.place_matcher import GENERIC_WORDS, PlaceMatcher
from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.common import ItemType, MatchTier, ModificationAction
from backend.quoting.models.intent import ModificationIntent
from backend.quoting.models.itinerary import ItineraryItem, SessionContext
from backend.quoting.models.results import MatchInput, MutationResult
from backend.quoting.orchestration.locks import KeyedLock
from backend.quoting.orchestration.ranking import PlaceRanker, Selection
from backend.quoting.sourcing.candidate_sourcer import CandidateRequest, CandidateSourcer
from backend.quoting.upstream.executor import UpstreamError
from backend.quoting.utils.metrics import record_mutation

logger = logging.getLogger(__name__)

MIN_EXPLICIT_NAME_LENGTH = 3

_WORD_RE = re.compile(r"[^\W_]+")

CLARIFICATION_MESSAGE = (
    "I'm not sure what you'd like to change. Could you be more specific? "
    'For example: "Regenerate Day 2", "Add Namsan Tower to Day 1" or "Remove shopping".'
)

FEEDBACK_RESPONSES = (
    "Great! I'm glad you like it. When you're ready, click 'Send to Expert' to have our "
    "travel specialist finalize your itinerary.",
    "Awesome! If you're happy with the itinerary, you can send it to our expert for final touches.",
    "Perfect! Let me know if you'd like any changes, or send it to our expert when you're ready.",
)


def core_words(name: str) -> list[str]:
    """Words of a name that say which place it is, not what kind of place."""
    return [w for w in _WORD_RE.findall(name.lower()) if len(w) > 2 and w not in GENERIC_WORDS]


def passes_core_word_guard(requested: str, candidate: CatalogPlace) -> bool:
    """Reject a candidate that only shares a generic place-type word.

    "Namsan Tower" must not be satisfied by "Lotte World Tower".
    """
    requested_l = requested.strip().lower()
    names = [n.lower() for n in (candidate.name_eng, candidate.name_kor) if n]
    if any(requested_l in n or (n and n in requested_l) for n in names):
        return True

    wanted = core_words(requested)
    have = core_words(candidate.name_eng or candidate.name_kor)
    if not wanted or not have:
        return True
    return any(
        any(w in n for n in names) or any(w in h or h in w for h in have) for w in wanted
    )


def normalize_order(items: list[ItineraryItem]) -> list[ItineraryItem]:
    """Sort by day and order, then renumber each day densely from 0."""
    indexed = sorted(enumerate(items), key=lambda p: (p[1].day_number, p[1].order_index, p[0]))
    normalized: list[ItineraryItem] = []
    next_index: dict[int, int] = {}
    for _, item in indexed:
        order = next_index.get(item.day_number, 0)
        next_index[item.day_number] = order + 1
        if item.order_index != order:
            item = item.model_copy(update={"order_index": order})
        normalized.append(item)
    return normalized


def _last_day(items: list[ItineraryItem]) -> int:
    return max((i.day_number for i in items), default=1)


def _max_day(session: SessionContext, items: list[ItineraryItem]) -> int:
    return max(session.duration or 0, max((i.day_number for i in items), default=0))


def _used_catalog_ids(items: list[ItineraryItem]) -> list[int]:
    return sorted({i.item_id for i in items if i.item_id is not None})


def _next_order(items: list[ItineraryItem], day: int) -> int:
    return max((i.order_index for i in items if i.day_number == day), default=-1) + 1


def _same_name(requested: str, place: CatalogPlace) -> bool:
    key = requested.strip().lower()
    return key in (place.name_eng.lower(), place.name_kor.lower())


def _name_selection(requested: str, place: CatalogPlace, *, exact: bool) -> Selection:
    tier = "exact" if exact else "close"
    return Selection(
        place=place,
        reason=f'Matched your request "{requested}" to {place.display_name} ({tier} name match).',
    )


@dataclass
class _Outcome:
    """Handler result; ``items`` is set only when something must be written."""

    success: bool
    message: str
    items: list[ItineraryItem] | None = None


Handler = Callable[
    [SessionContext, list[ItineraryItem], ModificationIntent], Awaitable[_Outcome]
]


class ItineraryMutationEngine:
    """Single-shot state machine over the mutation actions."""

    def __init__(
        self,
        *,
        store: ItineraryStore,
        matcher: PlaceMatcher,
        sourcer: CandidateSourcer,
        ranker: PlaceRanker,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._matcher = matcher
        self._sourcer = sourcer
        self._ranker = ranker
        self._settings = settings or get_settings()
        self._rng = rng or random.Random()
        self._locks = locks or KeyedLock()
        self._handlers: dict[ModificationAction, Handler] = {
            ModificationAction.regenerate_day: self._regenerate_day,
            ModificationAction.add_item: self._add_item,
            ModificationAction.remove_item: self._remove_item,
            ModificationAction.replace_item: self._replace_item,
            ModificationAction.general_feedback: self._general_feedback,
        }

    async def execute(self, session: SessionContext, intent: ModificationIntent) -> MutationResult:
        """Apply one intent to the session's itinerary.

        Raises:
            ItineraryNotFoundError: Session has no itinerary
            StaleItineraryError: Itinerary changed underneath this call
            UpstreamError: Catalog unavailable where no fallback exists
        """
        itinerary_id = session.itinerary_id
        if itinerary_id is None:
            raise ItineraryNotFoundError(f"Session {session.session_id} has no itinerary")

        async with self._locks.hold(itinerary_id):
            doc = await self._store.read(itinerary_id)
            if doc is None:
                raise ItineraryNotFoundError(f"Itinerary {itinerary_id} not found")

            if intent.needs_clarification(self._settings.clarification_confidence):
                logger.info(
                    f"Low-confidence intent ({intent.action.value}, {intent.confidence:.2f}), "
                    "asking for clarification"
                )
                outcome = _Outcome(success=False, message=CLARIFICATION_MESSAGE)
            else:
                handler = self._handlers[intent.action]
                outcome = await handler(session, list(doc.items), intent)

            updated = doc.items
            if outcome.items is not None:
                updated = normalize_order(outcome.items)
                version = await self._store.replace_all(
                    itinerary_id, updated, expected_version=doc.version
                )
                logger.info(
                    f"Itinerary {itinerary_id} {intent.action.value}: "
                    f"{len(doc.items)} -> {len(updated)} items (v{version})"
                )

        record_mutation(intent.action.value, outcome.success)
        return MutationResult(
            success=outcome.success,
            updated_items=updated,
            bot_message=outcome.message,
            intent=intent,
        )

    async def regenerate_day(self, session: SessionContext, day_number: int) -> MutationResult:
        """Rebuild one day from fresh candidates."""
        intent = ModificationIntent(
            action=ModificationAction.regenerate_day,
            day_number=day_number if day_number >= 1 else None,
            confidence=1.0,
            explanation=f"Regenerate Day {day_number}",
        )
        return await self.execute(session, intent)

    async def _regenerate_day(
        self, session: SessionContext, items: list[ItineraryItem], intent: ModificationIntent
    ) -> _Outcome:
        max_day = _max_day(session, items)
        day = intent.day_number
        if day is None:
            return _Outcome(
                success=False,
                message="Which day would you like me to regenerate? Please specify the day number.",
            )
        if not 1 <= day <= max_day:
            return _Outcome(
                success=False,
                message=f"Day {day} is not part of your trip. "
                f"Please choose a day between 1 and {max(max_day, 1)}.",
            )

        other_day_ids = sorted(
            {i.item_id for i in items if i.day_number != day and i.item_id is not None}
        )
        request = CandidateRequest(
            interests=session.interests,
            region=session.region,
            type=ItemType.place,
            exclude_ids=other_day_ids,
            limit=self._settings.regenerate_candidate_limit,
        )
        candidates = await self._sourcer.find_candidates(request)

        if len(candidates) < self._settings.regenerate_min_candidates and session.region:
            seen = {c.id for c in candidates}
            wider = await self._sourcer.find_candidates(request.model_copy(update={"region": None}))
            candidates.extend(c for c in wider if c.id not in seen)

        if not candidates:
            return _Outcome(
                success=False,
                message="I could not find suitable places in our database. "
                "Please try with different preferences.",
            )

        picks = await self._ranker.select_many(
            candidates,
            count=self._settings.regenerate_item_count,
            interests=session.interests,
            day_number=day,
            region=session.region or self._settings.default_region_label,
        )
        new_day = [
            ItineraryItem.from_place(
                pick.place, day_number=day, order_index=idx, note=pick.reason or None
            )
            for idx, pick in enumerate(picks)
        ]
        kept = [i for i in items if i.day_number != day]
        return _Outcome(
            success=True,
            message=f"I've created a new itinerary for Day {day} using our curated places! "
            "Take a look and let me know if you'd like any more changes.",
            items=kept + new_day,
        )

    async def _add_item(
        self, session: SessionContext, items: list[ItineraryItem], intent: ModificationIntent
    ) -> _Outcome:
        name = intent.item_name
        request_text = name or intent.category
        if not request_text:
            return _Outcome(
                success=False,
                message="What would you like to add? Please tell me the name of a place "
                'or a category (like "food", "shopping", "culture").',
            )

        day = intent.day_number or _last_day(items)
        max_day = max(_max_day(session, items), 1)
        if day > max_day:
            return _Outcome(
                success=False,
                message=f"Day {day} is not part of your trip. "
                f"Please choose a day between 1 and {max_day}.",
            )

        explicit = name is not None and len(name) > MIN_EXPLICIT_NAME_LENGTH
        try:
            selection = await self._pick_for_add(session, items, intent, day, explicit)
        except UpstreamError as e:
            if not name:
                raise
            logger.warning(f"Catalog unavailable while adding '{name}', noting it for review: {e}")
            return self._tbd_outcome(items, name, day)

        if selection is None:
            if name:
                return self._tbd_outcome(items, name, day)
            return _Outcome(
                success=False,
                message="I couldn't find any places in our database. Please tell me the "
                "specific place name you'd like to add, and I'll note it for our travel "
                "expert to review.",
            )

        place = selection.place
        new_item = ItineraryItem.from_place(
            place, day_number=day, order_index=_next_order(items, day), note=selection.reason
        )
        label = place.display_name
        if place.name_kor and place.name_kor != label:
            label = f'"{label}" ({place.name_kor})'
        else:
            label = f'"{label}"'
        return _Outcome(
            success=True,
            message=f"I've added {label} to Day {day}! {selection.reason}".strip(),
            items=[*items, new_item],
        )

    async def _pick_for_add(
        self,
        session: SessionContext,
        items: list[ItineraryItem],
        intent: ModificationIntent,
        day: int,
        explicit: bool,
    ) -> Selection | None:
        """Catalog entry to add, or None when nothing acceptable exists."""
        name = intent.item_name

        if explicit and name:
            for place in await self._matcher.find_name_candidates(
                name, limit=self._settings.exact_match_limit
            ):
                if passes_core_word_guard(name, place):
                    return _name_selection(name, place, exact=_same_name(name, place))

            # Reverse containment ("Evening at N Seoul Tower") and typos
            [match] = await self._matcher.match(
                [MatchInput(name=name)],
                fuzzy_threshold=self._settings.fuzzy_threshold,
            )
            if (
                match.place is not None
                and match.tier in (MatchTier.exact, MatchTier.partial)
                and passes_core_word_guard(name, match.place)
            ):
                return _name_selection(name, match.place, exact=match.tier is MatchTier.exact)

            named = match.place is not None and passes_core_word_guard(name, match.place)

            blocked = (
                await self._matcher.find_ineligible_matches(
                    [name], fuzzy_threshold=self._settings.fuzzy_threshold
                )
            ).get(name)
            # An excluded entry only wins when it matches more strongly than any eligible one
            if blocked is not None and (not named or blocked.strength > match.strength):
                logger.info(f"'{name}' is excluded from automated selection, noting it for review")
                return None

        candidates = await self._sourcer.find_candidates(
            CandidateRequest(
                query=name or intent.category,
                interests=[intent.category] if intent.category and not name else session.interests,
                region=session.region,
                type=ItemType.place,
                exclude_ids=_used_catalog_ids(items),
                limit=self._settings.pick_candidate_limit,
            )
        )
        if not candidates:
            return None

        request_text = name or intent.category or "a good place to visit"
        selection = await self._ranker.select_best(
            candidates,
            user_request=request_text,
            interests=session.interests,
            context=f'User wants to add "{request_text}" to Day {day} of their '
            f"{session.region or self._settings.default_region_label} trip.",
        )
        if selection is None:
            return None

        if explicit and name and not passes_core_word_guard(name, selection.place):
            logger.info(
                f"Rejected '{selection.place.display_name}' for requested '{name}' "
                "(no shared core word)"
            )
            return None
        return selection

    def _tbd_outcome(self, items: list[ItineraryItem], name: str, day: int) -> _Outcome:
        tbd = ItineraryItem.tbd(
            name,
            day_number=day,
            order_index=_next_order(items, day),
            note=f'Requested by customer. Our travel expert will find the best option for "{name}".',
        )
        return _Outcome(
            success=True,
            message=f'I\'ve noted "{name}" for Day {day}. Our travel expert will review this '
            "and find the best option for you. In the meantime, feel free to continue "
            "customizing your itinerary!",
            items=[*items, tbd],
        )

    async def _remove_item(
        self, session: SessionContext, items: list[ItineraryItem], intent: ModificationIntent
    ) -> _Outcome:
        target = intent.target_text
        if not target:
            return _Outcome(
                success=False,
                message="What would you like to remove? Please specify the place name or category.",
            )

        needle = target.lower()
        day = intent.day_number

        def matches(item: ItineraryItem) -> bool:
            if day is not None and item.day_number != day:
                return False
            return needle in item.item_name.lower() or needle in item.type.value

        removed = [i for i in items if matches(i)]
        if not removed:
            where = f" on Day {day}" if day is not None else ""
            return _Outcome(
                success=False,
                message=f'I couldn\'t find any items matching "{target}"{where} to remove.',
            )

        remaining = [i for i in items if not matches(i)]
        return _Outcome(
            success=True,
            message=f"I've removed {len(removed)} item(s) from your itinerary. "
            "Anything else you'd like to change?",
            items=remaining,
        )

    async def _replace_item(
        self, session: SessionContext, items: list[ItineraryItem], intent: ModificationIntent
    ) -> _Outcome:
        target_name = intent.item_name
        if not target_name:
            return _Outcome(
                success=False,
                message="Which place would you like to replace? Please tell me the name.",
            )

        needle = target_name.lower()
        ordered = sorted(items, key=lambda i: (i.day_number, i.order_index))
        found = next(
            (
                i
                for i in ordered
                if needle in i.item_name.lower()
                and (intent.day_number is None or i.day_number == intent.day_number)
            ),
            None,
        )
        if found is None:
            return _Outcome(
                success=False, message=f'I couldn\'t find "{target_name}" in your itinerary.'
            )

        candidates = await self._sourcer.find_candidates(
            CandidateRequest(
                query=intent.category,
                interests=session.interests,
                region=session.region,
                type=ItemType.place,
                exclude_ids=_used_catalog_ids(items),
                limit=self._settings.pick_candidate_limit,
            )
        )
        if not candidates:
            return _Outcome(
                success=False,
                message="I couldn't find replacement candidates in our database. "
                "Could you specify what type of place you'd prefer?",
            )

        wish = f" with {intent.category}" if intent.category else ""
        selection = await self._ranker.select_best(
            candidates,
            user_request=f'Replace "{found.item_name}"{wish}',
            interests=session.interests,
            context=f"Replacing an item on Day {found.day_number}; suggest something different.",
        )
        if selection is None:
            return _Outcome(
                success=False,
                message="I couldn't find a good replacement. "
                "Could you suggest what type of place you'd prefer?",
            )

        fresh = ItineraryItem.from_place(
            selection.place,
            day_number=found.day_number,
            order_index=found.order_index,
            note=selection.reason or None,
        )
        swapped = fresh.model_copy(update={"id": found.id})
        updated = [swapped if i.id == found.id else i for i in items]
        return _Outcome(
            success=True,
            message=f'I\'ve replaced "{found.item_name}" with "{selection.place.display_name}". '
            f"{selection.reason}".strip(),
            items=updated,
        )

    async def _general_feedback(
        self, session: SessionContext, items: list[ItineraryItem], intent: ModificationIntent
    ) -> _Outcome:
        return _Outcome(success=True, message=self._rng.choice(FEEDBACK_RESPONSES))
