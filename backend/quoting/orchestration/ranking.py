"""Completion-backed ranking of catalog candidates.

Both calls degrade instead of failing: an unusable reply falls back to
candidate order.
"""

import logging
from dataclasses import dataclass
from typing import Any

from backend.quoting.llm.client import CompletionClient, EmptyCompletionError
from backend.quoting.llm.parsing import JsonParsed, extract_json
from backend.quoting.llm.prompts import (
    SELECT_BEST_ITEM_CONFIG,
    SELECT_MULTIPLE_ITEMS_CONFIG,
    build_select_best_prompt,
    build_select_many_prompt,
)
from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.results import RankedPick
from backend.quoting.upstream.executor import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """A chosen candidate. ``fallback`` is True when ranking was not used."""

    place: CatalogPlace
    reason: str = ""
    fallback: bool = False


def _to_pick(entry: Any) -> RankedPick | None:
    if not isinstance(entry, dict):
        return None
    raw_id = entry.get("selectedId", entry.get("selected_id", entry.get("id")))
    if isinstance(raw_id, bool):
        return None
    if isinstance(raw_id, str) and raw_id.strip().isdigit():
        raw_id = int(raw_id.strip())
    if not isinstance(raw_id, int):
        return None
    reason = entry.get("reason")
    return RankedPick(selected_id=raw_id, reason=reason if isinstance(reason, str) else "")


class PlaceRanker:
    """Asks the completion service to choose among candidates."""

    def __init__(self, client: CompletionClient):
        self._client = client

    async def select_best(
        self,
        candidates: list[CatalogPlace],
        *,
        user_request: str,
        interests: list[str],
        context: str | None = None,
    ) -> Selection | None:
        """Single best candidate; the first one if ranking is unusable."""
        if not candidates:
            return None

        prompt = build_select_best_prompt(
            candidates=candidates, user_request=user_request, interests=interests, context=context
        )
        try:
            text = await self._client.complete(
                prompt=prompt,
                temperature=SELECT_BEST_ITEM_CONFIG.temperature,
                max_output_tokens=SELECT_BEST_ITEM_CONFIG.max_output_tokens,
            )
        except (UpstreamError, EmptyCompletionError) as e:
            logger.warning(f"Ranking call failed, using first candidate: {e}")
            return Selection(place=candidates[0], fallback=True)

        result = extract_json(text, expect="object")
        pick = _to_pick(result.value) if isinstance(result, JsonParsed) else None
        by_id = {c.id: c for c in candidates}
        if pick is None or pick.selected_id not in by_id:
            logger.warning(
                f"Ranking reply unusable ({pick.selected_id if pick else 'no id'}), "
                "using first candidate"
            )
            return Selection(place=candidates[0], fallback=True)

        return Selection(place=by_id[pick.selected_id], reason=pick.reason)

    async def select_many(
        self,
        candidates: list[CatalogPlace],
        *,
        count: int,
        interests: list[str],
        day_number: int,
        region: str,
    ) -> list[Selection]:
        """Exactly ``min(count, len(candidates))`` distinct candidates.

        Valid ranked ids come first; the rest is filled in candidate order.
        """
        wanted = min(count, len(candidates))
        if wanted <= 0:
            return []

        prompt = build_select_many_prompt(
            candidates=candidates,
            count=wanted,
            interests=interests,
            day_number=day_number,
            region=region,
        )
        try:
            text = await self._client.complete(
                prompt=prompt,
                temperature=SELECT_MULTIPLE_ITEMS_CONFIG.temperature,
                max_output_tokens=SELECT_MULTIPLE_ITEMS_CONFIG.max_output_tokens,
            )
        except (UpstreamError, EmptyCompletionError) as e:
            logger.warning(f"Multi-ranking call failed, using first {wanted} candidates: {e}")
            return [Selection(place=c, fallback=True) for c in candidates[:wanted]]

        by_id = {c.id: c for c in candidates}
        selections: list[Selection] = []
        seen: set[int] = set()

        result = extract_json(text, expect="array")
        entries = result.value if isinstance(result, JsonParsed) else []
        for entry in entries:
            pick = _to_pick(entry)
            if pick is None or pick.selected_id not in by_id or pick.selected_id in seen:
                continue
            seen.add(pick.selected_id)
            selections.append(Selection(place=by_id[pick.selected_id], reason=pick.reason))
            if len(selections) == wanted:
                break

        if len(selections) < wanted:
            logger.warning(
                f"Multi-ranking returned {len(selections)}/{wanted} usable ids, topping up"
            )
            for candidate in candidates:
                if len(selections) == wanted:
                    break
                if candidate.id not in seen:
                    seen.add(candidate.id)
                    selections.append(Selection(place=candidate, fallback=True))

        return selections
