"""Prompt builders and sampling settings for every completion call."""

from dataclasses import dataclass
from datetime import date

from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.itinerary import ItineraryItem, ItinerarySummaryLine

DESCRIPTION_PREVIEW_CHARS = 100


@dataclass(frozen=True)
class PromptConfig:
    """Sampling settings for one prompt."""

    temperature: float
    max_output_tokens: int


MODIFICATION_INTENT_CONFIG = PromptConfig(temperature=0.2, max_output_tokens=1024)
SELECT_BEST_ITEM_CONFIG = PromptConfig(temperature=0.3, max_output_tokens=512)
SELECT_MULTIPLE_ITEMS_CONFIG = PromptConfig(temperature=0.5, max_output_tokens=1024)
DAY_TIMELINE_CONFIG = PromptConfig(temperature=0.7, max_output_tokens=500)
TRAVEL_ASSISTANT_CONFIG = PromptConfig(temperature=0.7, max_output_tokens=500)


def render_summary(lines: list[ItinerarySummaryLine]) -> str:
    if not lines:
        return "(empty itinerary)"
    return "\n".join(line.render() for line in lines)


def render_candidates(candidates: list[CatalogPlace]) -> str:
    """One line per candidate: id, names, keyword and a truncated description."""
    rendered = []
    for place in candidates:
        parts = [f"ID: {place.id}", f"Name: {place.display_name}"]
        if place.name_kor and place.name_kor != place.display_name:
            parts.append(f"Korean: {place.name_kor}")
        if place.keyword:
            parts.append(f"Keywords: {place.keyword}")
        description = place.description_eng or place.description
        if description:
            parts.append(f"Description: {description[:DESCRIPTION_PREVIEW_CHARS]}")
        rendered.append("- " + " | ".join(parts))
    return "\n".join(rendered)


def _interests_text(interests: list[str]) -> str:
    return ", ".join(interests) if interests else "general sightseeing"


def build_modification_intent_prompt(
    *,
    summary: list[ItinerarySummaryLine],
    interests: list[str],
    region: str,
    message: str,
) -> str:
    return f"""You are an AI assistant helping users modify their Korea travel itinerary.

Current itinerary:
{render_summary(summary)}

User's interests: {_interests_text(interests)}
Region: {region}

User's request: "{message}"

Analyze the user's request and determine what action they want to take.

Return ONLY a JSON object with these fields:
{{
  "action": "regenerate_day" | "add_item" | "remove_item" | "replace_item" | "general_feedback",
  "dayNumber": number | null,
  "itemName": string | null,
  "category": string | null,
  "confidence": 0.0 to 1.0,
  "explanation": "brief explanation of interpretation"
}}

Action definitions:
- regenerate_day: redo one day's schedule from scratch
- add_item: add a specific place, or something from a category
- remove_item: remove something by name or category (e.g. "shopping")
- replace_item: swap a specific item for something else
- general_feedback: positive feedback or a general question

Examples:
- "Day 2 doesn't look good" -> regenerate_day, dayNumber: 2
- "I want to visit Namsan Tower" -> add_item, itemName: "Namsan Tower"
- "Remove shopping" -> remove_item, category: "shopping"
- "Change Myeongdong to something else" -> replace_item, itemName: "Myeongdong"
- "Add more food places" -> add_item, category: "food"
- "Looks great!" -> general_feedback"""


def build_select_best_prompt(
    *,
    candidates: list[CatalogPlace],
    user_request: str,
    interests: list[str],
    context: str | None = None,
) -> str:
    lines = [
        "You are a Korea travel expert helping select a place for a trip.",
        "",
        f'User request: "{user_request}"',
        f"User interests: {_interests_text(interests)}",
    ]
    if context:
        lines.append(f"Context: {context}")
    lines.extend(
        [
            "",
            "Available places (you MUST choose from this list):",
            render_candidates(candidates),
            "",
            "Select the BEST matching place from the list above.",
            "",
            "Return ONLY a JSON object:",
            "{",
            '  "selectedId": <the ID number of your chosen place>,',
            '  "reason": "brief reason why this place matches the request"',
            "}",
        ]
    )
    return "\n".join(lines)


def build_select_many_prompt(
    *,
    candidates: list[CatalogPlace],
    count: int,
    interests: list[str],
    day_number: int,
    region: str,
) -> str:
    return f"""You are a Korea travel expert creating Day {day_number} of a trip in {region}.

User interests: {_interests_text(interests)}

Available places (you MUST choose from this list only):
{render_candidates(candidates)}

Select {count} places that make a great day. Consider:
- Logical visiting order (nearby places together)
- A mix of different kinds of places
- The user's interests

Return ONLY a JSON array:
[
  {{ "selectedId": <ID number>, "reason": "brief reason" }},
  ...
]"""


def build_day_timeline_prompt(*, day_number: int, items: list[ItineraryItem]) -> str:
    item_lines = "\n".join(f"- {item.item_name} ({item.type.value})" for item in items)
    return f"""You are a travel itinerary writer. Create a timeline for Day {day_number} of a Korea travel itinerary.

Items for this day (in order):
{item_lines}

Instructions:
- Write in English
- Use this format for each item:
  - [Place Name] – [1-2 sentence description of what to do or see there]
- Start with "- Pick up at [accommodation]" if the day has accommodation or transportation
- End with "- Drop off at [accommodation]" if the day has accommodation
- Keep descriptions engaging but concise

Generate the timeline:"""


def build_context_info(
    *,
    trip_dates: tuple[date, date] | None,
    region: str | None,
    interests: list[str],
    summary: list[ItinerarySummaryLine],
) -> str:
    """Trip facts block embedded in the assistant system prompt."""
    lines = []
    if trip_dates:
        lines.append(f"Trip dates: {trip_dates[0].isoformat()} to {trip_dates[1].isoformat()}")
    if region:
        lines.append(f"Region: {region}")
    if interests:
        lines.append(f"Interests: {', '.join(interests)}")
    if summary:
        lines.append("Current itinerary:")
        lines.extend(line.render() for line in summary)
    return "\n".join(lines)


def build_assistant_system_prompt(context_info: str) -> str:
    """System prompt for the conversational assistant.

    The reply must end with a fenced JSON block carrying the intent tag and an
    optional modification hint.
    """
    context_block = f"\nUser's trip context:\n{context_info}\n" if context_info else ""
    return f"""You are a friendly Korea travel assistant helping a traveler with their trip.

Your capabilities:
1. Answer questions about Korean destinations, culture, food, transportation and weather.
2. Give travel tips and personalized recommendations.
3. Help modify the travel itinerary when requested.
{context_block}
Guidelines:
- Be concise: 2-4 sentences for simple questions.
- If the user wants to modify the itinerary, acknowledge the request and explain what will change.
- Use simple, friendly language.

When classifying intent, resolve references from the conversation history.
If the user asked about "Banpo Hangang Park" earlier and now says "Add it to Day 3",
set modificationData.itemName to "Banpo Hangang Park" and dayNumber to 3.

After your response, append this JSON block:
```json
{{
  "intent": "question" | "modification" | "feedback" | "other",
  "modificationData": {{ "action": "...", "dayNumber": null, "itemName": null, "category": null }}
}}
```"""
