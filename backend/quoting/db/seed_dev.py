"""Dev seeding helper: a small Seoul catalog, one quote and one chat session."""

import asyncio
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from backend.quoting.db.engine import get_async_engine
from backend.quoting.db.inmemory import (
    InMemoryCatalogRepository,
    InMemoryItineraryStore,
    InMemorySessionRepository,
)
from backend.quoting.db.models import CatalogItem, ChatSession, Quote
from backend.quoting.models.catalog import CatalogPlace
from backend.quoting.models.itinerary import ItineraryItem, SessionContext

DEV_SESSION_ID = "dev-session"
DEV_QUOTE_ID = 1

DEV_PLACES: list[CatalogPlace] = [
    CatalogPlace(
        id=1,
        name_kor="경복궁",
        name_eng="Gyeongbokgung Palace",
        keyword="palace, royal guard, joseon",
        description_eng="The main royal palace of the Joseon dynasty.",
        categories=["Theme:History", "Target:First-Timer"],
        region="서울",
        address_english="161 Sajik-ro, Jongno-gu, Seoul",
    ),
    CatalogPlace(
        id=2,
        name_kor="북촌한옥마을",
        name_eng="Bukchon Hanok Village, Seoul",
        keyword="hanok, traditional houses",
        description_eng="Hillside neighborhood of traditional Korean houses.",
        categories=["Theme:History", "Target:Photogenic"],
        region="서울",
        address_english="37 Gyedong-gil, Jongno-gu, Seoul",
    ),
    CatalogPlace(
        id=3,
        name_kor="광장시장",
        name_eng="Gwangjang Market",
        keyword="street food, bindaetteok",
        description_eng="One of Seoul's oldest traditional markets, famous for food stalls.",
        categories=["Theme:Foodie", "Target:Local-Vibe"],
        region="서울",
        address_english="88 Changgyeonggung-ro, Jongno-gu, Seoul",
    ),
    CatalogPlace(
        id=4,
        name_kor="명동",
        name_eng="Myeongdong Shopping Street",
        keyword="shopping, cosmetics, street food",
        description_eng="Busy shopping district known for K-beauty stores.",
        categories=["Theme:Shopping"],
        region="서울",
        address_english="Myeong-dong, Jung-gu, Seoul",
    ),
    CatalogPlace(
        id=5,
        name_kor="N서울타워",
        name_eng="N Seoul Tower",
        keyword="namsan, observatory, night view",
        description_eng="Observation tower on Namsan mountain.",
        categories=["Target:Photogenic", "Demographic:Couple"],
        region="서울",
        address_english="105 Namsangongwon-gil, Yongsan-gu, Seoul",
    ),
    CatalogPlace(
        id=6,
        name_kor="국립중앙박물관",
        name_eng="National Museum of Korea",
        keyword="museum, artifacts",
        description_eng="Korea's largest museum of history and art.",
        categories=["Theme:History", "Theme:Art", "Demographic:Family"],
        region="서울",
        address_english="137 Seobinggo-ro, Yongsan-gu, Seoul",
    ),
    CatalogPlace(
        id=7,
        name_kor="해운대해수욕장",
        name_eng="Haeundae Beach",
        keyword="beach, ocean",
        description_eng="Busan's most famous beach.",
        categories=["Theme:Nature"],
        region="부산",
        address_english="264 Haeundaehaebyeon-ro, Busan",
    ),
    CatalogPlace(
        id=8,
        name_kor="비공개 갤러리",
        name_eng="Private Hanok Gallery",
        keyword="gallery",
        description_eng="Invitation-only gallery, arranged by staff.",
        categories=["Theme:Art"],
        region="서울",
        ai_enabled=False,
    ),
]

DEV_SESSION = SessionContext(
    session_id=DEV_SESSION_ID,
    itinerary_id=DEV_QUOTE_ID,
    region="seoul",
    duration=2,
    travel_date=date(2026, 11, 2),
    interest_main=["history"],
    interest_sub=["food"],
)


def dev_itinerary_items() -> list[ItineraryItem]:
    """Two-day starting itinerary built from the dev catalog, with stable item ids."""
    by_id = {p.id: p for p in DEV_PLACES}
    layout = [(1, 1), (1, 2), (2, 3), (2, 4)]
    order: dict[int, int] = {}
    items = []
    for day, place_id in layout:
        items.append(
            ItineraryItem.from_place(
                by_id[place_id], day_number=day, order_index=order.get(day, 0), note=None
            ).model_copy(update={"id": f"dev-{day}-{place_id}"})
        )
        order[day] = order.get(day, 0) + 1
    return items


def build_dev_repositories() -> tuple[
    InMemoryCatalogRepository, InMemoryItineraryStore, InMemorySessionRepository
]:
    """In-memory repositories pre-loaded with the dev data."""
    catalog = InMemoryCatalogRepository(DEV_PLACES)
    store = InMemoryItineraryStore()
    store.create(dev_itinerary_items(), itinerary_id=DEV_QUOTE_ID)
    sessions = InMemorySessionRepository()
    sessions.add(DEV_SESSION)
    return catalog, store, sessions


async def seed_dev_data(engine: AsyncEngine | None = None) -> None:
    """Seed the dev catalog, quote and session.

    This function is idempotent - safe to run multiple times.
    """
    async with AsyncSession(engine or get_async_engine()) as session:
        existing = set((await session.execute(select(CatalogItem.id))).scalars().all())
        for place in DEV_PLACES:
            if place.id in existing:
                continue
            session.add(
                CatalogItem(
                    **place.model_dump(exclude={"type"}),
                    type=place.type.value,
                )
            )
        print(f"Catalog: {len(DEV_PLACES) - len(existing & {p.id for p in DEV_PLACES})} added")

        if await session.get(Quote, DEV_QUOTE_ID) is None:
            session.add(
                Quote(
                    id=DEV_QUOTE_ID,
                    items=[i.model_dump(mode="json") for i in dev_itinerary_items()],
                    version=0,
                )
            )
            print(f"Creating dev quote {DEV_QUOTE_ID}...")
        else:
            print(f"Dev quote {DEV_QUOTE_ID} already exists")

        if await session.get(ChatSession, DEV_SESSION_ID) is None:
            session.add(
                ChatSession(
                    session_id=DEV_SESSION_ID,
                    quote_id=DEV_QUOTE_ID,
                    region=DEV_SESSION.region,
                    duration=DEV_SESSION.duration,
                    travel_date=DEV_SESSION.travel_date,
                    interest_main=DEV_SESSION.interest_main,
                    interest_sub=DEV_SESSION.interest_sub,
                    attractions=[],
                )
            )
            print(f"Creating dev session {DEV_SESSION_ID}...")
        else:
            print(f"Dev session {DEV_SESSION_ID} already exists")

        await session.commit()
        print("Dev seeding complete")


if __name__ == "__main__":
    asyncio.run(seed_dev_data())
