"""SQLAlchemy ORM models for the catalog, quotes and chat sessions."""

from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, Index, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class CatalogItem(Base):
    """Catalog entry the engine may pick from (place, restaurant, ...)."""

    __tablename__ = "items"
    __table_args__ = (
        Index("idx_items_type_ai_enabled", "type", "ai_enabled"),
        Index("idx_items_region", "region"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="place")
    name_kor: Mapped[str] = mapped_column(Text, nullable=False, default="")
    name_eng: Mapped[str] = mapped_column(Text, nullable=False, default="")
    keyword: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    description_eng: Mapped[str | None] = mapped_column(Text, nullable=True)
    categories: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    region: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_english: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Quote(Base):
    """Quote/estimate record owning the itinerary item list."""

    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JsonType, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status_ai: Mapped[str] = mapped_column(Text, nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ChatSession(Base):
    """Assisted-chat session with the trip facts collected so far."""

    __tablename__ = "chat_sessions"

    session_id: Mapped[str] = mapped_column(Text, primary_key=True)
    quote_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    region: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    travel_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    interest_main: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    interest_sub: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    attractions: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
