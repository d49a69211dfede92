"""
Persisted cache tables.
Declarative mapping with SQLAlchemy 2.0+
"""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models"""

    pass


class CachedLocationDB(Base):
    """Location search results keyed by keyword and search params"""

    __tablename__ = "cached_locations"

    KEY_FIELD: ClassVar[str] = "keyword"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    keyword: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    search_params: Mapped[str] = mapped_column(Text, nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    meta_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("keyword", "search_params", name="uq_location_keyword_params"),
        Index("idx_location_expires", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<CachedLocation(keyword={self.keyword}, expires_at={self.expires_at})>"


class CachedActivityDB(Base):
    """Activity and POI results keyed by location key and search params"""

    __tablename__ = "cached_activities"

    KEY_FIELD: ClassVar[str] = "location_key"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    search_params: Mapped[str] = mapped_column(Text, nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    meta_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "location_key", "search_params", name="uq_activity_location_params"
        ),
        Index("idx_activity_expires", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<CachedActivity(location_key={self.location_key}, "
            f"expires_at={self.expires_at})>"
        )
