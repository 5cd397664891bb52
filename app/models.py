"""SQLAlchemy ORM models.

Three tables back the service: ``movies`` (the primary records),
``movie_box_office`` (one optional enrichment row per movie) and
``movie_ratings`` (one rating per movie and rater). Keeping them isolated here
makes future Alembic migrations simpler.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import BigInteger, Date, DateTime, Float, ForeignKey, Index, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.core.ids import new_ulid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Movie(Base):
    """A movie record; ``title`` doubles as the public lookup key."""

    __tablename__ = "movies"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=new_ulid)
    title: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    release_date: Mapped[date] = mapped_column(Date)
    genre: Mapped[str] = mapped_column(String(100))
    distributor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    budget: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    mpa_rating: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # Python-side defaults keep the stored representation identical to the
    # values round-tripped through pagination cursors.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (Index("ix_movies_created_at_id", "created_at", "id"),)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"Movie(id={self.id}, title={self.title}, release_date={self.release_date})"


class MovieBoxOffice(Base):
    """Box-office figures fetched from the external provider."""

    __tablename__ = "movie_box_office"

    movie_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("movies.id", ondelete="CASCADE"),
        primary_key=True,
    )
    gross_usd: Mapped[int] = mapped_column(BigInteger)
    opening_weekend_usa: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3))
    source: Mapped[str] = mapped_column(String(64))
    last_reported: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class MovieRating(Base):
    __tablename__ = "movie_ratings"

    movie_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("movies.id", ondelete="CASCADE"),
        primary_key=True,
    )
    rater_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    rating: Mapped[float] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
