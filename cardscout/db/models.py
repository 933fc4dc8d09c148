"""SQLAlchemy database models."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cardscout.detect.opportunity import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class User(Base):
    """Owner of watch entries and deals (identity lives with the external provider)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    watchlist: Mapped[list["WatchlistItem"]] = relationship(
        "WatchlistItem", back_populates="user", cascade="all, delete-orphan"
    )


class WatchlistItem(Base):
    """A subject an owner follows."""

    __tablename__ = "watchlist"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id"), nullable=False)
    player_name: Mapped[str] = mapped_column(String(128), nullable=False)
    team: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    prospect_rank: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    alert_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="watchlist")

    __table_args__ = (UniqueConstraint("user_id", "player_name", name="uq_watchlist_user_player"),)


class Deal(Base):
    """Underpriced listing recorded for an owner."""

    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    player_name: Mapped[str] = mapped_column(String(128), nullable=False)
    card_name: Mapped[str] = mapped_column(Text, nullable=False)
    asking_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    market_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    profit_potential: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    profit_percentage: Mapped[float] = mapped_column(Float, nullable=False)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    price_bucket: Mapped[int] = mapped_column(Integer, nullable=False)
    discovered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Guards concurrent scans inserting the same listing in the same price bucket
    __table_args__ = (
        UniqueConstraint(
            "user_id", "platform", "card_name", "price_bucket", name="uq_deal_owner_platform_card_bucket"
        ),
    )


class ProspectScore(Base):
    """Latest composite evaluation of a subject, replaced every scoring cycle."""

    __tablename__ = "prospect_scores"

    mlb_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    player_name: Mapped[str] = mapped_column(String(128), nullable=False)
    team: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    level: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    prospect_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    ml_score: Mapped[float] = mapped_column(Float, nullable=False)
    ceiling_score: Mapped[float] = mapped_column(Float, nullable=False)
    floor_score: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[str] = mapped_column(String(8), nullable=False)
    composite_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    eta: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    ops: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    k_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    bb_percent: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    scored_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PipelineRun(Base):
    """Summary of one pipeline cycle."""

    __tablename__ = "pipeline_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    pipeline: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    trigger: Mapped[str] = mapped_column(String(16), default="manual", nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    summary: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
