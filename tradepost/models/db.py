"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _new_trade_id() -> str:
    return str(uuid.uuid4())


class CardDB(Base):
    """
    Catalog card, kept in sync by the upstream catalog job.

    Only the attributes needed for variant classification are mirrored here.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    rarity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    set_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, name={self.name})>"


class InventoryEntryDB(Base):
    """
    Card ownership row.

    Keyed by (owner, card, condition, variant). Rows are deleted when their
    quantity reaches zero, never stored with quantity 0.
    """

    __tablename__ = "user_collections"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "card_id", "condition", "variant", name="uq_collection_card_variant"
        ),
        CheckConstraint("quantity > 0", name="ck_collection_quantity_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    card_id: Mapped[str] = mapped_column(String(64), index=True)
    condition: Mapped[str] = mapped_column(String(32))
    variant: Mapped[str] = mapped_column(String(32))
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryEntryDB(user={self.user_id}, card={self.card_id}, "
            f"{self.condition}/{self.variant}, qty={self.quantity})>"
        )


class WishlistEntryDB(Base):
    """A card a user wants. Existence implies 'wants'."""

    __tablename__ = "wishlists"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_wishlist_user_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    card_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FriendshipDB(Base):
    """Friend request between two users. Only 'accepted' rows connect them."""

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("requester_id", "addressee_id", name="uq_friendship_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[str] = mapped_column(String(255), index=True)
    addressee_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(32), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TradeDB(Base):
    """
    A trade negotiation between an initiator and a recipient.

    Trades are never deleted; terminal trades remain as an audit trail.
    Money, method and shipping fields are stored verbatim and never processed.
    """

    __tablename__ = "trades"
    __table_args__ = (
        CheckConstraint("initiator_id <> recipient_id", name="ck_trade_distinct_parties"),
        CheckConstraint("initiator_money_offer >= 0", name="ck_trade_initiator_money"),
        CheckConstraint("recipient_money_offer >= 0", name="ck_trade_recipient_money"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_trade_id)
    initiator_id: Mapped[str] = mapped_column(String(255), index=True)
    recipient_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(32), index=True, default="pending")
    initiator_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    recipient_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    initiator_money_offer: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    recipient_money_offer: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    trade_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    initiator_shipping_included: Mapped[bool] = mapped_column(Boolean, default=True)
    recipient_shipping_included: Mapped[bool] = mapped_column(Boolean, default=True)
    parent_trade_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("trades.id"), nullable=True, index=True
    )

    # Settlement diagnostics
    settlement_attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_settlement_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps are set explicitly: expires_at is derived from created_at
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["TradeItemDB"]] = relationship(
        back_populates="trade", cascade="all, delete-orphan", order_by="TradeItemDB.id"
    )

    def __repr__(self) -> str:
        return f"<TradeDB(id={self.id}, status={self.status})>"


class TradeItemDB(Base):
    """One line of a trade, owned by the side that gives it."""

    __tablename__ = "trade_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_trade_item_quantity_positive"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trade_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trades.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String(255))
    card_id: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer)
    condition: Mapped[str] = mapped_column(String(32))
    is_foil: Mapped[bool] = mapped_column(Boolean, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    trade: Mapped["TradeDB"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<TradeItemDB(card={self.card_id}, qty={self.quantity}, user={self.user_id})>"


class SideEffectMessageDB(Base):
    """
    Outbox row for a post-settlement side effect.

    Written in the same transaction as the settlement it belongs to, then
    dispatched after commit. Failed dispatches stay pending for retry.
    """

    __tablename__ = "side_effect_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    trade_id: Mapped[str] = mapped_column(String(36), ForeignKey("trades.id"), index=True)
    kind: Mapped[str] = mapped_column(String(50))
    user_id: Mapped[str] = mapped_column(String(255))
    card_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), index=True, default="pending")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SideEffectMessageDB(id={self.id}, kind={self.kind}, status={self.status})>"


class UserAccomplishmentDB(Base):
    """An accomplishment a user has unlocked."""

    __tablename__ = "user_accomplishments"
    __table_args__ = (
        UniqueConstraint("user_id", "accomplishment_type", name="uq_user_accomplishment"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    accomplishment_type: Mapped[str] = mapped_column(String(64))
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
