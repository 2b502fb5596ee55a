"""
Trade API endpoints.

Propose, respond to, cancel, settle and list trades. Domain failures are
raised as KnownError subclasses and rendered as the ApiResponse failure
envelope by the application's exception handler.

There is no authentication layer in this service; the acting user is
passed explicitly and trusted (the gateway in front of it authenticates).
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tradepost.config import MAX_TRADES_PAGE_SIZE
from tradepost.db import list_user_trades
from tradepost.db.database import get_session
from tradepost.models.inventory import Condition, Variant
from tradepost.models.trade import (
    ProposalItem,
    SettlementReport,
    Trade,
    TradeDirection,
    TradeMethod,
    TradeProposal,
    TradeStatus,
)
from tradepost.services.settlement import check_settleable, settle_trade
from tradepost.services.trade_lifecycle import (
    cancel_trade,
    expire_stale_trades,
    get_trade_or_raise,
    get_trading_stats,
    propose_trade,
    respond_to_trade,
)

router = APIRouter(prefix="/trades", tags=["trades"])


class ProposalItemRequest(BaseModel):
    """A card line in a proposal."""

    card_id: str = Field(..., min_length=1, examples=["sv3pt5-65"])
    quantity: int = Field(default=1, ge=1)
    condition: Condition = Condition.NEAR_MINT
    is_foil: bool = False
    notes: str | None = None


class ProposeTradeRequest(BaseModel):
    """Request model for proposing a trade."""

    initiator_id: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    message: str | None = None
    offered_items: list[ProposalItemRequest] = Field(
        default_factory=list,
        description="Cards the initiator gives",
    )
    requested_items: list[ProposalItemRequest] = Field(
        default_factory=list,
        description="Cards the initiator asks the recipient for",
    )
    initiator_money_offer: Decimal = Field(default=Decimal("0"), ge=0)
    recipient_money_offer: Decimal = Field(default=Decimal("0"), ge=0)
    trade_method: TradeMethod | None = None
    initiator_shipping_included: bool = True
    recipient_shipping_included: bool = True
    parent_trade_id: str | None = Field(
        default=None,
        description="Trade this proposal counters, if any",
    )


class RespondRequest(BaseModel):
    """Request model for accepting or declining a trade."""

    responder_id: str = Field(..., min_length=1)
    accept: bool
    message: str | None = None


class CancelRequest(BaseModel):
    initiator_id: str = Field(..., min_length=1)


class SettleRequest(BaseModel):
    caller_id: str = Field(..., min_length=1)


class TradeItemResponse(BaseModel):
    id: int
    user_id: str
    card_id: str
    quantity: int
    condition: Condition
    is_foil: bool
    notes: str | None = None


class TradeResponse(BaseModel):
    """Response model for a trade."""

    id: str
    initiator_id: str
    recipient_id: str
    status: TradeStatus
    initiator_message: str | None = None
    recipient_message: str | None = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None
    initiator_items: list[TradeItemResponse] = Field(default_factory=list)
    recipient_items: list[TradeItemResponse] = Field(default_factory=list)
    initiator_money_offer: Decimal = Decimal("0")
    recipient_money_offer: Decimal = Decimal("0")
    trade_method: TradeMethod | None = None
    initiator_shipping_included: bool = True
    recipient_shipping_included: bool = True
    parent_trade_id: str | None = None
    settlement_attempts: int = 0
    last_settlement_error: str | None = None


class TransferResponse(BaseModel):
    card_id: str
    card_name: str
    quantity: int
    condition: Condition
    variant: Variant
    from_user_id: str
    to_user_id: str


class SettlementResponse(BaseModel):
    """Confirmation of a completed settlement."""

    trade_id: str
    transfers: list[TransferResponse] = Field(default_factory=list)
    removed_from_collection: list[str] = Field(default_factory=list)
    added_to_collection: list[str] = Field(default_factory=list)
    removed_from_wishlist: list[str] = Field(default_factory=list)
    unlocked_accomplishments: dict[str, list[str]] = Field(default_factory=dict)
    revoked_accomplishments: dict[str, list[str]] = Field(default_factory=dict)
    pending_side_effects: int = Field(
        default=0,
        description="Side effects still queued for retry (wishlist, accomplishments)",
    )


class SettleCheckResponse(BaseModel):
    trade_id: str
    can_settle: bool
    reason: str | None = None
    shortages: list[str] = Field(default_factory=list)


class RespondResponse(BaseModel):
    trade: TradeResponse
    settlement: SettlementResponse | None = None


class TradeListResponse(BaseModel):
    user_id: str
    trades: list[TradeResponse]
    count: int


class TradingStatsResponse(BaseModel):
    user_id: str
    total_trades: int
    pending_trades: int
    completed_trades: int
    success_rate: float


class ExpireResponse(BaseModel):
    expired: list[str]
    count: int


def _items(trade: Trade, user_id: str) -> list[TradeItemResponse]:
    return [
        TradeItemResponse(
            id=item.id,
            user_id=item.user_id,
            card_id=item.card_id,
            quantity=item.quantity,
            condition=item.condition,
            is_foil=item.is_foil,
            notes=item.notes,
        )
        for item in trade.items_given_by(user_id)
    ]


def trade_to_response(trade: Trade) -> TradeResponse:
    return TradeResponse(
        id=trade.id,
        initiator_id=trade.initiator_id,
        recipient_id=trade.recipient_id,
        status=trade.status,
        initiator_message=trade.initiator_message,
        recipient_message=trade.recipient_message,
        created_at=trade.created_at,
        updated_at=trade.updated_at,
        expires_at=trade.expires_at,
        completed_at=trade.completed_at,
        initiator_items=_items(trade, trade.initiator_id),
        recipient_items=_items(trade, trade.recipient_id),
        initiator_money_offer=trade.initiator_money_offer,
        recipient_money_offer=trade.recipient_money_offer,
        trade_method=trade.trade_method,
        initiator_shipping_included=trade.initiator_shipping_included,
        recipient_shipping_included=trade.recipient_shipping_included,
        parent_trade_id=trade.parent_trade_id,
        settlement_attempts=trade.settlement_attempts,
        last_settlement_error=trade.last_settlement_error,
    )


def settlement_to_response(report: SettlementReport) -> SettlementResponse:
    return SettlementResponse(
        trade_id=report.trade_id,
        transfers=[
            TransferResponse(
                card_id=t.card_id,
                card_name=t.card_name,
                quantity=t.quantity,
                condition=t.condition,
                variant=t.variant,
                from_user_id=t.from_user_id,
                to_user_id=t.to_user_id,
            )
            for t in report.transfers
        ],
        removed_from_collection=report.removed_from_collection,
        added_to_collection=report.added_to_collection,
        removed_from_wishlist=report.removed_from_wishlist,
        unlocked_accomplishments=report.unlocked_accomplishments,
        revoked_accomplishments=report.revoked_accomplishments,
        pending_side_effects=report.pending_side_effects,
    )


def _to_proposal_item(item: ProposalItemRequest) -> ProposalItem:
    return ProposalItem(
        card_id=item.card_id,
        quantity=item.quantity,
        condition=item.condition,
        is_foil=item.is_foil,
        notes=item.notes,
    )


@router.post("", response_model=TradeResponse, status_code=201)
async def create_trade_proposal(
    request: ProposeTradeRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """
    Propose a trade to a friend.

    The initiator must own every offered card. Requested cards are checked
    only when the trade settles.
    """
    proposal = TradeProposal(
        recipient_id=request.recipient_id,
        offered_items=[_to_proposal_item(i) for i in request.offered_items],
        requested_items=[_to_proposal_item(i) for i in request.requested_items],
        message=request.message,
        initiator_money_offer=request.initiator_money_offer,
        recipient_money_offer=request.recipient_money_offer,
        trade_method=request.trade_method,
        initiator_shipping_included=request.initiator_shipping_included,
        recipient_shipping_included=request.recipient_shipping_included,
        parent_trade_id=request.parent_trade_id,
    )
    trade = await propose_trade(session, request.initiator_id, proposal)
    return trade_to_response(trade)


@router.post("/maintenance/expire", response_model=ExpireResponse)
async def expire_trades(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ExpireResponse:
    """Cancel every pending trade whose expiry has passed."""
    expired = await expire_stale_trades(session)
    return ExpireResponse(expired=expired, count=len(expired))


@router.get("/user/{user_id}", response_model=TradeListResponse)
async def list_trades_for_user(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    status: TradeStatus | None = None,
    direction: TradeDirection = TradeDirection.ALL,
    limit: Annotated[int, Query(ge=1, le=MAX_TRADES_PAGE_SIZE)] = 50,
    page: Annotated[int, Query(ge=1)] = 1,
) -> TradeListResponse:
    """List a user's trades, newest first."""
    trades = await list_user_trades(
        session, user_id, status=status, direction=direction, limit=limit, page=page
    )
    return TradeListResponse(
        user_id=user_id,
        trades=[trade_to_response(t) for t in trades],
        count=len(trades),
    )


@router.get("/user/{user_id}/stats", response_model=TradingStatsResponse)
async def trading_stats(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradingStatsResponse:
    stats = await get_trading_stats(session, user_id)
    return TradingStatsResponse(
        user_id=user_id,
        total_trades=stats.total_trades,
        pending_trades=stats.pending_trades,
        completed_trades=stats.completed_trades,
        success_rate=stats.success_rate,
    )


@router.get("/{trade_id}", response_model=TradeResponse)
async def read_trade(
    trade_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """Get a trade with its items. Returns 404 if it doesn't exist."""
    return trade_to_response(await get_trade_or_raise(session, trade_id))


@router.post("/{trade_id}/respond", response_model=RespondResponse)
async def respond(
    trade_id: str,
    request: RespondRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RespondResponse:
    """
    Accept or decline a pending trade (recipient only).

    Accepting settles the trade immediately when settle-on-accept is on;
    the settlement report is included in the response.
    """
    result = await respond_to_trade(
        session, trade_id, request.responder_id, request.accept, message=request.message
    )
    return RespondResponse(
        trade=trade_to_response(result.trade),
        settlement=settlement_to_response(result.settlement) if result.settlement else None,
    )


@router.post("/{trade_id}/cancel", response_model=TradeResponse)
async def cancel(
    trade_id: str,
    request: CancelRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeResponse:
    """Withdraw a pending trade (initiator only)."""
    return trade_to_response(await cancel_trade(session, trade_id, request.initiator_id))


@router.post("/{trade_id}/settle", response_model=SettlementResponse)
async def settle(
    trade_id: str,
    request: SettleRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SettlementResponse:
    """
    Execute an accepted trade (either party).

    On failure nothing is transferred and the trade stays accepted;
    calling this endpoint again is the recovery path.
    """
    report = await settle_trade(session, trade_id, request.caller_id)
    return settlement_to_response(report)


@router.get("/{trade_id}/settle", response_model=SettleCheckResponse)
async def can_settle(
    trade_id: str,
    caller_id: Annotated[str, Query(min_length=1)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SettleCheckResponse:
    """Report whether ``caller_id`` could settle the trade now. Writes nothing."""
    check = await check_settleable(session, trade_id, caller_id)
    return SettleCheckResponse(
        trade_id=check.trade_id,
        can_settle=check.can_settle,
        reason=check.reason,
        shortages=check.shortages,
    )
