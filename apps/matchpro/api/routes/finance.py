"""Finance route handlers: payments, ledger transactions and summary."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import billing_service, transaction_service
from matchpro.api.auth_dependencies import require_team_member, require_team_owner
from matchpro.models.schemas import (
    FinanceSummaryResponse,
    GenerateMonthlyPaymentsRequest,
    MarkPaymentPaidRequest,
    PaymentResponse,
    SettleResponse,
    TransactionCreate,
    TransactionResponse,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.get(
    "/api/teams/{team_id}/matches/{match_id}/payments", response_model=List[PaymentResponse]
)
async def list_match_payments(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List game payments of a match."""
    try:
        return await billing_service.list_match_payments(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "listing match payments")


@router.post(
    "/api/teams/{team_id}/matches/{match_id}/payments/generate",
    response_model=List[PaymentResponse],
)
async def generate_game_payments(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Generate missing game payments for a match (idempotent)."""
    try:
        return await billing_service.generate_game_payments(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "generating game payments")


@router.get("/api/teams/{team_id}/payments/monthly", response_model=List[PaymentResponse])
async def list_monthly_payments(
    team_id: int,
    month: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List monthly dues, optionally for one month."""
    try:
        return await billing_service.list_monthly_payments(session, team_id, month=month)
    except Exception as e:
        raise to_http_exception(e, "listing monthly payments")


@router.post("/api/teams/{team_id}/payments/monthly/generate", response_model=List[PaymentResponse])
async def generate_monthly_payments(
    team_id: int,
    payload: GenerateMonthlyPaymentsRequest,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Generate monthly dues for a month (idempotent)."""
    try:
        return await billing_service.generate_monthly_payments(session, team_id, payload.month)
    except Exception as e:
        raise to_http_exception(e, "generating monthly payments")


@router.post("/api/teams/{team_id}/payments/mark-paid", response_model=PaymentResponse)
async def mark_payment_as_paid(
    team_id: int,
    payload: MarkPaymentPaidRequest,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm a game or monthly payment."""
    try:
        return await billing_service.mark_payment_as_paid(
            session,
            team_id,
            payment_type=payload.payment_type,
            payment_id=payload.payment_id,
            match_id=payload.match_id,
            confirmed_by=user["id"],
        )
    except Exception as e:
        raise to_http_exception(e, "marking payment as paid")


@router.get(
    "/api/teams/{team_id}/players/{player_id}/payments", response_model=List[PaymentResponse]
)
async def list_player_payments(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List all payments of a player."""
    try:
        return await billing_service.list_player_payments(session, team_id, player_id)
    except Exception as e:
        raise to_http_exception(e, "listing player payments")


@router.post("/api/teams/{team_id}/players/{player_id}/settle", response_model=SettleResponse)
async def settle_player_payments(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark every pending payment of a player as paid."""
    try:
        return await billing_service.settle_player_payments(
            session, team_id, player_id, confirmed_by=user["id"]
        )
    except Exception as e:
        raise to_http_exception(e, "settling player payments")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@router.get("/api/teams/{team_id}/transactions", response_model=List[TransactionResponse])
async def list_transactions(
    team_id: int,
    view: str = Query("all", pattern="^(all|pending|recent)$"),
    limit: int = Query(50, ge=1, le=100),
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List ledger entries, newest first: all, pending, or the recent feed."""
    try:
        if view == "pending":
            return await transaction_service.list_pending_transactions(session, team_id)
        if view == "recent":
            return await transaction_service.list_recent_transactions(session, team_id, limit=limit)
        return await transaction_service.list_all_transactions(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "listing transactions")


@router.post("/api/teams/{team_id}/transactions", response_model=TransactionResponse)
async def create_transaction(
    team_id: int,
    payload: TransactionCreate,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a manual income or expense entry."""
    try:
        return await transaction_service.create_transaction(
            session, team_id, created_by=user["id"], **payload.model_dump()
        )
    except Exception as e:
        raise to_http_exception(e, "creating transaction")


@router.get("/api/teams/{team_id}/transactions/summary", response_model=FinanceSummaryResponse)
async def get_summary(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Income, expense, pending and balance of the ledger."""
    try:
        return await transaction_service.get_summary(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "computing finance summary")


@router.post(
    "/api/teams/{team_id}/transactions/monthly/generate",
    response_model=List[TransactionResponse],
)
async def generate_monthly_transactions(
    team_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Create this month's fee entries (idempotent)."""
    try:
        return await transaction_service.check_and_generate_monthly_transactions(session, team_id)
    except Exception as e:
        raise to_http_exception(e, "generating monthly transactions")


@router.get(
    "/api/teams/{team_id}/transactions/{transaction_id}", response_model=TransactionResponse
)
async def get_transaction(
    team_id: int,
    transaction_id: str,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await transaction_service.get_transaction(session, team_id, transaction_id)
    except Exception as e:
        raise to_http_exception(e, "getting transaction")


@router.patch(
    "/api/teams/{team_id}/transactions/{transaction_id}", response_model=TransactionResponse
)
async def update_transaction(
    team_id: int,
    transaction_id: str,
    payload: TransactionUpdate,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await transaction_service.update_transaction(
            session, team_id, transaction_id, payload.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise to_http_exception(e, "updating transaction")


@router.post(
    "/api/teams/{team_id}/transactions/{transaction_id}/paid", response_model=TransactionResponse
)
async def mark_transaction_paid(
    team_id: int,
    transaction_id: str,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await transaction_service.mark_as_paid(session, team_id, transaction_id)
    except Exception as e:
        raise to_http_exception(e, "marking transaction as paid")


@router.delete("/api/teams/{team_id}/transactions/{transaction_id}", status_code=204)
async def delete_transaction(
    team_id: int,
    transaction_id: str,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        await transaction_service.delete_transaction(session, team_id, transaction_id)
    except Exception as e:
        raise to_http_exception(e, "deleting transaction")


@router.get(
    "/api/teams/{team_id}/matches/{match_id}/transactions",
    response_model=List[TransactionResponse],
)
async def list_match_transactions(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await transaction_service.list_match_transactions(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "listing match transactions")


@router.post(
    "/api/teams/{team_id}/matches/{match_id}/transactions/sync",
    response_model=List[TransactionResponse],
)
async def sync_match_transactions(
    team_id: int,
    match_id: int,
    user: dict = Depends(require_team_owner),
    session: AsyncSession = Depends(get_db_session),
):
    """Create missing match fee entries for confirmed players (idempotent)."""
    try:
        return await transaction_service.sync_match_transactions(session, team_id, match_id)
    except Exception as e:
        raise to_http_exception(e, "syncing match transactions")


@router.get(
    "/api/teams/{team_id}/players/{player_id}/transactions",
    response_model=List[TransactionResponse],
)
async def list_player_transactions(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    try:
        return await transaction_service.list_player_transactions(session, team_id, player_id)
    except Exception as e:
        raise to_http_exception(e, "listing player transactions")
