"""
Transaction (team ledger) service.

Free-form income/expense entries plus generated entries for match fees
(`match_{match_id}_{player_id}`) and monthly fees
(`monthly_{YYYY-MM}_{player_id}`). Generated ids make generation idempotent.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import (
    BillingMode,
    PaymentMode,
    PaymentStatus,
    Player,
    PlayerStatus,
    Team,
    Transaction,
    TransactionCategory,
    TransactionType,
)
from matchpro.services.errors import NotFoundError
from matchpro.services.match_service import confirmed_player_ids, get_match_row
from matchpro.utils.constants import ALL_TRANSACTIONS_LIMIT, RECENT_TRANSACTIONS_FETCH_LIMIT
from matchpro.utils.datetime_utils import as_utc, format_match_date, month_key, utcnow

logger = logging.getLogger(__name__)

VALID_TYPES = {t.value for t in TransactionType}
VALID_CATEGORIES = {c.value for c in TransactionCategory}
VALID_STATUSES = {s.value for s in PaymentStatus}

UPDATABLE_FIELDS = (
    "type",
    "category",
    "description",
    "amount",
    "date",
    "status",
    "player_id",
    "game_id",
)


def _transaction_to_dict(transaction: Transaction) -> Dict:
    return {
        "id": transaction.id,
        "team_id": transaction.team_id,
        "player_id": transaction.player_id,
        "type": transaction.type,
        "category": transaction.category,
        "description": transaction.description,
        "amount": transaction.amount,
        "date": as_utc(transaction.date).isoformat() if transaction.date else None,
        "status": transaction.status,
        "game_id": transaction.game_id,
        "paid_at": as_utc(transaction.paid_at).isoformat() if transaction.paid_at else None,
        "created_by": transaction.created_by,
    }


def _validate(fields: Dict) -> None:
    if "type" in fields and fields["type"] not in VALID_TYPES:
        raise ValueError(f"Invalid transaction type '{fields['type']}'")
    if "category" in fields and fields["category"] not in VALID_CATEGORIES:
        raise ValueError(f"Invalid transaction category '{fields['category']}'")
    if "status" in fields and fields["status"] not in VALID_STATUSES:
        raise ValueError(f"Invalid transaction status '{fields['status']}'")
    if "amount" in fields and (fields["amount"] is None or fields["amount"] < 0):
        raise ValueError("Amount must be zero or positive")
    if "description" in fields and not (fields["description"] or "").strip():
        raise ValueError("Description is required")


async def _get_team(session: AsyncSession, team_id: int) -> Optional[Team]:
    result = await session.execute(select(Team).where(Team.id == team_id))
    return result.scalar_one_or_none()


async def _get_row(session: AsyncSession, team_id: int, transaction_id: str) -> Transaction:
    result = await session.execute(
        select(Transaction).where(
            Transaction.team_id == team_id, Transaction.id == transaction_id
        )
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


async def create_transaction(
    session: AsyncSession,
    team_id: int,
    type: str,
    category: str,
    description: str,
    amount: float,
    date: Optional[datetime] = None,
    status: str = PaymentStatus.PENDING.value,
    player_id: Optional[int] = None,
    game_id: Optional[int] = None,
    created_by: Optional[int] = None,
) -> Dict:
    """Create a manual ledger entry."""
    _validate(
        {
            "type": type,
            "category": category,
            "description": description,
            "amount": amount,
            "status": status,
        }
    )
    now = utcnow()
    transaction = Transaction(
        id=uuid.uuid4().hex,
        team_id=team_id,
        player_id=player_id,
        type=type,
        category=category,
        description=description.strip(),
        amount=amount,
        date=as_utc(date) if date else now,
        status=status,
        game_id=game_id,
        paid_at=now if status == PaymentStatus.PAID.value else None,
        created_by=created_by,
    )
    session.add(transaction)
    await session.flush()
    logger.info(f"Created {type} transaction {transaction.id} for team {team_id}")
    return _transaction_to_dict(transaction)


async def get_transaction(session: AsyncSession, team_id: int, transaction_id: str) -> Dict:
    return _transaction_to_dict(await _get_row(session, team_id, transaction_id))


async def update_transaction(
    session: AsyncSession, team_id: int, transaction_id: str, updates: Dict
) -> Dict:
    """Update fields of a ledger entry. Unknown keys are ignored."""
    fields = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
    _validate(fields)
    transaction = await _get_row(session, team_id, transaction_id)
    for field, value in fields.items():
        if field == "date" and value is not None:
            value = as_utc(value)
        setattr(transaction, field, value)
    if fields.get("status") == PaymentStatus.PENDING.value:
        transaction.paid_at = None
    elif fields.get("status") == PaymentStatus.PAID.value and transaction.paid_at is None:
        transaction.paid_at = utcnow()
    await session.flush()
    return _transaction_to_dict(transaction)


async def mark_as_paid(session: AsyncSession, team_id: int, transaction_id: str) -> Dict:
    """Mark a ledger entry paid. Player financial summaries are not touched."""
    transaction = await _get_row(session, team_id, transaction_id)
    transaction.status = PaymentStatus.PAID.value
    transaction.paid_at = utcnow()
    await session.flush()
    return _transaction_to_dict(transaction)


async def delete_transaction(session: AsyncSession, team_id: int, transaction_id: str) -> None:
    transaction = await _get_row(session, team_id, transaction_id)
    await session.delete(transaction)
    await session.flush()
    logger.info(f"Deleted transaction {transaction_id} of team {team_id}")


async def _list(session: AsyncSession, team_id: int, *criteria, limit: Optional[int] = None) -> List[Dict]:
    query = (
        select(Transaction)
        .where(Transaction.team_id == team_id, *criteria)
        .order_by(Transaction.date.desc(), Transaction.id)
    )
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)
    return [_transaction_to_dict(t) for t in result.scalars().all()]


async def list_match_transactions(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    return await _list(session, team_id, Transaction.game_id == match_id)


async def list_pending_transactions(session: AsyncSession, team_id: int) -> List[Dict]:
    return await _list(session, team_id, Transaction.status == PaymentStatus.PENDING.value)


async def list_recent_transactions(session: AsyncSession, team_id: int, limit: int = 50) -> List[Dict]:
    """Activity feed: newest entries first, never more than 100."""
    return await _list(session, team_id, limit=min(limit, RECENT_TRANSACTIONS_FETCH_LIMIT))


async def list_player_transactions(session: AsyncSession, team_id: int, player_id: int) -> List[Dict]:
    return await _list(session, team_id, Transaction.player_id == player_id)


async def list_all_transactions(session: AsyncSession, team_id: int) -> List[Dict]:
    return await _list(session, team_id, limit=ALL_TRANSACTIONS_LIMIT)


def _charges_match_fee(billing_mode: str, payment_mode: Optional[str]) -> bool:
    if payment_mode == PaymentMode.EXEMPT.value:
        return False
    if payment_mode == PaymentMode.PER_GAME.value:
        return True
    if payment_mode == PaymentMode.MONTHLY.value:
        return billing_mode == BillingMode.MONTHLY_PLUS_GAME.value
    return billing_mode == BillingMode.PER_GAME.value


def _charges_monthly_fee(billing_mode: str, payment_mode: Optional[str]) -> bool:
    if payment_mode == PaymentMode.MONTHLY.value:
        return True
    if payment_mode is None:
        return billing_mode in (BillingMode.MONTHLY.value, BillingMode.MONTHLY_PLUS_GAME.value)
    return False


async def sync_match_transactions(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    """
    Create pending match fee entries for the confirmed players of a match.

    Returns:
        List of created transactions
    """
    team = await _get_team(session, team_id)
    if team is None:
        return []
    if not team.per_game_amount or team.per_game_amount <= 0:
        return []
    if team.billing_mode == BillingMode.MONTHLY.value:
        return []

    match = await get_match_row(session, team_id, match_id)
    confirmed = confirmed_player_ids(match)
    if not confirmed:
        return []

    players_result = await session.execute(
        select(Player).where(Player.team_id == team_id, Player.id.in_(confirmed))
    )
    players = {p.id: p for p in players_result.scalars().all()}

    existing_result = await session.execute(
        select(Transaction.player_id).where(
            Transaction.team_id == team_id, Transaction.game_id == match_id
        )
    )
    already_charged = set(existing_result.scalars().all())

    description = (
        f"Game vs {match.opponent or 'Training'} ({format_match_date(as_utc(match.date))})"
    )
    created = []
    for player_id in confirmed:
        player = players.get(player_id)
        if player is None or player_id in already_charged:
            continue
        if not _charges_match_fee(team.billing_mode, player.payment_mode):
            continue
        transaction_id = f"match_{match_id}_{player_id}"
        if await session.get(Transaction, transaction_id) is not None:
            continue
        transaction = Transaction(
            id=transaction_id,
            team_id=team_id,
            player_id=player_id,
            type=TransactionType.INCOME.value,
            category=TransactionCategory.GAME.value,
            description=description,
            amount=team.per_game_amount,
            date=as_utc(match.date),
            status=PaymentStatus.PENDING.value,
            game_id=match_id,
        )
        session.add(transaction)
        created.append(transaction)

    await session.flush()
    logger.info(f"Synced {len(created)} match transactions for match {match_id}")
    return [_transaction_to_dict(t) for t in created]


async def check_and_generate_monthly_transactions(
    session: AsyncSession, team_id: int, now: Optional[datetime] = None
) -> List[Dict]:
    """
    Create this month's fee entry for every active monthly player.

    Returns:
        List of created transactions
    """
    team = await _get_team(session, team_id)
    if team is None:
        return []
    if team.billing_mode == BillingMode.PER_GAME.value or not team.monthly_amount:
        return []

    now = now or utcnow()
    month = month_key(now)
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.status == PlayerStatus.ACTIVE.value)
        .order_by(Player.id)
    )

    created = []
    for player in result.scalars().all():
        if not _charges_monthly_fee(team.billing_mode, player.payment_mode):
            continue
        transaction_id = f"monthly_{month}_{player.id}"
        if await session.get(Transaction, transaction_id) is not None:
            continue
        transaction = Transaction(
            id=transaction_id,
            team_id=team_id,
            player_id=player.id,
            type=TransactionType.INCOME.value,
            category=TransactionCategory.MONTHLY.value,
            description=f"Monthly fee {month}",
            amount=team.monthly_amount,
            date=now,
            status=PaymentStatus.PENDING.value,
        )
        session.add(transaction)
        created.append(transaction)

    await session.flush()
    if created:
        logger.info(f"Generated {len(created)} monthly transactions for team {team_id} ({month})")
    return [_transaction_to_dict(t) for t in created]


async def get_summary(session: AsyncSession, team_id: int) -> Dict:
    """
    Aggregate the ledger.

    income/expense sum paid entries, pending sums pending entries of any type.
    """
    result = await session.execute(
        select(Transaction.type, Transaction.status, Transaction.amount).where(
            Transaction.team_id == team_id
        )
    )
    income = 0.0
    expense = 0.0
    pending = 0.0
    for type_, status, amount in result.all():
        if status == PaymentStatus.PAID.value:
            if type_ == TransactionType.INCOME.value:
                income += amount
            elif type_ == TransactionType.EXPENSE.value:
                expense += amount
        elif status == PaymentStatus.PENDING.value:
            pending += amount
    return {"income": income, "expense": expense, "pending": pending, "balance": income - expense}
