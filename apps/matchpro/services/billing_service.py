"""
Billing service: per-game and monthly charges.

Payments use deterministic keys ((match, player) for game payments and
"{player_id}_{YYYY}_{MM}" for monthly dues), so generation is idempotent.
Each created payment is added to the player's pending balance.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import (
    BillingMode,
    GamePayment,
    MonthlyPayment,
    PaymentMode,
    PaymentStatus,
    PaymentType,
    Player,
    PlayerStatus,
    Team,
)
from matchpro.services.errors import NotFoundError
from matchpro.services.match_service import get_match_row, participant_ids
from matchpro.services.team_service import get_member_role
from matchpro.utils.constants import NON_BILLABLE_ROLES
from matchpro.utils.datetime_utils import as_utc, parse_month_key, utcnow

logger = logging.getLogger(__name__)

GAME_BILLING_MODES = {BillingMode.PER_GAME.value, BillingMode.MONTHLY_PLUS_GAME.value}
MONTHLY_BILLING_MODES = {BillingMode.MONTHLY.value, BillingMode.MONTHLY_PLUS_GAME.value}


def monthly_payment_id(player_id: int, month: str) -> str:
    """Build the deterministic monthly payment id, e.g. "12_2024_05"."""
    year, month_number = parse_month_key(month)
    return f"{player_id}_{year:04d}_{month_number:02d}"


def _game_payment_to_dict(payment: GamePayment) -> Dict:
    return {
        "id": str(payment.player_id),
        "type": PaymentType.PER_GAME.value,
        "team_id": payment.team_id,
        "match_id": payment.match_id,
        "player_id": payment.player_id,
        "amount": payment.amount,
        "status": payment.status,
        "paid_at": as_utc(payment.paid_at).isoformat() if payment.paid_at else None,
        "confirmed_by": payment.confirmed_by,
    }


def _monthly_payment_to_dict(payment: MonthlyPayment) -> Dict:
    return {
        "id": payment.id,
        "type": PaymentType.MONTHLY.value,
        "team_id": payment.team_id,
        "player_id": payment.player_id,
        "month": payment.month,
        "amount": payment.amount,
        "status": payment.status,
        "paid_at": as_utc(payment.paid_at).isoformat() if payment.paid_at else None,
        "confirmed_by": payment.confirmed_by,
    }


async def _get_team(session: AsyncSession, team_id: int) -> Team:
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team not found")
    return team


async def _is_non_billable(session: AsyncSession, team_id: int, player: Player) -> bool:
    """Owners, coaches and staff are never charged."""
    if player.user_id is None:
        return False
    role = await get_member_role(session, team_id, player.user_id)
    return role in NON_BILLABLE_ROLES


async def generate_game_payments(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    """
    Create pending per-game payments for the participants of a match.

    Only charged under PER_GAME or MONTHLY_PLUS_GAME billing, and only for
    players whose effective payment mode is per_game.

    Returns:
        List of created payments
    """
    team = await _get_team(session, team_id)
    match = await get_match_row(session, team_id, match_id)

    if team.billing_mode not in GAME_BILLING_MODES:
        return []
    amount = team.per_game_amount or 0
    if amount <= 0:
        logger.warning(f"Team {team_id} has no per-game amount, skipping game payments")
        return []

    ids = participant_ids(match)
    if not ids:
        return []
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.id.in_(ids))
        .order_by(Player.id)
        .with_for_update()
    )
    players = result.scalars().all()

    existing_result = await session.execute(
        select(GamePayment.player_id).where(GamePayment.match_id == match_id)
    )
    already_charged = set(existing_result.scalars().all())

    created = []
    for player in players:
        if await _is_non_billable(session, team_id, player):
            continue
        mode = player.payment_mode
        if not mode:
            mode = (
                PaymentMode.PER_GAME.value
                if team.billing_mode == BillingMode.PER_GAME.value
                else PaymentMode.MONTHLY.value
            )
        if mode != PaymentMode.PER_GAME.value:
            continue
        if player.id in already_charged:
            continue

        payment = GamePayment(
            match_id=match_id,
            player_id=player.id,
            team_id=team_id,
            amount=amount,
            status=PaymentStatus.PENDING.value,
        )
        session.add(payment)
        player.total_pending = (player.total_pending or 0.0) + amount
        created.append(payment)

    await session.flush()
    logger.info(f"Generated {len(created)} game payments for match {match_id}")
    return [_game_payment_to_dict(p) for p in created]


async def generate_monthly_payments(session: AsyncSession, team_id: int, month: str) -> List[Dict]:
    """
    Create pending monthly dues for the active players of a team.

    Args:
        month: Month in YYYY-MM format

    Returns:
        List of created payments
    """
    parse_month_key(month)
    team = await _get_team(session, team_id)

    if team.billing_mode not in MONTHLY_BILLING_MODES:
        return []
    amount = team.monthly_amount or 0
    if amount <= 0:
        logger.warning(f"Team {team_id} has no monthly amount, skipping monthly payments")
        return []

    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id, Player.status == PlayerStatus.ACTIVE.value)
        .order_by(Player.id)
        .with_for_update()
    )
    players = result.scalars().all()

    existing_result = await session.execute(
        select(MonthlyPayment.id).where(
            MonthlyPayment.team_id == team_id, MonthlyPayment.month == month
        )
    )
    existing_ids = set(existing_result.scalars().all())

    created = []
    for player in players:
        if await _is_non_billable(session, team_id, player):
            continue
        mode = player.payment_mode or PaymentMode.MONTHLY.value
        if mode != PaymentMode.MONTHLY.value:
            continue
        payment_id = monthly_payment_id(player.id, month)
        if payment_id in existing_ids:
            continue

        payment = MonthlyPayment(
            id=payment_id,
            team_id=team_id,
            player_id=player.id,
            month=month,
            amount=amount,
            status=PaymentStatus.PENDING.value,
        )
        session.add(payment)
        player.total_pending = (player.total_pending or 0.0) + amount
        created.append(payment)

    await session.flush()
    logger.info(f"Generated {len(created)} monthly payments for team {team_id} ({month})")
    return [_monthly_payment_to_dict(p) for p in created]


async def _mark_paid(
    session: AsyncSession, team_id: int, payment, confirmed_by: Optional[int]
) -> bool:
    """Mark one payment row paid and move its amount to the player's paid total."""
    if payment.status == PaymentStatus.PAID.value:
        return False
    payment.status = PaymentStatus.PAID.value
    payment.paid_at = utcnow()
    payment.confirmed_by = confirmed_by

    result = await session.execute(
        select(Player)
        .where(Player.id == payment.player_id, Player.team_id == team_id)
        .with_for_update()
    )
    player = result.scalar_one_or_none()
    if player is not None:
        player.total_paid = (player.total_paid or 0.0) + payment.amount
        player.total_pending = max(0.0, (player.total_pending or 0.0) - payment.amount)
    return True


async def mark_payment_as_paid(
    session: AsyncSession,
    team_id: int,
    payment_type: str,
    payment_id: str,
    match_id: Optional[int] = None,
    confirmed_by: Optional[int] = None,
) -> Dict:
    """
    Confirm a payment. Confirming an already paid payment changes nothing.

    Args:
        payment_type: "PER_GAME" or "MONTHLY"
        payment_id: Player id for game payments, "{player_id}_{YYYY}_{MM}" for monthly
        match_id: Required for game payments

    Raises:
        ValueError: If a game payment has no match id or the type is unknown
        NotFoundError: If the payment does not exist
    """
    if payment_type == PaymentType.PER_GAME.value:
        if match_id is None:
            raise ValueError("Match ID required for Game Payment")
        try:
            player_id = int(payment_id)
        except (TypeError, ValueError):
            raise NotFoundError("Payment document not found")
        query = select(GamePayment).where(
            GamePayment.team_id == team_id,
            GamePayment.match_id == match_id,
            GamePayment.player_id == player_id,
        )
        serializer = _game_payment_to_dict
    elif payment_type == PaymentType.MONTHLY.value:
        query = select(MonthlyPayment).where(
            MonthlyPayment.team_id == team_id, MonthlyPayment.id == payment_id
        )
        serializer = _monthly_payment_to_dict
    else:
        raise ValueError(f"Invalid payment type '{payment_type}'")

    result = await session.execute(query.with_for_update())
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment document not found")

    if await _mark_paid(session, team_id, payment, confirmed_by):
        await session.flush()
        logger.info(f"Marked {payment_type} payment {payment_id} of team {team_id} as paid")
    return serializer(payment)


async def settle_player_payments(
    session: AsyncSession, team_id: int, player_id: int, confirmed_by: Optional[int] = None
) -> Dict:
    """
    Mark every pending payment of a player as paid.

    Returns:
        Dict with the number of settled payments and the settled amount
    """
    game_result = await session.execute(
        select(GamePayment)
        .where(
            GamePayment.team_id == team_id,
            GamePayment.player_id == player_id,
            GamePayment.status == PaymentStatus.PENDING.value,
        )
        .with_for_update()
    )
    monthly_result = await session.execute(
        select(MonthlyPayment)
        .where(
            MonthlyPayment.team_id == team_id,
            MonthlyPayment.player_id == player_id,
            MonthlyPayment.status == PaymentStatus.PENDING.value,
        )
        .with_for_update()
    )
    pending = list(game_result.scalars().all()) + list(monthly_result.scalars().all())

    settled_amount = 0.0
    for payment in pending:
        if await _mark_paid(session, team_id, payment, confirmed_by):
            settled_amount += payment.amount
    await session.flush()
    logger.info(f"Settled {len(pending)} payments of player {player_id} in team {team_id}")
    return {"player_id": player_id, "settled_count": len(pending), "settled_amount": settled_amount}


async def list_match_payments(session: AsyncSession, team_id: int, match_id: int) -> List[Dict]:
    """List the game payments of a match."""
    result = await session.execute(
        select(GamePayment)
        .where(GamePayment.team_id == team_id, GamePayment.match_id == match_id)
        .order_by(GamePayment.player_id)
    )
    return [_game_payment_to_dict(p) for p in result.scalars().all()]


async def list_monthly_payments(
    session: AsyncSession, team_id: int, month: Optional[str] = None
) -> List[Dict]:
    """List monthly dues of a team, optionally for one YYYY-MM month."""
    query = select(MonthlyPayment).where(MonthlyPayment.team_id == team_id)
    if month:
        parse_month_key(month)
        query = query.where(MonthlyPayment.month == month)
    result = await session.execute(
        query.order_by(MonthlyPayment.month.desc(), MonthlyPayment.player_id)
    )
    return [_monthly_payment_to_dict(p) for p in result.scalars().all()]


async def list_player_payments(session: AsyncSession, team_id: int, player_id: int) -> List[Dict]:
    """List all payments (game and monthly) of a player, pending first."""
    game_result = await session.execute(
        select(GamePayment)
        .where(GamePayment.team_id == team_id, GamePayment.player_id == player_id)
        .order_by(GamePayment.match_id.desc())
    )
    monthly_result = await session.execute(
        select(MonthlyPayment)
        .where(MonthlyPayment.team_id == team_id, MonthlyPayment.player_id == player_id)
        .order_by(MonthlyPayment.month.desc())
    )
    payments = [_game_payment_to_dict(p) for p in game_result.scalars().all()]
    payments += [_monthly_payment_to_dict(p) for p in monthly_result.scalars().all()]
    payments.sort(key=lambda p: p["status"] != PaymentStatus.PENDING.value)
    return payments
