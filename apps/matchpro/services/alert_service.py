"""
Alert service.

Alerts are derived from team state: a user is asked to confirm presence
for upcoming matches, to vote on recently finished matches and to settle
pending payments. sync_alerts reconciles the stored alerts with what the
current state requires. Alert ids are deterministic so reconciling twice
changes nothing.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.database.models import (
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
    Match,
    MatchStatus,
    MatchVote,
    Player,
    PlayerStatus,
    PresenceStatus,
    VotingStatus,
)
from matchpro.services.errors import NotFoundError
from matchpro.utils.constants import (
    ALERT_UPCOMING_MATCH_LIMIT,
    ALERT_VOTE_LOOKBACK_DAYS,
    ALERT_VOTE_MATCH_LIMIT,
)
from matchpro.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


def _alert_to_dict(alert: Alert) -> Dict:
    return {
        "id": alert.id,
        "team_id": alert.team_id,
        "user_id": alert.user_id,
        "type": alert.type,
        "title": alert.title,
        "message": alert.message,
        "severity": alert.severity,
        "status": alert.status,
        "related_entity": {
            "type": alert.related_entity_type,
            "id": alert.related_entity_id,
        }
        if alert.related_entity_type
        else None,
        "action": alert.action,
        "created_at": as_utc(alert.created_at).isoformat() if alert.created_at else None,
        "resolved_at": as_utc(alert.resolved_at).isoformat() if alert.resolved_at else None,
    }


def _presence_alert(match: Match, user_id: int) -> Dict:
    return {
        "id": f"presence_{match.id}_{user_id}",
        "type": AlertType.CONFIRM_PRESENCE.value,
        "title": "Confirm Presence",
        "message": f"Match against {match.opponent or 'Opponent'} coming up.",
        "severity": AlertSeverity.WARNING.value,
        "related_entity_type": "match",
        "related_entity_id": match.id,
        "action": {"label": "Confirm", "screen": "MatchDetails", "params": {"match_id": match.id}},
    }


def _vote_alert(match: Match, user_id: int) -> Dict:
    return {
        "id": f"vote_{match.id}_{user_id}",
        "type": AlertType.VOTE_MATCH.value,
        "title": "Voting Open",
        "message": f"Rate the players of the match against {match.opponent or 'Training'}.",
        "severity": AlertSeverity.INFO.value,
        "related_entity_type": "match",
        "related_entity_id": match.id,
        "action": {"label": "Vote", "screen": "MatchDetails", "params": {"match_id": match.id}},
    }


def _payment_alert(player: Player, user_id: int) -> Dict:
    return {
        "id": f"payment_pending_{user_id}",
        "type": AlertType.PAYMENT_PENDING.value,
        "title": "Payment Pending",
        "message": f"You have pending payments totaling {player.total_pending:.2f}.",
        "severity": AlertSeverity.CRITICAL.value,
        "related_entity_type": "payment",
        "related_entity_id": player.id,
        "action": {"label": "Settle", "screen": "Finance"},
    }


async def _desired_alerts(
    session: AsyncSession,
    team_id: int,
    user_id: int,
    player: Optional[Player],
    is_athlete: bool,
    now: datetime,
) -> Dict[str, Dict]:
    """Compute the alerts that should be pending for a user, keyed by id."""
    desired = {}
    if player is None:
        return desired
    player_key = str(player.id)

    if is_athlete:
        upcoming = await session.execute(
            select(Match)
            .where(Match.team_id == team_id, Match.date >= now)
            .order_by(Match.date.asc())
            .limit(ALERT_UPCOMING_MATCH_LIMIT)
        )
        for match in upcoming.scalars().all():
            if match.status == MatchStatus.CANCELED.value:
                continue
            answer = (match.presence or {}).get(player_key, {}).get("status")
            if answer not in (PresenceStatus.CONFIRMED.value, PresenceStatus.OUT.value):
                alert = _presence_alert(match, user_id)
                desired[alert["id"]] = alert

        recent = await session.execute(
            select(Match)
            .where(
                Match.team_id == team_id,
                Match.status == MatchStatus.FINISHED.value,
                Match.date >= now - timedelta(days=ALERT_VOTE_LOOKBACK_DAYS),
            )
            .order_by(Match.date.desc())
            .limit(ALERT_VOTE_MATCH_LIMIT)
        )
        open_matches = [
            m for m in recent.scalars().all()
            if m.voting_status == VotingStatus.OPEN.value
            and (m.presence or {}).get(player_key, {}).get("status") == PresenceStatus.CONFIRMED.value
        ]
        if open_matches:
            voted = await session.execute(
                select(MatchVote.match_id).where(
                    MatchVote.user_id == user_id,
                    MatchVote.match_id.in_([m.id for m in open_matches]),
                )
            )
            voted_ids = set(voted.scalars().all())
            for match in open_matches:
                if match.id not in voted_ids:
                    alert = _vote_alert(match, user_id)
                    desired[alert["id"]] = alert

    if (player.total_pending or 0) > 0:
        alert = _payment_alert(player, user_id)
        desired[alert["id"]] = alert

    return desired


async def sync_alerts(
    session: AsyncSession,
    user_id: Optional[int],
    team_id: Optional[int],
    is_athlete: Optional[bool] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Reconcile a user's alerts with the current team state.

    Missing alerts are created (a resolved alert with the same id is
    reopened) and pending alerts that no longer apply are resolved.

    Args:
        is_athlete: Defaults to the athlete flag of the user's player

    Returns:
        Dict with "created" and "resolved" counts
    """
    if not user_id or not team_id:
        return {"created": 0, "resolved": 0}
    now = now or utcnow()

    player_result = await session.execute(
        select(Player)
        .where(
            Player.team_id == team_id,
            Player.user_id == user_id,
            Player.status != PlayerStatus.EXPELLED.value,
        )
        .order_by(Player.id)
        .limit(1)
    )
    player = player_result.scalar_one_or_none()
    if is_athlete is None:
        is_athlete = bool(player and player.is_athlete)

    pending_result = await session.execute(
        select(Alert).where(
            Alert.team_id == team_id,
            Alert.user_id == user_id,
            Alert.status == AlertStatus.PENDING.value,
        )
    )
    pending = {alert.id: alert for alert in pending_result.scalars().all()}
    desired = await _desired_alerts(session, team_id, user_id, player, is_athlete, now)

    created = 0
    for alert_id, fields in desired.items():
        if alert_id in pending:
            continue
        alert = await session.get(Alert, (team_id, alert_id))
        if alert is None:
            alert = Alert(team_id=team_id, user_id=user_id, created_at=now)
            session.add(alert)
        for field, value in fields.items():
            setattr(alert, field, value)
        alert.status = AlertStatus.PENDING.value
        alert.resolved_at = None
        created += 1

    resolved = 0
    for alert_id, alert in pending.items():
        if alert_id not in desired:
            alert.status = AlertStatus.RESOLVED.value
            alert.resolved_at = now
            resolved += 1

    await session.flush()
    if created or resolved:
        logger.info(
            f"Synced alerts for user {user_id} in team {team_id}: "
            f"{created} created, {resolved} resolved"
        )
    return {"created": created, "resolved": resolved}


async def resolve_alert(
    session: AsyncSession, team_id: int, alert_id: str, missing_ok: bool = False
) -> Optional[Dict]:
    """
    Mark an alert resolved.

    Raises:
        NotFoundError: If the alert does not exist and missing_ok is False
    """
    alert = await session.get(Alert, (team_id, alert_id))
    if alert is None:
        if missing_ok:
            return None
        raise NotFoundError(f"Alert {alert_id} not found")
    if alert.status != AlertStatus.RESOLVED.value:
        alert.status = AlertStatus.RESOLVED.value
        alert.resolved_at = utcnow()
        await session.flush()
    return _alert_to_dict(alert)


async def list_alerts(
    session: AsyncSession,
    team_id: int,
    user_id: int,
    status: Optional[str] = AlertStatus.PENDING.value,
) -> List[Dict]:
    """List a user's alerts in a team, newest first. status=None lists all."""
    query = select(Alert).where(Alert.team_id == team_id, Alert.user_id == user_id)
    if status:
        query = query.where(Alert.status == status)
    result = await session.execute(query.order_by(Alert.created_at.desc(), Alert.id))
    return [_alert_to_dict(a) for a in result.scalars().all()]
