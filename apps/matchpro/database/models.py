"""
SQLAlchemy ORM models for the MatchPro team management system.

Map-shaped match data (presence, stats sheet, voting results, awards and the
deltas applied to player aggregates) is stored in JSON columns keyed by the
player id rendered as a string.
"""

import enum
from sqlalchemy import (
    JSON,
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from matchpro.database.db import Base


class MemberRole(str, enum.Enum):
    """Team member role enum, highest privilege first."""

    OWNER = "owner"
    COACH = "coach"
    STAFF = "staff"
    PLAYER = "player"


class BillingMode(str, enum.Enum):
    """How a team charges its players."""

    PER_GAME = "PER_GAME"
    MONTHLY = "MONTHLY"
    MONTHLY_PLUS_GAME = "MONTHLY_PLUS_GAME"


class PaymentMode(str, enum.Enum):
    """Per-player override of the team billing mode."""

    MONTHLY = "monthly"
    PER_GAME = "per_game"
    EXEMPT = "exempt"


class PlayerStatus(str, enum.Enum):
    """Roster status enum."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPELLED = "expelled"


class Position(str, enum.Enum):
    """Player position enum."""

    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"


class MatchStatus(str, enum.Enum):
    """Match status enum."""

    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    FINISHED = "finished"
    CANCELED = "canceled"


class PresenceStatus(str, enum.Enum):
    """Presence answer of a player for a match."""

    CONFIRMED = "confirmed"
    MAYBE = "maybe"
    OUT = "out"


class VotingStatus(str, enum.Enum):
    """Post-match voting status enum."""

    HIDDEN = "hidden"
    OPEN = "open"
    CLOSED = "closed"


class MatchEventType(str, enum.Enum):
    """Live match event type."""

    GOAL = "goal"
    ASSIST = "assist"


class PaymentType(str, enum.Enum):
    """Payment kind enum."""

    PER_GAME = "PER_GAME"
    MONTHLY = "MONTHLY"


class PaymentStatus(str, enum.Enum):
    """Payment and ledger entry status enum."""

    PENDING = "pending"
    PAID = "paid"


class TransactionType(str, enum.Enum):
    """Ledger entry direction."""

    INCOME = "income"
    EXPENSE = "expense"


class TransactionCategory(str, enum.Enum):
    """Ledger entry category."""

    MONTHLY = "monthly"
    GAME = "game"
    OTHER = "other"


class AlertType(str, enum.Enum):
    """Derived alert type enum."""

    CONFIRM_PRESENCE = "CONFIRM_PRESENCE"
    VOTE_MATCH = "VOTE_MATCH"
    PAYMENT_PENDING = "PAYMENT_PENDING"


class AlertSeverity(str, enum.Enum):
    """Alert severity enum."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertStatus(str, enum.Enum):
    """Alert status enum."""

    PENDING = "pending"
    RESOLVED = "resolved"


class MemberAction(str, enum.Enum):
    """Member history action enum."""

    JOIN = "JOIN"
    LEAVE = "LEAVE"
    KICK = "KICK"
    REINTEGRATE = "REINTEGRATE"


class User(Base):
    """User accounts with email/password authentication."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    nickname = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    last_active_team_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    memberships = relationship(
        "TeamMember", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class Team(Base):
    """Teams, their invite code and billing settings."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    code = Column(String(6), nullable=False, unique=True)  # Invite code, e.g. "K3X9QZ"
    badge_url = Column(String, nullable=True)
    billing_mode = Column(String, nullable=False, default=BillingMode.PER_GAME.value)
    per_game_amount = Column(Float, nullable=False, default=0.0)
    monthly_amount = Column(Float, nullable=False, default=0.0)
    billing_day = Column(Integer, nullable=True)  # Day of month dues are charged (1-28)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")
    players = relationship("Player", back_populates="team", cascade="all, delete-orphan")
    matches = relationship("Match", back_populates="team", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_teams_code", "code"),)


class TeamMember(Base):
    """Role map of a team: one row per (team, user)."""

    __tablename__ = "team_members"

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String, nullable=False, default=MemberRole.PLAYER.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (Index("idx_team_members_user_id", "user_id"),)


class Player(Base):
    """Per-team roster entry with running stats and financial summary."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # None for ghost players
    name = Column(String, nullable=False)
    nickname = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    position = Column(String, nullable=True)
    dominant_foot = Column(String, nullable=True)
    status = Column(String, nullable=False, default=PlayerStatus.ACTIVE.value)
    is_athlete = Column(Boolean, nullable=False, default=True)
    is_ghost = Column(Boolean, nullable=False, default=False)
    payment_mode = Column(String, nullable=True)  # None follows the team billing mode

    # Running stats
    goals = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    matches_played = Column(Integer, nullable=False, default=0)
    goal_participations = Column(Integer, nullable=False, default=0)
    average_goals_per_match = Column(Float, nullable=False, default=0.0)
    average_assists_per_match = Column(Float, nullable=False, default=0.0)
    mvp_score = Column(Float, nullable=False, default=0.0)

    # Rating aggregation
    technical_rating_sum = Column(Float, nullable=False, default=0.0)
    technical_rating_count = Column(Integer, nullable=False, default=0)
    average_technical_rating = Column(Float, nullable=False, default=0.0)
    community_rating_sum = Column(Float, nullable=False, default=0.0)
    community_rating_count = Column(Integer, nullable=False, default=0)
    average_community_rating = Column(Float, nullable=False, default=0.0)
    total_crowd_votes = Column(Integer, nullable=False, default=0)

    # Financial summary
    total_paid = Column(Float, nullable=False, default=0.0)
    total_pending = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    team = relationship("Team", back_populates="players")

    __table_args__ = (
        Index("idx_players_team_id", "team_id"),
        Index("idx_players_team_status", "team_id", "status"),
        Index("idx_players_user_id", "user_id"),
    )


class Match(Base):
    """Scheduled or played matches of a team."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    opponent = Column(String, nullable=True)  # None for training sessions
    location = Column(String, nullable=True)
    status = Column(String, nullable=False, default=MatchStatus.SCHEDULED.value)
    score_home = Column(Integer, nullable=False, default=0)
    score_away = Column(Integer, nullable=False, default=0)

    # {player_id: {"status": "confirmed", "name": "...", "is_ghost": false}}
    presence = Column(JSON, nullable=False, default=dict)
    # {player_id: {"goals": 1, "assists": 0, "technical_rating": 8, "rated_by": 3, "missed": false}}
    stats = Column(JSON, nullable=False, default=dict)
    # {player_id: {"goals", "assists", "technical_rating", "community_rating", "crowd_votes"}}
    applied_stats = Column(JSON, nullable=False, default=dict)

    voting_status = Column(String, nullable=False, default=VotingStatus.HIDDEN.value)
    voting_deadline = Column(DateTime(timezone=True), nullable=True)
    voting_results = Column(JSON, nullable=True)
    awards = Column(JSON, nullable=True)

    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    team = relationship("Team", back_populates="matches")
    events = relationship("MatchEvent", back_populates="match", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_matches_team_date", "team_id", "date"),
        Index("idx_matches_team_status", "team_id", "status"),
    )


class MatchEvent(Base):
    """Live goal/assist log of a match."""

    __tablename__ = "match_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)  # MatchEventType value
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    player_name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    match = relationship("Match", back_populates="events")

    __table_args__ = (Index("idx_match_events_match_id", "match_id"),)


class MatchVote(Base):
    """A user's ratings and best-player vote for a match."""

    __tablename__ = "match_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    voter_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    ratings = Column(JSON, nullable=False, default=dict)  # {player_id: 1-10}
    best_player_vote = Column(Integer, ForeignKey("players.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("match_id", "user_id", name="uq_match_votes_match_user"),
    )


class GamePayment(Base):
    """Per-game charge; at most one per (match, player)."""

    __tablename__ = "game_payments"

    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), primary_key=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), primary_key=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Float, nullable=False)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_game_payments_team_player", "team_id", "player_id"),)


class MonthlyPayment(Base):
    """Monthly dues; the id is "{player_id}_{YYYY}_{MM}"."""

    __tablename__ = "monthly_payments"

    id = Column(String, primary_key=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    month = Column(String(7), nullable=False)  # "YYYY-MM"
    amount = Column(Float, nullable=False)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_monthly_payments_team_month", "team_id", "month"),
        Index("idx_monthly_payments_team_player", "team_id", "player_id"),
    )


class Transaction(Base):
    """Team ledger entry (income or expense)."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="SET NULL"), nullable=True)
    type = Column(String, nullable=False)  # TransactionType value
    category = Column(String, nullable=False)  # TransactionCategory value
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    game_id = Column(Integer, ForeignKey("matches.id", ondelete="SET NULL"), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_transactions_team_status", "team_id", "status"),
        Index("idx_transactions_team_game", "team_id", "game_id"),
        Index("idx_transactions_team_player", "team_id", "player_id"),
    )


class Alert(Base):
    """Derived per-user pending notification with a deterministic id."""

    __tablename__ = "alerts"

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    id = Column(String, primary_key=True)  # e.g. "presence_12_4"
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String, nullable=False)  # AlertType value
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String, nullable=False, default=AlertSeverity.INFO.value)
    status = Column(String, nullable=False, default=AlertStatus.PENDING.value)
    related_entity_type = Column(String, nullable=True)  # "match" or "payment"
    related_entity_id = Column(Integer, nullable=True)
    action = Column(JSON, nullable=True)  # {"label": ..., "screen": ..., "params": {...}}
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_alerts_team_user_status", "team_id", "user_id", "status"),)


class MemberHistory(Base):
    """Append-only audit log of roster membership changes."""

    __tablename__ = "member_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Integer, nullable=True)
    player_name = Column(String, nullable=False)
    action = Column(String, nullable=False)  # MemberAction value
    performed_by = Column(Integer, nullable=True)
    performed_by_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_member_history_team_id", "team_id"),)
