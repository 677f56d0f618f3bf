"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


# ---------------------------------------------------------------------------
# Auth / users
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request to create an account."""

    email: str
    password: str
    display_name: str
    nickname: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class LoginRequest(BaseModel):
    """Request to log in with email and password."""

    email: str
    password: str


class AuthResponse(BaseModel):
    """Response after registering or logging in."""

    access_token: str
    token_type: str = "bearer"
    user_id: int


class UserResponse(BaseModel):
    """User account data."""

    id: int
    email: str
    display_name: str
    nickname: Optional[str] = None
    photo_url: Optional[str] = None
    last_active_team_id: Optional[int] = None


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

BillingModeLiteral = Literal["PER_GAME", "MONTHLY", "MONTHLY_PLUS_GAME"]
RoleLiteral = Literal["owner", "coach", "staff", "player"]
PositionLiteral = Literal["GK", "DEF", "MID", "FWD"]
PaymentModeLiteral = Literal["monthly", "per_game", "exempt"]


class TeamCreate(BaseModel):
    """Request to create a team."""

    name: str = Field(..., min_length=1)
    billing_mode: BillingModeLiteral = "PER_GAME"
    per_game_amount: float = Field(0.0, ge=0)
    monthly_amount: float = Field(0.0, ge=0)


class TeamResponse(BaseModel):
    """Team data, with the role map when the caller is a member."""

    id: int
    name: str
    owner_id: int
    code: str
    badge_url: Optional[str] = None
    billing_mode: str
    per_game_amount: float
    monthly_amount: float
    billing_day: Optional[int] = None
    created_at: Optional[str] = None
    members: Optional[Dict[int, str]] = None
    role: Optional[str] = None


class JoinTeamRequest(BaseModel):
    """Request to join a team with its invite code."""

    code: str = Field(..., min_length=6, max_length=6)
    nickname: Optional[str] = None
    position: Optional[PositionLiteral] = None
    dominant_foot: Optional[str] = None


class BillingSettingsUpdate(BaseModel):
    """Request to change team billing settings. Omitted fields stay unchanged."""

    billing_mode: Optional[BillingModeLiteral] = None
    per_game_amount: Optional[float] = Field(None, ge=0)
    monthly_amount: Optional[float] = Field(None, ge=0)
    billing_day: Optional[int] = Field(None, ge=1, le=28)


class MemberRoleUpdate(BaseModel):
    """Request to change a member's role."""

    role: RoleLiteral


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------


class FinancialSummary(BaseModel):
    total_paid: float
    total_pending: float


class PlayerResponse(BaseModel):
    """Roster entry with stats and financial summary."""

    id: int
    team_id: int
    user_id: Optional[int] = None
    name: str
    nickname: Optional[str] = None
    photo_url: Optional[str] = None
    position: Optional[str] = None
    dominant_foot: Optional[str] = None
    status: str
    is_athlete: bool
    is_ghost: bool
    payment_mode: Optional[str] = None
    goals: int
    assists: int
    matches_played: int
    goal_participations: int
    average_goals_per_match: float
    average_assists_per_match: float
    mvp_score: float
    average_technical_rating: float
    technical_rating_count: int
    average_community_rating: float
    community_rating_count: int
    total_crowd_votes: int
    financial_summary: FinancialSummary


class PlayerCreate(BaseModel):
    """Request to add a roster entry (ghost player when user_id is omitted)."""

    name: str = Field(..., min_length=1)
    nickname: Optional[str] = None
    position: Optional[PositionLiteral] = None
    dominant_foot: Optional[str] = None
    user_id: Optional[int] = None
    is_athlete: bool = True
    payment_mode: Optional[PaymentModeLiteral] = None


class PlayerUpdate(BaseModel):
    """Request to update a roster entry. Only provided fields change."""

    name: Optional[str] = None
    nickname: Optional[str] = None
    photo_url: Optional[str] = None
    position: Optional[PositionLiteral] = None
    dominant_foot: Optional[str] = None
    status: Optional[Literal["active", "inactive"]] = None
    is_athlete: Optional[bool] = None
    payment_mode: Optional[PaymentModeLiteral] = None


class TeamCreateResponse(BaseModel):
    team: TeamResponse
    player: PlayerResponse


class JoinTeamResponse(BaseModel):
    team: TeamResponse
    player: PlayerResponse
    role: str


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class MatchCreate(BaseModel):
    """Request to schedule a match (training when opponent is omitted)."""

    date: datetime
    opponent: Optional[str] = None
    location: Optional[str] = None


class MatchUpdate(BaseModel):
    """Request to edit match details."""

    date: Optional[datetime] = None
    opponent: Optional[str] = None
    location: Optional[str] = None


class MatchResponse(BaseModel):
    """Match data including presence, stats sheet, voting and awards."""

    id: int
    team_id: int
    date: str
    opponent: Optional[str] = None
    location: Optional[str] = None
    status: str
    score_home: int
    score_away: int
    presence: Dict[str, dict]
    stats: Dict[str, dict]
    voting_status: str
    voting_deadline: Optional[str] = None
    voting_results: Optional[dict] = None
    awards: Optional[dict] = None
    finished_at: Optional[str] = None


class PresenceUpdate(BaseModel):
    """Presence answer; player_id defaults to the caller's own player."""

    status: Literal["confirmed", "maybe", "out"]
    player_id: Optional[int] = None


class MatchEventCreate(BaseModel):
    """Live goal/assist event."""

    type: Literal["goal", "assist"]
    player_id: int


class MatchEventResponse(BaseModel):
    id: int
    match_id: int
    type: str
    player_id: int
    player_name: str
    created_at: Optional[str] = None


class ScoreUpdate(BaseModel):
    score_home: int = Field(..., ge=0)
    score_away: int = Field(..., ge=0)


class StatEntry(BaseModel):
    """One player's line on the stats sheet."""

    model_config = ConfigDict(extra="ignore")

    goals: int = Field(0, ge=0)
    assists: int = Field(0, ge=0)
    technical_rating: Optional[int] = Field(None, ge=1, le=10)
    missed: bool = False


class MatchSummaryRequest(BaseModel):
    """Post-match summary: stats sheet keyed by player id plus the score."""

    stats: Dict[str, StatEntry] = {}
    score_home: int = Field(..., ge=0)
    score_away: int = Field(..., ge=0)


class FinalizeMatchRequest(BaseModel):
    score_home: int = Field(..., ge=0)
    score_away: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Voting
# ---------------------------------------------------------------------------


class OpenVotingRequest(BaseModel):
    duration_hours: Optional[int] = Field(None, gt=0)


class VoteRequest(BaseModel):
    """A ballot: ratings keyed by player id and an optional best player."""

    ratings: Dict[str, int] = {}
    best_player_vote: Optional[int] = None


class VoteResponse(BaseModel):
    id: int
    match_id: int
    user_id: int
    voter_player_id: int
    ratings: Dict[str, int]
    best_player_vote: Optional[int] = None


# ---------------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------------


class PaymentResponse(BaseModel):
    """Game or monthly payment."""

    id: str
    type: str
    team_id: int
    player_id: int
    match_id: Optional[int] = None
    month: Optional[str] = None
    amount: float
    status: str
    paid_at: Optional[str] = None
    confirmed_by: Optional[int] = None


class MarkPaymentPaidRequest(BaseModel):
    payment_type: Literal["PER_GAME", "MONTHLY"]
    payment_id: str
    match_id: Optional[int] = None


class GenerateMonthlyPaymentsRequest(BaseModel):
    month: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class SettleResponse(BaseModel):
    player_id: int
    settled_count: int
    settled_amount: float


class TransactionCreate(BaseModel):
    type: Literal["income", "expense"]
    category: Literal["monthly", "game", "other"] = "other"
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    date: Optional[datetime] = None
    status: Literal["pending", "paid"] = "pending"
    player_id: Optional[int] = None
    game_id: Optional[int] = None


class TransactionUpdate(BaseModel):
    type: Optional[Literal["income", "expense"]] = None
    category: Optional[Literal["monthly", "game", "other"]] = None
    description: Optional[str] = None
    amount: Optional[float] = Field(None, ge=0)
    date: Optional[datetime] = None
    status: Optional[Literal["pending", "paid"]] = None
    player_id: Optional[int] = None
    game_id: Optional[int] = None


class TransactionResponse(BaseModel):
    id: str
    team_id: int
    player_id: Optional[int] = None
    type: str
    category: str
    description: str
    amount: float
    date: Optional[str] = None
    status: str
    game_id: Optional[int] = None
    paid_at: Optional[str] = None
    created_by: Optional[int] = None


class FinanceSummaryResponse(BaseModel):
    income: float
    expense: float
    pending: float
    balance: float


# ---------------------------------------------------------------------------
# Alerts / members
# ---------------------------------------------------------------------------


class AlertResponse(BaseModel):
    id: str
    team_id: int
    user_id: int
    type: str
    title: str
    message: str
    severity: str
    status: str
    related_entity: Optional[dict] = None
    action: Optional[dict] = None
    created_at: Optional[str] = None
    resolved_at: Optional[str] = None


class AlertSyncResponse(BaseModel):
    created: int
    resolved: int


class MemberHistoryResponse(BaseModel):
    id: int
    team_id: int
    player_id: Optional[int] = None
    user_id: Optional[int] = None
    player_name: str
    action: str
    performed_by: Optional[int] = None
    performed_by_name: Optional[str] = None
    created_at: Optional[str] = None
