"""
Constants used across the MatchPro services.
"""

# Invite codes
INVITE_CODE_LENGTH = 6
INVITE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
INVITE_CODE_MAX_ATTEMPTS = 10

# Roles, highest privilege first
ROLE_RANK = {"owner": 4, "coach": 3, "staff": 2, "player": 1}
# Members with these roles are never billed
NON_BILLABLE_ROLES = {"owner", "coach", "staff"}

# Ratings (technical and community) are on a 1-10 scale
MIN_RATING = 1
MAX_RATING = 10

# Voting
DEFAULT_VOTING_HOURS = 48

# Stats rounding
AVERAGE_DECIMALS = 2

# Alert synchronization windows
ALERT_UPCOMING_MATCH_LIMIT = 5
ALERT_VOTE_LOOKBACK_DAYS = 7
ALERT_VOTE_MATCH_LIMIT = 5

# Ledger listings
RECENT_TRANSACTIONS_FETCH_LIMIT = 100
ALL_TRANSACTIONS_LIMIT = 500
