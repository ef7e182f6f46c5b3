"""
CTF Leaderboard - scoring and ranking engine for Capture The Flag competitions.

This package provides:
- Score calculation with wrong-submission penalties for solved challenges
- Interactive (checkpoint) and non-interactive (single flag) challenges
- Leaderboard, challenge completion and submission statistics views
- Validated, atomic admin mutations backed by SQLite
- JSON read API for scoreboard displays
"""

from .aggregator import Aggregator
from .cache import ReadCache
from .config import ScoreboardConfig
from .database import DatabaseManager
from .errors import (
    AuthorizationError,
    ConflictError,
    MutationResult,
    NotFoundError,
    ScoreboardError,
    StoreError,
    ValidationError,
)
from .models import (
    INTERACTIVE,
    NON_INTERACTIVE,
    Challenge,
    ChallengeStats,
    Checkpoint,
    LeaderboardEntry,
    SolvedChallenge,
    Submission,
    Team,
    TeamSubmissionStats,
)
from .mutations import AdminOperations
from .scoreboard import ScoreboardSystem
from .web_handlers import WebHandlers

__version__ = "1.0.0"
__author__ = "CTF Leaderboard Contributors"

__all__ = [
    "Aggregator",
    "AdminOperations",
    "AuthorizationError",
    "Challenge",
    "ChallengeStats",
    "Checkpoint",
    "ConflictError",
    "DatabaseManager",
    "INTERACTIVE",
    "LeaderboardEntry",
    "MutationResult",
    "NON_INTERACTIVE",
    "NotFoundError",
    "ReadCache",
    "ScoreboardConfig",
    "ScoreboardError",
    "ScoreboardSystem",
    "SolvedChallenge",
    "StoreError",
    "Submission",
    "Team",
    "TeamSubmissionStats",
    "ValidationError",
    "WebHandlers",
]
