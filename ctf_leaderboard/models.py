"""
Domain model for the CTF leaderboard.

Teams and challenges are the top-level aggregates. Checkpoints belong to a
single interactive challenge; solved records and submissions reference both a
team and a challenge.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Set

NON_INTERACTIVE = "non-interactive"
INTERACTIVE = "interactive"
CHALLENGE_TYPES = (NON_INTERACTIVE, INTERACTIVE)

ChallengeType = Literal["non-interactive", "interactive"]


@dataclass(frozen=True)
class Checkpoint:
    id: str
    name: str
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "points": self.points}


@dataclass
class Challenge:
    """A scorable task; non-interactive (single flag) or interactive (checkpoints)."""

    id: str
    name: str
    description: str
    type: ChallengeType
    points: int
    penalty_points: int = 0
    checkpoints: List[Checkpoint] = field(default_factory=list)

    @property
    def is_interactive(self) -> bool:
        return self.type == INTERACTIVE

    @property
    def checkpoint_ids(self) -> Set[str]:
        return {checkpoint.id for checkpoint in self.checkpoints}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "points": self.points,
            "penalty_points": self.penalty_points,
            "checkpoints": [checkpoint.to_dict() for checkpoint in self.checkpoints],
        }


@dataclass
class SolvedChallenge:
    """A team's solved record for one challenge."""

    challenge_id: str
    # Only meaningful for interactive challenges
    solved_checkpoint_ids: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "challenge_id": self.challenge_id,
            "solved_checkpoint_ids": sorted(self.solved_checkpoint_ids),
        }


@dataclass
class Team:
    id: str
    name: str
    solved_challenges: Dict[str, SolvedChallenge] = field(default_factory=dict)

    def solved_record(self, challenge_id: str) -> Optional[SolvedChallenge]:
        return self.solved_challenges.get(challenge_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "solved_challenges": [
                solved.to_dict() for solved in self.solved_challenges.values()
            ],
        }


@dataclass(frozen=True)
class Submission:
    """One attempt by a team at a challenge's answer. Append-only."""

    id: int
    team_id: str
    challenge_id: str
    is_correct: bool
    submitted_at: datetime
    submission_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "challenge_id": self.challenge_id,
            "is_correct": self.is_correct,
            "submitted_at": self.submitted_at.isoformat(),
            "submission_text": self.submission_text,
        }


@dataclass(frozen=True)
class LeaderboardEntry:
    id: str
    name: str
    score: int
    challenges_solved: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "challenges_solved": self.challenges_solved,
        }


@dataclass(frozen=True)
class ChallengeStats:
    id: str
    name: str
    type: ChallengeType
    solved_count: int
    total_teams: int
    completion_percentage: int
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "solved_count": self.solved_count,
            "total_teams": self.total_teams,
            "completion_percentage": self.completion_percentage,
            "points": self.points,
        }


@dataclass(frozen=True)
class TeamSubmissionStats:
    """Submission history of one team on one non-interactive challenge."""

    team_id: str
    team_name: str
    challenge_id: str
    challenge_name: str
    total_submissions: int
    wrong_submissions: int
    is_solved: bool
    penalty_points: int
    # Most recent first
    submissions: List[Submission] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "challenge_id": self.challenge_id,
            "challenge_name": self.challenge_name,
            "total_submissions": self.total_submissions,
            "wrong_submissions": self.wrong_submissions,
            "is_solved": self.is_solved,
            "penalty_points": self.penalty_points,
            "submissions": [submission.to_dict() for submission in self.submissions],
        }
