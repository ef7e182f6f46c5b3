"""Point calculation for solved challenges (pure, no I/O).

Rules:
- A non-interactive challenge is worth its fixed ``points`` once solved.
- An interactive challenge is worth the sum of its solved checkpoints.
- Wrong submissions are free unless the team eventually solves the challenge;
  once solved, every wrong submission costs the challenge's ``penalty_points``.
- Interactive challenges never carry a penalty.
"""
from __future__ import annotations

import math
from typing import Dict, Iterable, Optional, Sequence

from .models import Challenge, SolvedChallenge, Submission, Team


def _index_challenges(challenges: Iterable[Challenge]) -> Dict[str, Challenge]:
    return {challenge.id: challenge for challenge in challenges}


def challenge_points(
    challenge: Challenge,
    solved_checkpoint_ids: Optional[Iterable[str]] = None,
) -> int:
    """Points earned on ``challenge`` given the solved checkpoint ids.

    Unknown checkpoint ids contribute nothing.
    """
    if not challenge.is_interactive:
        return challenge.points

    solved = set(solved_checkpoint_ids or ())
    return sum(
        checkpoint.points
        for checkpoint in challenge.checkpoints
        if checkpoint.id in solved
    )


def total_challenge_points(challenge: Challenge) -> int:
    """Maximum points available on ``challenge``."""
    if not challenge.is_interactive:
        return challenge.points
    return sum(checkpoint.points for checkpoint in challenge.checkpoints)


def wrong_submission_count(
    team_id: str,
    challenge_id: str,
    submissions: Iterable[Submission],
) -> int:
    return sum(
        1
        for submission in submissions
        if submission.team_id == team_id
        and submission.challenge_id == challenge_id
        and not submission.is_correct
    )


def penalty_points(
    team: Team,
    challenge: Challenge,
    submissions: Iterable[Submission],
) -> int:
    """Penalty owed by ``team`` on ``challenge``; zero until the challenge is solved."""
    if challenge.is_interactive or team.solved_record(challenge.id) is None:
        return 0
    if challenge.penalty_points <= 0:
        return 0

    wrong = wrong_submission_count(team.id, challenge.id, submissions)
    return challenge.penalty_points * wrong


def team_score(
    team: Team,
    challenges: Iterable[Challenge],
    submissions: Sequence[Submission],
    clamp_negative: bool = False,
) -> int:
    """Earned points over all solved records minus wrong-submission penalties.

    Scores are not clamped unless ``clamp_negative`` is set.
    """
    by_id = _index_challenges(challenges)
    earned = 0
    penalty = 0

    for solved in team.solved_challenges.values():
        challenge = by_id.get(solved.challenge_id)
        if challenge is None:
            continue
        earned += challenge_points(challenge, solved.solved_checkpoint_ids)
        penalty += penalty_points(team, challenge, submissions)

    score = earned - penalty
    if clamp_negative:
        return max(score, 0)
    return score


def challenges_solved(team: Team, challenges: Iterable[Challenge]) -> int:
    """Number of solved records, including interactive ones with no checkpoints yet."""
    by_id = _index_challenges(challenges)
    return sum(1 for challenge_id in team.solved_challenges if challenge_id in by_id)


def is_challenge_completed(
    challenge: Challenge,
    solved: Optional[SolvedChallenge],
) -> bool:
    """Whether a solved record counts towards a challenge's completion statistics."""
    if solved is None:
        return False
    if challenge.is_interactive:
        return len(solved.solved_checkpoint_ids) > 0
    return True


def completion_percentage(solved_count: int, total_teams: int) -> int:
    # Half-up rounding: 1 of 8 teams is 13%, not 12%
    if total_teams <= 0:
        return 0
    return int(math.floor(solved_count / total_teams * 100 + 0.5))
