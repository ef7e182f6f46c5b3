"""
Derived scoreboard views: leaderboard, challenge completion statistics and
submission statistics.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiosqlite

from . import scoring
from .cache import ReadCache
from .errors import StoreError
from .models import (
    Challenge,
    ChallengeStats,
    LeaderboardEntry,
    Submission,
    Team,
    TeamSubmissionStats,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Aggregator:
    """Builds read views from the store through the score calculator."""

    def __init__(
        self,
        db_manager: Any,
        config: Any,
        cache: Optional[ReadCache] = None,
    ) -> None:
        self.db = db_manager
        self.config = config
        if cache is None:
            cache = ReadCache(ttl=config.get("cache", "ttl_seconds"))
        self.cache = cache

    def invalidate(self) -> None:
        """Drop every cached view; called after each successful mutation."""
        self.cache.invalidate()

    async def read_with_retry(
        self,
        loader: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run a store read, reinitializing the store and retrying once on failure.

        @param loader: Coroutine factory performing the read
        @return: Whatever the loader returns
        """
        try:
            return await loader()
        except aiosqlite.Error as e:
            logger.warning(f"Store read failed ({e}), reinitializing and retrying")

        try:
            await self.db.init_db()
            return await loader()
        except aiosqlite.Error as e:
            logger.error(f"Store read failed after retry: {e}")
            raise StoreError("Failed to load scoreboard data") from e

    async def _cached(
        self,
        key: str,
        build: Callable[[], Awaitable[T]],
    ) -> T:
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        generation = self.cache.generation
        data = await build()
        self.cache.set(key, data, generation)
        return data

    async def get_teams(self) -> List[Team]:
        return await self._cached(
            "teams", lambda: self.read_with_retry(self.db.list_teams)
        )

    async def get_challenges(self) -> List[Challenge]:
        return await self._cached(
            "challenges", lambda: self.read_with_retry(self.db.list_challenges)
        )

    async def _submissions_for_penalties(self) -> List[Submission]:
        # Penalties are best effort: a failed load means no penalties, not no leaderboard
        try:
            return await self.db.list_submissions()
        except aiosqlite.Error as e:
            logger.error(f"Could not load submissions for penalties: {e}")
            return []

    async def get_leaderboard(self) -> List[LeaderboardEntry]:
        """
        Rank every team by net score.

        @return: Entries sorted by score, highest first; equal scores keep store order
        """
        return await self._cached("leaderboard", self._build_leaderboard)

    async def _build_leaderboard(self) -> List[LeaderboardEntry]:
        teams = await self.read_with_retry(self.db.list_teams)
        challenges = await self.read_with_retry(self.db.list_challenges)
        submissions = await self._submissions_for_penalties()
        clamp = self.config.get("scoring", "clamp_negative_scores") is True

        entries = [
            LeaderboardEntry(
                id=team.id,
                name=team.name,
                score=scoring.team_score(team, challenges, submissions, clamp),
                challenges_solved=scoring.challenges_solved(team, challenges),
            )
            for team in teams
        ]
        entries.sort(key=lambda entry: entry.score, reverse=True)
        return entries

    async def get_challenge_stats(self) -> List[ChallengeStats]:
        """
        Completion statistics for every challenge.

        An interactive challenge only counts as solved by a team once at least one
        of its checkpoints is solved.

        @return: One entry per challenge, in challenge name order
        """
        return await self._cached("challenge_stats", self._build_challenge_stats)

    async def _build_challenge_stats(self) -> List[ChallengeStats]:
        teams = await self.read_with_retry(self.db.list_teams)
        challenges = await self.read_with_retry(self.db.list_challenges)
        total_teams = len(teams)

        stats = []
        for challenge in challenges:
            solved_count = sum(
                1
                for team in teams
                if scoring.is_challenge_completed(
                    challenge, team.solved_record(challenge.id)
                )
            )
            stats.append(
                ChallengeStats(
                    id=challenge.id,
                    name=challenge.name,
                    type=challenge.type,
                    solved_count=solved_count,
                    total_teams=total_teams,
                    completion_percentage=scoring.completion_percentage(
                        solved_count, total_teams
                    ),
                    points=challenge.points,
                )
            )
        return stats

    async def get_submission_stats(
        self,
        team_id: Optional[str] = None,
        challenge_id: Optional[str] = None,
    ) -> List[TeamSubmissionStats]:
        """
        Submission history per (team, non-interactive challenge) pair.

        Pairs without any submission are omitted.

        @param team_id: Only include this team
        @param challenge_id: Only include this challenge
        @return: Stats ordered by team name, then challenge name
        """
        async def build():
            stats = await self._cached("submission_stats", self._build_submission_stats)
            return [
                entry
                for entry in stats
                if (team_id is None or entry.team_id == team_id)
                and (challenge_id is None or entry.challenge_id == challenge_id)
            ]

        key = ReadCache.make_key("submission_stats", team_id or "*", challenge_id or "*")
        return await self._cached(key, build)

    async def _build_submission_stats(self) -> List[TeamSubmissionStats]:
        teams = await self.read_with_retry(self.db.list_teams)
        challenges = await self.read_with_retry(self.db.list_challenges)
        submissions = await self.read_with_retry(self.db.list_submissions)

        by_pair: Dict[tuple, List[Submission]] = {}
        for submission in submissions:
            key = (submission.team_id, submission.challenge_id)
            by_pair.setdefault(key, []).append(submission)

        stats = []
        for team in teams:
            for challenge in challenges:
                if challenge.is_interactive:
                    continue
                history = by_pair.get((team.id, challenge.id))
                if not history:
                    continue

                stats.append(
                    TeamSubmissionStats(
                        team_id=team.id,
                        team_name=team.name,
                        challenge_id=challenge.id,
                        challenge_name=challenge.name,
                        total_submissions=len(history),
                        wrong_submissions=sum(1 for s in history if not s.is_correct),
                        is_solved=team.solved_record(challenge.id) is not None,
                        penalty_points=scoring.penalty_points(team, challenge, history),
                        submissions=history,
                    )
                )
        return stats
