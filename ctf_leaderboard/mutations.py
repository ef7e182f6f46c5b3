"""
Admin mutations: validate input, apply it to the store atomically, and report
a uniform success/error result.
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

import aiosqlite

from .errors import MutationResult, ScoreboardError
from .models import Challenge, Checkpoint
from .schemas import (
    ChallengeInput,
    CheckpointInput,
    CheckpointSelection,
    SubmissionInput,
    TeamInput,
    validate_input,
)

logger = logging.getLogger(__name__)

CheckpointSpec = Union[CheckpointInput, Mapping[str, Any]]


def build_challenge(
    challenge_id: str,
    data: ChallengeInput,
) -> Challenge:
    """
    Turn validated input into a challenge with deterministic checkpoint ids.

    @param challenge_id: Identifier of the new or updated challenge
    @param data: Validated challenge input
    @return: Challenge ready to be stored
    """
    checkpoints = [
        Checkpoint(id=f"{challenge_id}-{position}", name=item.name, points=item.points)
        for position, item in enumerate(data.checkpoints, 1)
    ]
    return Challenge(
        id=challenge_id,
        name=data.name,
        description=data.description,
        type=data.type,
        points=data.points,
        penalty_points=data.penalty_points,
        checkpoints=checkpoints,
    )


class AdminOperations:
    """Every state-changing operation of the scoreboard.

    Holding an instance is the admin capability; see
    ``ScoreboardSystem.admin_operations``. A successful mutation invalidates the
    aggregator's read cache.
    """

    def __init__(
        self,
        db_manager: Any,
        aggregator: Any,
        config: Any,
    ) -> None:
        self.db = db_manager
        self.aggregator = aggregator
        self.config = config

    async def _run(
        self,
        action: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> MutationResult:
        """
        Execute one mutation and convert its outcome into a result.

        @param action: Human-readable action used in messages ("add team")
        @param operation: Coroutine factory performing validation and the write
        @return: MutationResult with the created entity, if any
        """
        try:
            entity = await operation()
        except ScoreboardError as e:
            logger.info(f"Rejected {action}: {e}")
            return MutationResult.failure(str(e), e.kind)
        except aiosqlite.Error:
            logger.exception(f"Store failure during {action}")
            return MutationResult.failure(f"Failed to {action}", "store")

        self.aggregator.invalidate()
        return MutationResult.ok(entity)

    # ---- teams ----

    async def add_team(
        self,
        name: str,
    ) -> MutationResult:
        async def operation():
            data = validate_input(TeamInput, name=name)
            return await self.db.insert_team(data.name)

        return await self._run("add team", operation)

    async def update_team(
        self,
        team_id: str,
        name: str,
    ) -> MutationResult:
        async def operation():
            data = validate_input(TeamInput, name=name)
            await self.db.update_team(team_id, data.name)

        return await self._run("update team", operation)

    async def delete_team(
        self,
        team_id: str,
    ) -> MutationResult:
        return await self._run("delete team", lambda: self.db.delete_team(team_id))

    # ---- challenges ----

    async def add_challenge(
        self,
        name: str,
        description: str,
        type: str,
        points: int,
        penalty_points: int = 0,
        checkpoints: Optional[Iterable[CheckpointSpec]] = None,
    ) -> MutationResult:
        """
        Create a challenge.

        Interactive challenges are stored with points equal to the sum of their
        checkpoints and no penalty.

        @param name: Challenge name
        @param description: Free-form description
        @param type: "non-interactive" or "interactive"
        @param points: Fixed award (recomputed for interactive challenges)
        @param penalty_points: Cost of each wrong submission once solved
        @param checkpoints: Checkpoint names and points, in order
        @return: MutationResult whose entity is the created Challenge
        """
        async def operation():
            data = validate_input(
                ChallengeInput,
                name=name,
                description=description,
                type=type,
                points=points,
                penalty_points=penalty_points,
                checkpoints=checkpoints,
            )
            challenge = build_challenge(uuid.uuid4().hex, data)
            await self.db.insert_challenge(challenge)
            return challenge

        return await self._run("add challenge", operation)

    async def update_challenge(
        self,
        challenge_id: str,
        name: str,
        description: str,
        type: str,
        points: int,
        penalty_points: int = 0,
        checkpoints: Optional[Iterable[CheckpointSpec]] = None,
    ) -> MutationResult:
        """
        Redefine a challenge, replacing its checkpoints.

        Solved checkpoints are dropped unless ``scoring.preserve_checkpoint_progress``
        is enabled, in which case progress follows checkpoint names.
        """
        async def operation():
            data = validate_input(
                ChallengeInput,
                name=name,
                description=description,
                type=type,
                points=points,
                penalty_points=penalty_points,
                checkpoints=checkpoints,
            )
            challenge = build_challenge(challenge_id, data)
            preserve = self.config.get("scoring", "preserve_checkpoint_progress") is True
            await self.db.update_challenge(challenge, preserve_progress=preserve)
            return challenge

        return await self._run("update challenge", operation)

    async def delete_challenge(
        self,
        challenge_id: str,
    ) -> MutationResult:
        return await self._run(
            "delete challenge", lambda: self.db.delete_challenge(challenge_id)
        )

    # ---- progress ----

    async def add_submission(
        self,
        team_id: str,
        challenge_id: str,
        is_correct: bool,
        submission_text: str = "",
    ) -> MutationResult:
        """
        Record an answer attempt.

        Duplicates are accepted; only the first correct submission creates the
        solved record.

        @return: MutationResult whose entity is the stored Submission
        """
        async def operation():
            data = validate_input(
                SubmissionInput,
                team_id=team_id,
                challenge_id=challenge_id,
                is_correct=is_correct,
                submission_text=submission_text,
            )
            submission, _ = await self.db.insert_submission(
                data.team_id,
                data.challenge_id,
                data.is_correct,
                data.submission_text,
            )
            return submission

        return await self._run("add submission", operation)

    async def mark_non_interactive_solved(
        self,
        team_id: str,
        challenge_id: str,
    ) -> MutationResult:
        # Challenge type is the caller's routing concern
        async def operation():
            data = validate_input(
                CheckpointSelection, team_id=team_id, challenge_id=challenge_id
            )
            await self.db.insert_solved_challenge(data.team_id, data.challenge_id)

        return await self._run("mark challenge as solved", operation)

    async def mark_checkpoints_solved(
        self,
        team_id: str,
        challenge_id: str,
        checkpoint_ids: List[str],
    ) -> MutationResult:
        """
        Set a team's solved checkpoints on a challenge to exactly ``checkpoint_ids``.

        Idempotent. Ids that do not belong to the challenge are rejected.
        """
        async def operation():
            data = validate_input(
                CheckpointSelection,
                team_id=team_id,
                challenge_id=challenge_id,
                checkpoint_ids=checkpoint_ids,
            )
            await self.db.set_solved_checkpoints(
                data.team_id, data.challenge_id, data.checkpoint_ids
            )

        return await self._run("mark checkpoints as solved", operation)
