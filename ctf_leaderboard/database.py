"""
Database operations for the CTF leaderboard.

Every write runs in a single ``BEGIN IMMEDIATE`` transaction so multi-row
operations either apply completely or not at all, and concurrent writers
serialize on SQLite's write lock.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

import aiosqlite

from .errors import ConflictError, NotFoundError, ValidationError
from .models import Challenge, Checkpoint, SolvedChallenge, Submission, Team

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS challenges (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        type TEXT NOT NULL CHECK (type IN ('non-interactive', 'interactive')),
        points INTEGER NOT NULL,
        penalty_points INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS checkpoints (
        id TEXT PRIMARY KEY,
        challenge_id TEXT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        name TEXT NOT NULL,
        points INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS solved_challenges (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        team_id TEXT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
        challenge_id TEXT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
        solved_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (team_id, challenge_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS solved_checkpoints (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        team_id TEXT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
        checkpoint_id TEXT NOT NULL REFERENCES checkpoints(id) ON DELETE CASCADE,
        solved_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (team_id, checkpoint_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS submissions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        team_id TEXT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
        challenge_id TEXT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
        submission_text TEXT NOT NULL DEFAULT '',
        is_correct INTEGER NOT NULL DEFAULT 0,
        submitted_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_checkpoints_challenge
    ON checkpoints(challenge_id, position)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_submissions_pair
    ON submissions(team_id, challenge_id, submitted_at DESC)
    """,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_submission(row: Any) -> Submission:
    return Submission(
        id=row["id"],
        team_id=row["team_id"],
        challenge_id=row["challenge_id"],
        is_correct=bool(row["is_correct"]),
        submitted_at=datetime.fromisoformat(row["submitted_at"]),
        submission_text=row["submission_text"] or "",
    )


class DatabaseManager:
    """Persistent store for teams, challenges, solved records and submissions."""

    def __init__(
        self,
        db_path: str,
        config: Any,
    ) -> None:
        self.db_path = db_path
        self.config = config
        self.busy_timeout = float(config.get("database", "busy_timeout") or 5.0)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        # Autocommit mode: transactions are opened explicitly
        async with aiosqlite.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
        ) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            yield db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Open a write transaction that commits on success and rolls back on any error.

        @return: Connection bound to the open transaction
        """
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            else:
                await db.execute("COMMIT")

    @asynccontextmanager
    async def _snapshot(self) -> AsyncIterator[aiosqlite.Connection]:
        # Read transaction so multi-statement reads see one consistent state
        async with self._connect() as db:
            await db.execute("BEGIN")
            try:
                yield db
            finally:
                await db.execute("COMMIT")

    async def init_db(self) -> None:
        """
        Initialize the SQLite database schema and indexes.

        Creates tables, indexes, and performs schema migrations if needed.
        """
        async with self._connect() as db:
            # WAL lets readers proceed while a writer holds the lock
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=NORMAL")

            for statement in SCHEMA:
                await db.execute(statement)

            await self._migrate_schema(db)

        logger.debug(f"Database schema ready at {self.db_path}")

    async def _migrate_schema(
        self,
        db: aiosqlite.Connection,
    ) -> None:
        """
        Add columns that older databases are missing.

        @param db: Active database connection
        """
        migrations = {
            "challenges": ("penalty_points", "INTEGER NOT NULL DEFAULT 0"),
            "submissions": ("submission_text", "TEXT NOT NULL DEFAULT ''"),
        }

        for table, (column, definition) in migrations.items():
            cursor = await db.execute(f"PRAGMA table_info({table})")
            column_names = [row[1] for row in await cursor.fetchall()]

            if column not in column_names:
                logger.info(f"Migrating {table} to add {column} column")
                await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    async def get_status(self) -> Dict[str, int]:
        """
        Count the main records in the store.

        @return: Dictionary with team, challenge, checkpoint and submission counts
        """
        counts = {}

        async with self._snapshot() as db:
            for table in ("teams", "challenges", "checkpoints", "submissions"):
                cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
                row = await cursor.fetchone()
                counts[table] = row[0]
        return counts

    # ---- reads ----

    async def _fetch_challenges(
        self,
        db: aiosqlite.Connection,
        challenge_id: Optional[str] = None,
    ) -> List[Challenge]:
        where = " WHERE id = ?" if challenge_id is not None else ""
        params: Tuple[Any, ...] = (challenge_id,) if challenge_id is not None else ()

        cursor = await db.execute(
            "SELECT id, name, description, type, points, penalty_points "
            f"FROM challenges{where} ORDER BY name, id",
            params,
        )
        challenges = {
            row["id"]: Challenge(
                id=row["id"],
                name=row["name"],
                description=row["description"] or "",
                type=row["type"],
                points=row["points"],
                penalty_points=row["penalty_points"] or 0,
            )
            for row in await cursor.fetchall()
        }

        where = " WHERE challenge_id = ?" if challenge_id is not None else ""
        cursor = await db.execute(
            "SELECT id, challenge_id, name, points FROM checkpoints"
            f"{where} ORDER BY challenge_id, position",
            params,
        )
        for row in await cursor.fetchall():
            challenge = challenges.get(row["challenge_id"])
            if challenge is not None:
                challenge.checkpoints.append(
                    Checkpoint(id=row["id"], name=row["name"], points=row["points"])
                )

        return list(challenges.values())

    async def _fetch_challenge(
        self,
        db: aiosqlite.Connection,
        challenge_id: str,
    ) -> Challenge:
        challenges = await self._fetch_challenges(db, challenge_id)
        if not challenges:
            raise NotFoundError("Challenge not found")
        return challenges[0]

    async def _require_team(
        self,
        db: aiosqlite.Connection,
        team_id: str,
    ) -> None:
        cursor = await db.execute("SELECT 1 FROM teams WHERE id = ?", (team_id,))
        if await cursor.fetchone() is None:
            raise NotFoundError("Team not found")

    async def _require_challenge(
        self,
        db: aiosqlite.Connection,
        challenge_id: str,
    ) -> None:
        cursor = await db.execute(
            "SELECT 1 FROM challenges WHERE id = ?", (challenge_id,)
        )
        if await cursor.fetchone() is None:
            raise NotFoundError("Challenge not found")

    async def list_teams(self) -> List[Team]:
        """
        Get all teams with their solved challenges and checkpoints.

        @return: Teams ordered by name
        """
        async with self._snapshot() as db:
            cursor = await db.execute("SELECT id, name FROM teams ORDER BY name, id")
            teams = {
                row["id"]: Team(id=row["id"], name=row["name"])
                for row in await cursor.fetchall()
            }

            cursor = await db.execute(
                "SELECT team_id, challenge_id FROM solved_challenges ORDER BY id"
            )
            for row in await cursor.fetchall():
                team = teams.get(row["team_id"])
                if team is not None:
                    team.solved_challenges[row["challenge_id"]] = SolvedChallenge(
                        challenge_id=row["challenge_id"]
                    )

            cursor = await db.execute("""
                SELECT sc.team_id, c.challenge_id, sc.checkpoint_id
                FROM solved_checkpoints sc
                JOIN checkpoints c ON c.id = sc.checkpoint_id
            """)
            for row in await cursor.fetchall():
                team = teams.get(row["team_id"])
                solved = team.solved_record(row["challenge_id"]) if team else None
                if solved is not None:
                    solved.solved_checkpoint_ids.add(row["checkpoint_id"])

        return list(teams.values())

    async def list_challenges(self) -> List[Challenge]:
        """
        Get all challenges with their checkpoints.

        @return: Challenges ordered by name, checkpoints in position order
        """
        async with self._snapshot() as db:
            return await self._fetch_challenges(db)

    async def list_submissions(
        self,
        team_id: Optional[str] = None,
        challenge_id: Optional[str] = None,
    ) -> List[Submission]:
        """
        Get submissions, optionally filtered by team and/or challenge.

        @param team_id: Only return submissions by this team
        @param challenge_id: Only return submissions for this challenge
        @return: Submissions ordered most recent first
        """
        conditions = []
        params: List[Any] = []

        if team_id:
            conditions.append("team_id = ?")
            params.append(team_id)
        if challenge_id:
            conditions.append("challenge_id = ?")
            params.append(challenge_id)

        query = (
            "SELECT id, team_id, challenge_id, submission_text, is_correct, submitted_at "
            "FROM submissions"
        )
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY submitted_at DESC, id DESC"

        async with self._connect() as db:
            cursor = await db.execute(query, params)
            return [_row_to_submission(row) for row in await cursor.fetchall()]

    # ---- teams ----

    async def insert_team(
        self,
        name: str,
    ) -> Team:
        """
        Create a team with a fresh identifier.

        @param name: Validated team name
        @return: The created team
        """
        team = Team(id=uuid.uuid4().hex, name=name)

        async with self.transaction() as db:
            await db.execute(
                "INSERT INTO teams (id, name) VALUES (?, ?)", (team.id, team.name)
            )

        logger.info(f"Added team {team.name} ({team.id})")
        return team

    async def update_team(
        self,
        team_id: str,
        name: str,
    ) -> None:
        async with self.transaction() as db:
            cursor = await db.execute(
                "UPDATE teams SET name = ? WHERE id = ?", (name, team_id)
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Team not found")

        logger.info(f"Renamed team {team_id} to {name}")

    async def delete_team(
        self,
        team_id: str,
    ) -> None:
        """
        Delete a team and everything it owns.

        Dependents are removed before the team row.

        @param team_id: Team to delete
        """
        async with self.transaction() as db:
            await db.execute("DELETE FROM solved_checkpoints WHERE team_id = ?", (team_id,))
            await db.execute("DELETE FROM solved_challenges WHERE team_id = ?", (team_id,))
            await db.execute("DELETE FROM submissions WHERE team_id = ?", (team_id,))

            cursor = await db.execute("DELETE FROM teams WHERE id = ?", (team_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Team not found")

        logger.info(f"Deleted team {team_id}")

    # ---- challenges ----

    async def _insert_checkpoints(
        self,
        db: aiosqlite.Connection,
        challenge: Challenge,
    ) -> None:
        for position, checkpoint in enumerate(challenge.checkpoints, 1):
            await db.execute(
                "INSERT INTO checkpoints (id, challenge_id, position, name, points) "
                "VALUES (?, ?, ?, ?, ?)",
                (checkpoint.id, challenge.id, position, checkpoint.name, checkpoint.points),
            )

    async def insert_challenge(
        self,
        challenge: Challenge,
    ) -> None:
        """
        Insert a challenge together with its checkpoints.

        @param challenge: Fully built challenge, checkpoint ids already assigned
        """
        async with self.transaction() as db:
            await db.execute(
                "INSERT INTO challenges (id, name, description, type, points, penalty_points) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    challenge.id,
                    challenge.name,
                    challenge.description,
                    challenge.type,
                    challenge.points,
                    challenge.penalty_points,
                ),
            )
            await self._insert_checkpoints(db, challenge)

        logger.info(
            f"Added {challenge.type} challenge {challenge.name} ({challenge.id}) "
            f"worth {challenge.points}"
        )

    async def update_challenge(
        self,
        challenge: Challenge,
        preserve_progress: bool = False,
    ) -> None:
        """
        Update a challenge and replace its whole checkpoint set.

        Solved-checkpoint rows of the old checkpoints are removed. With
        ``preserve_progress`` they are carried over to new checkpoints that keep
        an old checkpoint's name.

        @param challenge: Challenge with its new field values and checkpoints
        @param preserve_progress: Keep solved state for checkpoints matched by name
        """
        async with self.transaction() as db:
            cursor = await db.execute(
                "UPDATE challenges SET name = ?, description = ?, type = ?, points = ?, "
                "penalty_points = ? WHERE id = ?",
                (
                    challenge.name,
                    challenge.description,
                    challenge.type,
                    challenge.points,
                    challenge.penalty_points,
                    challenge.id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Challenge not found")

            solvers_by_name: Dict[str, Set[str]] = {}
            if preserve_progress:
                cursor = await db.execute(
                    """
                    SELECT sc.team_id, c.name
                    FROM solved_checkpoints sc
                    JOIN checkpoints c ON c.id = sc.checkpoint_id
                    WHERE c.challenge_id = ?
                    """,
                    (challenge.id,),
                )
                for row in await cursor.fetchall():
                    solvers_by_name.setdefault(row["name"], set()).add(row["team_id"])

            await db.execute(
                "DELETE FROM solved_checkpoints WHERE checkpoint_id IN "
                "(SELECT id FROM checkpoints WHERE challenge_id = ?)",
                (challenge.id,),
            )
            await db.execute(
                "DELETE FROM checkpoints WHERE challenge_id = ?", (challenge.id,)
            )
            await self._insert_checkpoints(db, challenge)

            for checkpoint in challenge.checkpoints:
                for team_id in sorted(solvers_by_name.get(checkpoint.name, ())):
                    await db.execute(
                        "INSERT OR IGNORE INTO solved_checkpoints (team_id, checkpoint_id) "
                        "VALUES (?, ?)",
                        (team_id, checkpoint.id),
                    )

        logger.info(f"Updated challenge {challenge.name} ({challenge.id})")

    async def delete_challenge(
        self,
        challenge_id: str,
    ) -> None:
        async with self.transaction() as db:
            await db.execute(
                "DELETE FROM solved_checkpoints WHERE checkpoint_id IN "
                "(SELECT id FROM checkpoints WHERE challenge_id = ?)",
                (challenge_id,),
            )
            await db.execute("DELETE FROM checkpoints WHERE challenge_id = ?", (challenge_id,))
            await db.execute(
                "DELETE FROM solved_challenges WHERE challenge_id = ?", (challenge_id,)
            )
            await db.execute("DELETE FROM submissions WHERE challenge_id = ?", (challenge_id,))

            cursor = await db.execute("DELETE FROM challenges WHERE id = ?", (challenge_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Challenge not found")

        logger.info(f"Deleted challenge {challenge_id}")

    # ---- progress ----

    async def insert_submission(
        self,
        team_id: str,
        challenge_id: str,
        is_correct: bool,
        submission_text: str = "",
        submitted_at: Optional[datetime] = None,
    ) -> Tuple[Submission, bool]:
        """
        Record a submission; the first correct one also creates the solved record.

        @param team_id: Submitting team
        @param challenge_id: Target challenge
        @param is_correct: Whether the answer was right
        @param submission_text: The submitted answer text
        @param submitted_at: Submission time (defaults to now, UTC)
        @return: The stored submission and whether a solved record was created
        """
        submitted_at = submitted_at or utcnow()
        if submitted_at.tzinfo is None:
            submitted_at = submitted_at.replace(tzinfo=timezone.utc)
        else:
            # Stored text must sort chronologically
            submitted_at = submitted_at.astimezone(timezone.utc)

        async with self.transaction() as db:
            await self._require_team(db, team_id)
            await self._require_challenge(db, challenge_id)

            cursor = await db.execute(
                "INSERT INTO submissions "
                "(team_id, challenge_id, submission_text, is_correct, submitted_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    team_id,
                    challenge_id,
                    submission_text,
                    1 if is_correct else 0,
                    submitted_at.isoformat(timespec="microseconds"),
                ),
            )
            submission = Submission(
                id=cursor.lastrowid,
                team_id=team_id,
                challenge_id=challenge_id,
                is_correct=is_correct,
                submitted_at=submitted_at,
                submission_text=submission_text,
            )

            solved_created = False
            if is_correct:
                cursor = await db.execute(
                    "INSERT OR IGNORE INTO solved_challenges (team_id, challenge_id) "
                    "VALUES (?, ?)",
                    (team_id, challenge_id),
                )
                solved_created = cursor.rowcount > 0

        verdict = "correct" if is_correct else "wrong"
        logger.info(f"Recorded {verdict} submission by {team_id} on {challenge_id}")
        return submission, solved_created

    async def insert_solved_challenge(
        self,
        team_id: str,
        challenge_id: str,
    ) -> None:
        async with self.transaction() as db:
            await self._require_team(db, team_id)
            await self._require_challenge(db, challenge_id)

            cursor = await db.execute(
                "INSERT OR IGNORE INTO solved_challenges (team_id, challenge_id) "
                "VALUES (?, ?)",
                (team_id, challenge_id),
            )
            if cursor.rowcount == 0:
                raise ConflictError("Challenge already solved by this team")

        logger.info(f"Marked {challenge_id} solved for {team_id}")

    async def set_solved_checkpoints(
        self,
        team_id: str,
        challenge_id: str,
        checkpoint_ids: Iterable[str],
    ) -> Set[str]:
        """
        Make a team's solved checkpoints on a challenge exactly ``checkpoint_ids``.

        Creates the solved record if needed; the record is kept even when the
        resulting set is empty.

        @param team_id: Team whose progress changes
        @param challenge_id: Interactive challenge owning the checkpoints
        @param checkpoint_ids: Complete set of solved checkpoint ids
        @return: The solved checkpoint ids after reconciliation
        """
        wanted = set(checkpoint_ids)

        async with self.transaction() as db:
            await self._require_team(db, team_id)
            challenge = await self._fetch_challenge(db, challenge_id)

            unknown = wanted - challenge.checkpoint_ids
            if unknown:
                raise ValidationError(
                    "Unknown checkpoint(s) for this challenge: " + ", ".join(sorted(unknown))
                )

            await db.execute(
                "INSERT OR IGNORE INTO solved_challenges (team_id, challenge_id) VALUES (?, ?)",
                (team_id, challenge_id),
            )

            cursor = await db.execute(
                """
                SELECT sc.checkpoint_id
                FROM solved_checkpoints sc
                JOIN checkpoints c ON c.id = sc.checkpoint_id
                WHERE sc.team_id = ? AND c.challenge_id = ?
                """,
                (team_id, challenge_id),
            )
            current = {row["checkpoint_id"] for row in await cursor.fetchall()}

            for checkpoint_id in sorted(current - wanted):
                await db.execute(
                    "DELETE FROM solved_checkpoints WHERE team_id = ? AND checkpoint_id = ?",
                    (team_id, checkpoint_id),
                )
            for checkpoint_id in sorted(wanted - current):
                await db.execute(
                    "INSERT INTO solved_checkpoints (team_id, checkpoint_id) VALUES (?, ?)",
                    (team_id, checkpoint_id),
                )

        logger.info(
            f"Set solved checkpoints of {team_id} on {challenge_id} to {sorted(wanted)}"
        )
        return wanted
