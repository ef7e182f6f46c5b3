"""
Demo competition used to populate an empty database.
"""

import logging
from datetime import timedelta
from typing import Any

from .database import utcnow

logger = logging.getLogger(__name__)

DEMO_CHALLENGES = [
    {
        "id": "c1",
        "name": "Web Exploitation",
        "description": "Find and exploit a web vulnerability",
        "type": "non-interactive",
        "points": 500,
        "penalty_points": 50,
    },
    {
        "id": "c2",
        "name": "Cryptography",
        "description": "Decrypt the hidden message",
        "type": "non-interactive",
        "points": 750,
        "penalty_points": 75,
    },
    {
        "id": "c3",
        "name": "Reverse Engineering",
        "description": "Analyze and understand the binary",
        "type": "interactive",
        "points": 1000,
        "penalty_points": 0,
        "checkpoints": [
            "Identify the file format",
            "Decompile the binary",
            "Find the main function",
            "Identify the encryption algorithm",
            "Extract the hidden message",
        ],
        "checkpoint_points": [100, 150, 200, 250, 300],
    },
    {
        "id": "c4",
        "name": "Forensics",
        "description": "Recover deleted data",
        "type": "non-interactive",
        "points": 800,
        "penalty_points": 80,
    },
    {
        "id": "c5",
        "name": "Binary Exploitation",
        "description": "Exploit a buffer overflow",
        "type": "interactive",
        "points": 1200,
        "penalty_points": 0,
        "checkpoints": [
            "Identify the vulnerability",
            "Craft the payload",
            "Bypass ASLR",
            "Achieve code execution",
            "Escalate privileges",
        ],
        "checkpoint_points": [150, 200, 250, 300, 300],
    },
]

DEMO_TEAMS = [
    ("1", "Team Alpha"),
    ("2", "Team Omega"),
    ("3", "Team Phoenix"),
    ("4", "Team Nexus"),
    ("5", "Team Quantum"),
]

DEMO_SOLVED_CHALLENGES = [
    ("1", "c1"),
    ("1", "c2"),
    ("1", "c3"),
    ("2", "c1"),
    ("2", "c2"),
    ("3", "c1"),
    ("3", "c4"),
    ("4", "c2"),
    ("4", "c5"),
    ("5", "c3"),
]

DEMO_SOLVED_CHECKPOINTS = [
    ("1", "c3-1"),
    ("1", "c3-2"),
    ("1", "c3-3"),
    ("4", "c5-1"),
    ("4", "c5-2"),
    ("4", "c5-3"),
    ("4", "c5-4"),
    ("5", "c3-1"),
    ("5", "c3-2"),
    ("5", "c3-3"),
    ("5", "c3-4"),
    ("5", "c3-5"),
]

# (team, challenge, correct), oldest first
DEMO_SUBMISSIONS = [
    ("1", "c1", False),
    ("1", "c1", False),
    ("1", "c1", True),
    ("2", "c1", True),
    ("3", "c2", False),
    ("3", "c2", False),
]


async def seed_database(db_manager: Any) -> bool:
    """
    Populate an empty database with the demo competition.

    @param db_manager: DatabaseManager to write through
    @return: True if data was inserted, False if teams already existed
    """
    status = await db_manager.get_status()
    if status["teams"] > 0:
        logger.info(f"Database already contains {status['teams']} teams, skipping seed")
        return False

    started = utcnow() - timedelta(minutes=len(DEMO_SUBMISSIONS))

    async with db_manager.transaction() as db:
        for challenge in DEMO_CHALLENGES:
            await db.execute(
                "INSERT INTO challenges (id, name, description, type, points, penalty_points) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    challenge["id"],
                    challenge["name"],
                    challenge["description"],
                    challenge["type"],
                    challenge["points"],
                    challenge["penalty_points"],
                ),
            )
            names = challenge.get("checkpoints", [])
            points = challenge.get("checkpoint_points", [])
            for position, (name, value) in enumerate(zip(names, points), 1):
                await db.execute(
                    "INSERT INTO checkpoints (id, challenge_id, position, name, points) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (f"{challenge['id']}-{position}", challenge["id"], position, name, value),
                )

        await db.executemany("INSERT INTO teams (id, name) VALUES (?, ?)", DEMO_TEAMS)
        await db.executemany(
            "INSERT INTO solved_challenges (team_id, challenge_id) VALUES (?, ?)",
            DEMO_SOLVED_CHALLENGES,
        )
        await db.executemany(
            "INSERT INTO solved_checkpoints (team_id, checkpoint_id) VALUES (?, ?)",
            DEMO_SOLVED_CHECKPOINTS,
        )
        await db.executemany(
            "INSERT INTO submissions (team_id, challenge_id, is_correct, submitted_at) "
            "VALUES (?, ?, ?, ?)",
            [
                (
                    team_id,
                    challenge_id,
                    1 if is_correct else 0,
                    (started + timedelta(minutes=i)).isoformat(timespec="microseconds"),
                )
                for i, (team_id, challenge_id, is_correct) in enumerate(DEMO_SUBMISSIONS)
            ],
        )

    logger.info(
        f"Seeded demo data: {len(DEMO_CHALLENGES)} challenges, {len(DEMO_TEAMS)} teams"
    )
    return True
