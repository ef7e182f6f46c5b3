import asyncio

import aiosqlite
from aiohttp.test_utils import TestClient, TestServer


class _UnavailableStore:
    """Store whose every call fails the way a locked or missing database does."""

    def __init__(self):
        self.calls = 0

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            self.calls += 1
            raise aiosqlite.OperationalError("unable to open database file")

        return fail


def _get(system, path):
    async def fetch():
        async with TestClient(TestServer(system.create_app())) as client:
            response = await client.get(path)
            return response.status, await response.json()

    return asyncio.run(fetch())


def test_leaderboard_is_ranked(seeded):
    status, body = _get(seeded, "/api/leaderboard")
    assert status == 200
    assert body["ctf_name"] == "CTF Leaderboard"
    assert body["refresh_interval"] == 15
    assert [(row["rank"], row["name"], row["score"]) for row in body["leaderboard"]][:2] == [
        (1, "Team Nexus", 1650),
        (2, "Team Alpha", 1600),
    ]


def test_challenges_include_checkpoints(seeded):
    status, body = _get(seeded, "/api/challenges")
    assert status == 200
    reverse = next(c for c in body["challenges"] if c["id"] == "c3")
    assert [cp["id"] for cp in reverse["checkpoints"]] == [
        "c3-1",
        "c3-2",
        "c3-3",
        "c3-4",
        "c3-5",
    ]


def test_challenge_stats_most_completed_first(seeded):
    status, body = _get(seeded, "/api/challenges/stats")
    assert status == 200
    percentages = [s["completion_percentage"] for s in body["challenge_stats"]]
    assert percentages == sorted(percentages, reverse=True)
    assert percentages[0] == 60


def test_teams(seeded):
    status, body = _get(seeded, "/api/teams")
    assert status == 200
    alpha = next(t for t in body["teams"] if t["id"] == "1")
    reverse = next(s for s in alpha["solved_challenges"] if s["challenge_id"] == "c3")
    assert reverse["solved_checkpoint_ids"] == ["c3-1", "c3-2", "c3-3"]


def test_submission_stats_filtered(seeded):
    status, body = _get(seeded, "/api/submissions/stats?team_id=1")
    assert status == 200
    [entry] = body["submission_stats"]
    assert entry["penalty_points"] == 100
    assert len(entry["submissions"]) == 3


def test_submission_stats_disabled(make_system):
    system = make_system(features__submission_stats_enabled=False)
    status, body = _get(system, "/api/submissions/stats")
    assert status == 404
    assert "disabled" in body["error"]


def test_status(seeded):
    status, body = _get(seeded, "/api/status")
    assert status == 200
    assert body["status"] == "ok"
    assert body["is_initialized"] is True
    assert body["stats"]["teams"] == 5
    assert body["stats"]["checkpoints"] == 10


def test_status_reports_unavailable_store(system):
    store = _UnavailableStore()
    system.web_handlers.db = store
    system.aggregator.db = store

    status, body = _get(system, "/api/status")
    assert status == 500
    assert body == {"status": "error", "message": "Database unavailable"}
    # read, reinitialize, read again
    assert store.calls == 3


def test_store_failure_is_generic_500(system):
    system.aggregator.db = _UnavailableStore()

    status, body = _get(system, "/api/leaderboard")
    assert status == 500
    assert body == {"error": "Failed to load scoreboard data"}
