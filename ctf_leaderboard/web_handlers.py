"""
Web route handlers for the CTF leaderboard JSON API.
"""

import logging
from typing import Any, Optional

from aiohttp import web

from .errors import StoreError

logger = logging.getLogger(__name__)


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        aggregator: Any,
        db_manager: Any,
        config: Any,
    ) -> None:
        self.aggregator = aggregator
        self.db = db_manager
        self.config = config

    def _store_error_response(self, error: StoreError) -> web.Response:
        return web.json_response({"error": str(error)}, status=500)

    @staticmethod
    def _query_filter(request: web.Request, name: str) -> Optional[str]:
        value = request.query.get(name, "").strip()
        return value or None

    async def web_api_leaderboard(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for the overall leaderboard.

        @param _: Unused request parameter
        @return: JSON response with teams ranked by score
        """
        try:
            leaderboard = await self.aggregator.get_leaderboard()
        except StoreError as e:
            return self._store_error_response(e)

        return web.json_response(
            {
                "ctf_name": self.config.get("ctf_name"),
                "leaderboard": [
                    dict(entry.to_dict(), rank=i + 1)
                    for i, entry in enumerate(leaderboard)
                ],
                "refresh_interval": self.config.get("server", "refresh_interval"),
            }
        )

    async def web_api_challenges(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for challenges.

        @param _: Unused request parameter
        @return: JSON response containing all challenges with their checkpoints
        """
        try:
            challenges = await self.aggregator.get_challenges()
        except StoreError as e:
            return self._store_error_response(e)

        return web.json_response(
            {"challenges": [challenge.to_dict() for challenge in challenges]}
        )

    async def web_api_challenge_stats(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for challenge completion statistics.

        @param _: Unused request parameter
        @return: JSON response with stats, most completed challenge first
        """
        try:
            stats = await self.aggregator.get_challenge_stats()
        except StoreError as e:
            return self._store_error_response(e)

        ordered = sorted(stats, key=lambda s: s.completion_percentage, reverse=True)
        return web.json_response({"challenge_stats": [s.to_dict() for s in ordered]})

    async def web_api_teams(
        self,
        _: web.Request,
    ) -> web.Response:
        try:
            teams = await self.aggregator.get_teams()
        except StoreError as e:
            return self._store_error_response(e)

        return web.json_response({"teams": [team.to_dict() for team in teams]})

    async def web_api_submission_stats(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        API endpoint for per-team, per-challenge submission statistics.

        @param request: HTTP request with optional team_id / challenge_id query filters
        @return: JSON response with submission stats or 404 if disabled
        """
        if not self.config.is_feature_enabled("submission_stats_enabled"):
            return web.json_response(
                {"error": "Submission statistics are disabled"}, status=404
            )

        try:
            stats = await self.aggregator.get_submission_stats(
                team_id=self._query_filter(request, "team_id"),
                challenge_id=self._query_filter(request, "challenge_id"),
            )
        except StoreError as e:
            return self._store_error_response(e)

        return web.json_response({"submission_stats": [s.to_dict() for s in stats]})

    async def web_api_status(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint reporting store health and record counts.

        @param _: Unused request parameter
        @return: JSON response with status "ok" or "error"
        """
        try:
            counts = await self.aggregator.read_with_retry(self.db.get_status)
        except StoreError as e:
            logger.error(f"Status check failed: {e}")
            return web.json_response(
                {"status": "error", "message": "Database unavailable"}, status=500
            )

        return web.json_response(
            {
                "status": "ok",
                "database": "SQLite",
                "is_initialized": counts["teams"] > 0,
                "stats": counts,
            }
        )
