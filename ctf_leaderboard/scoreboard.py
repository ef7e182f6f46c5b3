"""
Main ScoreboardSystem class that orchestrates all components.
"""

import asyncio
import hmac
import logging
from typing import Optional

from aiohttp import web, web_runner
import aiohttp_cors

from .aggregator import Aggregator
from .config import ScoreboardConfig
from .database import DatabaseManager
from .errors import AuthorizationError
from .mutations import AdminOperations
from .seed import seed_database
from .web_handlers import WebHandlers

logger = logging.getLogger(__name__)


class ScoreboardSystem:
    """Leaderboard system: store, scoring views, admin mutations and the JSON API."""

    def __init__(
        self,
        config: Optional[ScoreboardConfig] = None,
        db_path: Optional[str] = None,
        config_path: str = "ctf_config.json",
    ) -> None:
        # Load configuration
        self.config = config if config is not None else ScoreboardConfig(config_path)
        self.db_path = db_path or self.config.get("database", "path")

        # Initialize components
        self.db = DatabaseManager(self.db_path, self.config)
        self.aggregator = Aggregator(self.db, self.config)
        self.web_handlers = WebHandlers(self.aggregator, self.db, self.config)
        self._admin = AdminOperations(self.db, self.aggregator, self.config)

    async def init_db(
        self,
        seed: Optional[bool] = None,
    ) -> None:
        """
        Initialize the database.

        Creates database tables and, when enabled, seeds the demo competition.

        @param seed: Force seeding on/off (default uses features.seed_demo_data)
        """
        await self.db.init_db()

        if seed is None:
            seed = self.config.is_feature_enabled("seed_demo_data")
        if seed and await seed_database(self.db):
            self.aggregator.invalidate()

    def admin_operations(
        self,
        token: Optional[str],
    ) -> AdminOperations:
        """
        Hand out the mutation entry points to a caller holding the admin token.

        @param token: Credential presented by the caller
        @return: AdminOperations bound to this system
        @raise AuthorizationError: If admin access is disabled or the token is wrong
        """
        expected = self.config.get("admin", "token") or ""

        if not expected:
            raise AuthorizationError("Admin access is disabled")
        if not token or not hmac.compare_digest(str(token), expected):
            logger.warning("Rejected admin credential")
            raise AuthorizationError("Invalid admin credential")
        return self._admin

    def create_app(self) -> web.Application:
        """
        Build the aiohttp application with CORS-enabled JSON routes.

        @return: Configured application
        """
        app = web.Application()

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods="*",
                )
            },
        )

        app.router.add_get("/api/leaderboard", self.web_handlers.web_api_leaderboard)
        app.router.add_get("/api/challenges", self.web_handlers.web_api_challenges)
        app.router.add_get(
            "/api/challenges/stats", self.web_handlers.web_api_challenge_stats
        )
        app.router.add_get("/api/teams", self.web_handlers.web_api_teams)
        app.router.add_get(
            "/api/submissions/stats", self.web_handlers.web_api_submission_stats
        )
        app.router.add_get("/api/status", self.web_handlers.web_api_status)

        # Add CORS to all routes
        for route in list(app.router.routes()):
            cors.add(route)

        return app

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.config.get("server", "host")
        if port is None:
            port = self.config.get("server", "port")

        app_runner = web_runner.AppRunner(self.create_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info(f"Web server running on http://{host}:{port}")
        return app_runner

    async def run_forever(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> None:
        """
        Serve the JSON API until cancelled.

        @param host: Web server host address (default uses configured host)
        @param port: Web server port (default uses configured port)
        """
        runner = await self.start_web_server(host, port)

        print(f"\n{self.config.get('ctf_name')} running!")
        print("\nPress Ctrl+C to stop...\n")

        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()

    async def print_full_scoreboard(self) -> None:
        """
        Print the complete leaderboard to console.

        Displays every team with its score and number of solved challenges.
        """
        leaderboard = await self.aggregator.get_leaderboard()

        print("\n" + "=" * 50)
        print(self.config.get("ctf_name").upper())
        print("=" * 50)

        if not leaderboard:
            print("Leaderboard is empty")
            return

        for position, entry in enumerate(leaderboard, 1):
            print(
                f"{position:2d}. {entry.name:<20} Score: {entry.score:6d} "
                f"Solved: {entry.challenges_solved}"
            )
