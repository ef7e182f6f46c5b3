#!/usr/bin/env python3
"""
CTF leaderboard server.
Maintains a persistent scoreboard and serves the JSON read API for displays.
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

from ctf_leaderboard.config import ScoreboardConfig
from ctf_leaderboard.scoreboard import ScoreboardSystem


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="CTF Leaderboard server with a JSON web API",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--web-port",
        type=int,
        default=None,
        help="Web API port (env: WEB_PORT, default from config)",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database file path (env: DB_PATH, default from config)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "ctf_config.json"),
        help="Configuration file path (env: CONFIG_PATH)",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Host to bind the web server to (env: HOST, default from config)",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Populate an empty database with the demo competition",
    )
    parser.add_argument(
        "--init-only",
        action="store_true",
        help="Initialize the database, print the scoreboard and exit",
    )

    args = parser.parse_args()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        print(f"Error: {args.config} exists but is not a file")
        return

    config = ScoreboardConfig(args.config)

    logging.basicConfig(
        level=config.get("logging", "level"),
        format="%(name)s %(levelname)s: %(message)s",
    )

    system = ScoreboardSystem(config=config, db_path=args.db)

    await system.init_db(seed=True if args.seed else None)
    await system.print_full_scoreboard()

    if args.init_only:
        return

    await system.run_forever(host=args.host, port=args.web_port)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nServer interrupted")
