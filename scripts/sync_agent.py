"""Simple CLI entrypoint for the conference tracker sync agent."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import sys
from pathlib import Path

from conference_tracker.cloudsync import CloudAuthError, CloudSyncError, CloudSyncManager
from conference_tracker.config import SettingsError, SettingsStore
from conference_tracker.const import CONF_CLOUD_SYNC_INTERVAL, CONF_DATABASE_PATH, DEFAULT_SETTINGS_PATH
from conference_tracker.storage import ConferenceStore

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Back up the conference tracker database to the cloud")
    parser.add_argument(
        "--settings", type=Path, default=Path(DEFAULT_SETTINGS_PATH), help="JSON settings file"
    )
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path (overrides settings)")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in and store the session tokens")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="Password (prompted when omitted)")

    sub.add_parser("logout", help="Forget the stored session tokens")
    sub.add_parser("sync", help="Run one sync and print the report")
    run = sub.add_parser("run", help="Sync periodically until interrupted")
    run.add_argument("--interval", type=int, default=None, help="Seconds between syncs (overrides settings)")
    sub.add_parser("status", help="Print sync status")
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    settings = SettingsStore(args.settings)
    db_path = args.db or Path(settings.options[CONF_DATABASE_PATH])
    store = ConferenceStore(db_path)
    manager = CloudSyncManager(store, settings)
    try:
        if args.command == "login":
            password = args.password or getpass.getpass("Password: ")
            tokens = await manager.async_login(args.email, password)
            print(f"Signed in as {tokens.account_email or tokens.user_id}")
        elif args.command == "logout":
            await manager.async_logout()
            print("Signed out")
        elif args.command == "sync":
            result = await manager.async_sync_now()
            print(json.dumps(result["report"], indent=2))
            return 0 if result["report"]["ok"] else 1
        elif args.command == "run":
            if args.interval is not None:
                settings.update(**{CONF_CLOUD_SYNC_INTERVAL: args.interval})
            await manager.async_start()
            if not manager.config.ready:
                _LOGGER.error("Cloud sync is not configured; set cloud_sync_enabled and cloud_base_url")
                return 2
            _LOGGER.info("Starting sync loop every %s seconds", manager.config.interval)
            await asyncio.Event().wait()
        elif args.command == "status":
            print(json.dumps(manager.status(), indent=2))
    except (CloudAuthError, CloudSyncError) as err:
        _LOGGER.error("%s", err)
        return 1
    finally:
        await manager.async_stop()
        store.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(main_async(args))
    except SettingsError as err:
        _LOGGER.error("%s", err)
        return 2
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        _LOGGER.info("Sync agent stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
