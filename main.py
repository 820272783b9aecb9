#!/usr/bin/env python3
"""
Mizon auth service -- signup, login, bearer sessions and password reset.

Usage:
  python main.py
  python main.py --port 9000
  python main.py --host 127.0.0.1 --reload
  python main.py --purge

Environment variables (see core/config.py for the full list):
  SECRET_KEY    Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL  SQLAlchemy URL. Defaults to a SQLite file beside auth/store.py.
  LOG_LEVEL     DEBUG, INFO, WARNING, ERROR. Defaults to INFO.
"""

import argparse
import logging

from core.config import get_settings
from core.logging_setup import configure_logging

logger = logging.getLogger("mizon.main")


def _purge() -> None:
    """One-shot sweep of expired sessions and reset tokens, for cron use."""
    from auth.service import build_auth_service
    from auth.store import UserStore

    settings = get_settings()
    store = UserStore(settings.database_url, timeout=settings.db_timeout_seconds)
    try:
        sessions, tokens = build_auth_service(settings, store).purge_expired()
    finally:
        store.close()
    print(f"  Purged {sessions} expired session(s) and {tokens} reset token(s).")


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Mizon auth service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind address (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Listen port (default: {settings.port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    parser.add_argument("--purge", action="store_true", help="Purge expired tokens and exit")
    args = parser.parse_args()

    configure_logging(settings.log_level)

    if args.purge:
        _purge()
        return

    import uvicorn

    logger.info("Auth service starting on %s:%d", args.host, args.port)
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload, log_config=None)


if __name__ == "__main__":
    main()
