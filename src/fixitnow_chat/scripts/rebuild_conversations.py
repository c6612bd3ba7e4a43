# src/fixitnow_chat/scripts/rebuild_conversations.py
"""Recompute conversation rows from the message log.

Usage::

    python -m fixitnow_chat.scripts.rebuild_conversations [--user-id N]
"""
from __future__ import annotations

import argparse
import logging
import sys

from fixitnow_chat.core.errors import ChatError
from fixitnow_chat.core.settings import settings
from fixitnow_chat.db.session import SessionLocal
from fixitnow_chat.services.chat import ChatService
from fixitnow_chat.services.realtime import InMemoryBroker

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Only rebuild the conversations of this user",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper())

    session = SessionLocal()
    try:
        # Rebuilding never publishes, so a local broker is enough.
        service = ChatService(session, InMemoryBroker())
        written = service.rebuild_conversations(args.user_id)
    except ChatError as exc:
        logger.error("Rebuild failed: %s", exc)
        return 1
    finally:
        session.close()

    print(f"Rebuilt {written} conversation(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
