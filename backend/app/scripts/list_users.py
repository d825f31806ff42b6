"""Command line entry-point that prints every registered account."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from ..database import session_scope
from ..services import UserService

LOGGER = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="List registered storefront accounts.")
    parser.add_argument(
        "--superusers-only",
        action="store_true",
        help="Only print accounts with the superuser role.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print additional debugging information.",
    )
    return parser.parse_args(argv)


def format_user_line(user) -> str:
    role = getattr(user.role, "value", user.role)
    return f"{user.id}\t{user.email}\t{user.name}\t{role}"


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    with session_scope() as session:
        users = UserService.list_users(session)
        if args.superusers_only:
            users = [user for user in users if user.is_superuser]
        for user in users:
            print(format_user_line(user))
        LOGGER.info("Listed %d account(s)", len(users))
    return 0


if __name__ == "__main__":  # pragma: no cover - manual execution
    raise SystemExit(main())
