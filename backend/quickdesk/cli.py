"""
Account bootstrap commands.

QuickDesk has no registration flow, so the first admin and the support
agents are created from the command line. Running a command twice is safe:
an existing email is reported and left untouched.

Usage:
    quickdesk create-user --email admin@example.com --name "Ada Admin" --role admin
    python -m quickdesk.cli create-user --email alex@example.com --name "Alex" --role support_agent
"""

import argparse
import asyncio
import logging
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quickdesk.core.auth import create_access_token
from quickdesk.dao.user import UserDAO
from quickdesk.db.session import AsyncSessionLocal, engine
from quickdesk.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def ensure_user(
    session: AsyncSession,
    email: str,
    name: str,
    role: UserRole,
) -> Tuple[User, bool]:
    """
    Create a user unless the email is already registered.

    An existing account is returned as it is; its role and status are not
    changed.

    Returns:
        Tuple of (user, created)
    """
    user_dao = UserDAO(session)

    existing = await user_dao.get_by_email(email)
    if existing is not None:
        logger.info(f"User {existing.email} already exists ({existing.id}), skipping")
        return existing, False

    user = await user_dao.create_user(email=email, name=name, role=role)
    logger.info(f"Created {role.value} {user.email} ({user.id})")
    return user, True


async def create_user_command(
    args: argparse.Namespace,
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> List[str]:
    """Run create-user and return the lines to print."""
    async with session_factory() as session:
        user, created = await ensure_user(
            session,
            email=args.email,
            name=args.name,
            role=UserRole(args.role),
        )
        await session.commit()

    return [
        "User created" if created else "User already exists",
        f"  id:    {user.id}",
        f"  name:  {user.name}",
        f"  email: {user.email}",
        f"  role:  {user.role.value}",
        f"  token: {create_access_token(user.id, role=user.role.value)}",
    ]


def _email(value: str) -> str:
    value = value.strip()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise argparse.ArgumentTypeError(f"invalid email address: {value!r}")
    return value


def _name(value: str) -> str:
    value = value.strip()
    if not value:
        raise argparse.ArgumentTypeError("name must not be empty")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quickdesk", description="QuickDesk administration")
    commands = parser.add_subparsers(dest="command", required=True)

    create_user = commands.add_parser(
        "create-user",
        help="Create an account (no-op when the email already exists)",
    )
    create_user.add_argument("--email", type=_email, required=True, help="Login email")
    create_user.add_argument("--name", type=_name, required=True, help="Display name")
    create_user.add_argument(
        "--role",
        choices=[role.value for role in UserRole],
        default=UserRole.END_USER.value,
        help="Account role (default: end_user)",
    )
    return parser


async def _run(args: argparse.Namespace) -> List[str]:
    try:
        return await create_user_command(args)
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    for line in asyncio.run(_run(args)):
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
