from __future__ import annotations

import argparse
import logging
from typing import Optional

from membership.config import load_settings
from membership.database import init_db, make_engine
from membership.errors import ConflictError
from membership.models.member import Member, Role
from membership.repositories.registry import build_repositories

logger = logging.getLogger(__name__)


def seed_admin(
    email: str,
    first_name: str,
    last_name: str,
    password: str,
    database_url: Optional[str] = None,
) -> Member:
    """
    Create the first ADMIN so POST /members (admin-only) has someone to act as.

    Idempotent: if the email already exists, the existing member is returned
    and promoted to ADMIN if needed.
    """
    settings = load_settings()
    engine = make_engine(database_url or settings.resolved_database_url)
    try:
        init_db(engine)
        repos = build_repositories(engine, settings)
        try:
            return repos.members.create(
                email=email,
                first_name=first_name,
                last_name=last_name,
                password=password,
                role=Role.ADMIN,
            )
        except ConflictError:
            member = repos.members.get_by_email(email)
            if member.role != Role.ADMIN:
                member = repos.members.change_role(member.id, Role.ADMIN)
            logger.info("admin already present id=%s", member.id)
            return member
    finally:
        engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the bootstrap admin member.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--first-name", default="Church")
    parser.add_argument("--last-name", default="Admin")
    parser.add_argument("--password", required=True)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    member = seed_admin(args.email, args.first_name, args.last_name, args.password)
    print(f"Admin member id={member.id} email={member.email}")


if __name__ == "__main__":
    main()
