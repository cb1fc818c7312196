#!/usr/bin/env python3
"""
Grant a role (default: admin) to an existing account, by email. Needed once per deployment
to bootstrap the first administrator, since new accounts start restricted.
Run from backend dir with project venv active: python scripts/promote_admin.py someone@example.edu
"""
import argparse
import logging
import sys
from pathlib import Path

BACKEND = Path(__file__).resolve().parent.parent
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from qbank.config import settings  # noqa: E402
from qbank.database import init_db, make_engine, make_session_factory  # noqa: E402
from qbank.schemas.user import ROLE_TYPES  # noqa: E402
from qbank.services.identity import IdentityStore  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("email")
    parser.add_argument("--role", default="admin", choices=[r for r in ROLE_TYPES if r != "restricted-lecturer"])
    parser.add_argument("--database-url", default=settings.database_url)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    engine = make_engine(args.database_url)
    init_db(engine)
    identity = IdentityStore(make_session_factory(engine))
    user = identity.get_user_by_email(args.email)
    if user is None:
        print(f"No account with email {args.email}", file=sys.stderr)
        return 1
    user = identity.grant_role(user.id, args.role)
    print(f"{user.email}: {', '.join(sorted(user.role_types))} (verified={user.is_verified})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
