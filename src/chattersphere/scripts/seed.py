"""Populate a development database with a sample user and community.

Prints a session token for the sample user so the API can be exercised
directly, e.g. ``curl -H "Authorization: Bearer <token>" .../api/users/me``.
"""
from __future__ import annotations

import argparse
import sys

from chattersphere.core.errors import ChatterSphereError
from chattersphere.core.logconfig import configure_logging
from chattersphere.core.security import create_session_token
from chattersphere.core.settings import settings
from chattersphere.db.session import Database
from chattersphere.schemas.community import CommunityCreate
from chattersphere.services.communities import CommunityService
from chattersphere.services.users import upsert_from_identity


def seed(
    database: Database,
    *,
    name: str,
    slug: str,
    requires_approval: bool,
    is_private: bool,
    reset: bool = False,
) -> str:
    """Create the sample data and return a session token for its owner."""
    if reset:
        database.drop_tables()
    database.create_tables()
    with database.session() as db:
        user, _created = upsert_from_identity(
            db,
            {
                "id": "seed_owner",
                "username": "seed-owner",
                "first_name": "Seed",
                "last_name": "Owner",
            },
        )
        service = CommunityService(db)
        try:
            community = service.create(
                user,
                CommunityCreate(
                    name=name,
                    slug=slug,
                    description="Sample community created by the seed script",
                    is_private=is_private,
                    requires_approval=requires_approval,
                ),
            )
            print(f"Created community {community.slug} ({community.id})")
        except ChatterSphereError as exc:
            print(f"Skipped community {slug}: {exc.message}")
        return create_session_token(user.external_id)


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the configured database with sample data")
    parser.add_argument("--name", default="Sample Community", help="Community display name")
    parser.add_argument("--slug", default="sample-community", help="Community slug")
    parser.add_argument(
        "--requires-approval",
        action="store_true",
        help="Gate joins behind moderator approval.",
    )
    parser.add_argument("--private", action="store_true", help="Hide content from non-members.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop every table before seeding.",
    )
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)
    database = Database(args.url or settings.effective_database_url)
    try:
        token = seed(
            database,
            name=args.name,
            slug=args.slug,
            requires_approval=args.requires_approval,
            is_private=args.private,
            reset=args.reset,
        )
    except Exception as exc:
        print(f"[seed] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        database.dispose()
    print(f"Session token for seed-owner: {token}")


if __name__ == "__main__":
    main()
