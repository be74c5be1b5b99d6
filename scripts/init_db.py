#!/usr/bin/env python3
"""
Create the registration engine schema in the configured database.

Optionally drops existing tables first, and can seed the SQL group
directory (directory_users / approval_groups / approval_group_members)
from the ``users`` and ``groups`` sections of the configuration.

Usage:
  python3 scripts/init_db.py [--config PATH] [--db-url URL] [--drop] [--seed-directory]
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create registration engine tables")
    p.add_argument("--config", type=Path, default=None, help="Configuration YAML path")
    p.add_argument("--db-url", default=None, help="Database URL (overrides configuration)")
    p.add_argument("--drop", action="store_true", help="Drop all tables before creating")
    p.add_argument(
        "--seed-directory",
        action="store_true",
        help="Load configured users and groups into the SQL group directory",
    )
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from registration_config import get_active_config
    from registration_config.bridges import configure_logging_from
    from registration_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from registration_services.group_directory import SqlGroupDirectory

    config = get_active_config(args.config)
    configure_logging_from(config)

    db_url = args.db_url or config.database.url
    init_engine_from_url(
        db_url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        busy_timeout=config.database.busy_timeout_seconds,
    )

    if args.drop:
        drop_tables()
        print("  Dropped existing tables.")
    create_tables()
    print(f"  Schema ready at {db_url}")

    if args.seed_directory:
        with session_scope() as session:
            directory = SqlGroupDirectory(session)
            known_users = {u.user_id for u in config.users}
            for user in config.users:
                directory.add_user(user.user_id, user.email, user.is_active)
            for group in config.groups:
                for member in group.members:
                    if member not in known_users:
                        directory.add_user(member)
                        known_users.add(member)
                directory.add_group(group.group_id, group.name, group.members, group.is_active)
        print(f"  Seeded {len(config.users)} user(s) and {len(config.groups)} group(s).")

    return 0


if __name__ == "__main__":
    sys.exit(main())
