"""
Maintenance commands.

    python manage.py create-admin --username admin --email admin@example.com --password secret
    python manage.py init-indexes
    python manage.py seed
"""
import argparse
import getpass
import logging
import sys

import accounts
import catalog
import database
from errors import AppError

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("manage")


def create_admin(args) -> int:
    password = args.password or getpass.getpass("Admin password: ")
    admin = accounts.create_admin(args.username, args.email, password)
    logger.info("Admin created successfully! Email: %s", admin["email"])
    logger.info("Please change the default password after first login!")
    return 0


def init_indexes(args) -> int:
    database.ensure_indexes()
    return 0


def seed(args) -> int:
    created = catalog.seed_products()
    if created:
        logger.info("Seeded %d product(s)", created)
    else:
        logger.info("Data already exists")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Little Treasures maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-admin", help="create an admin account")
    p.add_argument("--username", default="admin")
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="prompted for when omitted")
    p.set_defaults(func=create_admin)

    sub.add_parser("init-indexes", help="create unique and TTL indexes").set_defaults(func=init_indexes)
    sub.add_parser("seed", help="insert sample products into an empty catalog").set_defaults(func=seed)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except AppError as e:
        logger.error(e.message)
        return 1


if __name__ == "__main__":
    sys.exit(main())
