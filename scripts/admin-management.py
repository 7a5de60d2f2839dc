#!/usr/bin/env python3
"""
Admin account management for the Habu store.

Talks to the database directly, so it works before any admin exists.
Run it after `pip install -e .` so the service modules are importable:

    python scripts/admin-management.py create ops@habu.et --first-name Ops --last-name Team
    python scripts/admin-management.py list
    python scripts/admin-management.py delete ops@habu.et
"""
import argparse
import getpass
import logging
import sys

from database import SessionLocal, init_db
from errors import AppError
from logging_config import setup_logging
from models import User
from services.user_service import UserService

logger = logging.getLogger("admin-management")


def create_admin(args):
    password = args.password or getpass.getpass("Password: ")
    with SessionLocal() as db:
        user = UserService().create_user(
            db,
            email=args.email,
            password=password,
            first_name=args.first_name,
            last_name=args.last_name,
            phone=args.phone,
            role="admin"
        )
        print(f"Created admin {user.email} (id {user.id})")


def list_admins(args):
    with SessionLocal() as db:
        admins = UserService().list_admins(db)
        if not admins:
            print("No admin accounts")
            return
        for admin in admins:
            state = "active" if admin.is_active else "inactive"
            print(f"{admin.id:>5}  {admin.email:<40} {admin.first_name} {admin.last_name} ({state})")


def delete_admin(args):
    with SessionLocal() as db:
        user = db.query(User).filter(User.email == args.email.lower(), User.role == "admin").first()
        if user is None:
            raise AppError(f"No admin with email {args.email}", 404)
        UserService().delete_user(db, user.id)
        print(f"Deleted admin {args.email}")


def main():
    parser = argparse.ArgumentParser(description="Manage Habu admin accounts")
    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create an admin account")
    create.add_argument("email")
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument("--first-name", default="Store")
    create.add_argument("--last-name", default="Admin")
    create.add_argument("--phone")
    create.set_defaults(handler=create_admin)

    commands.add_parser("list", help="List admin accounts").set_defaults(handler=list_admins)

    delete = commands.add_parser("delete", help="Delete an admin account without orders")
    delete.add_argument("email")
    delete.set_defaults(handler=delete_admin)

    args = parser.parse_args()
    setup_logging(logging.WARNING)
    init_db()

    try:
        args.handler(args)
    except AppError as e:
        logger.error("Admin management failed", extra={"command": args.command, "error": e.message})
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
