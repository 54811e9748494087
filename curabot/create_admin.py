"""Create an admin account, or promote an existing user to admin.

Usage:
    python -m curabot.create_admin --email admin@example.com --name Admin --password secret
"""
import argparse
import sys

from sqlalchemy.exc import SQLAlchemyError

from curabot.auth.passwords import hash_password
from curabot.core.context import build_context
from curabot.database import ensure_schema
from curabot.models.user import User


def create_admin(session_factory, email: str, name: str, password: str) -> User:
    db = session_factory()
    try:
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None:
            user = User(
                name=name,
                email=email.strip().lower(),
                hashed_password=hash_password(password),
                role="admin",
            )
            db.add(user)
        else:
            user.role = "admin"
        db.commit()
        db.refresh(user)
        return user
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create a CuraBot admin account.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Administrator")
    parser.add_argument("--password", required=True)
    args = parser.parse_args(argv)

    context = build_context()
    try:
        ensure_schema(context.engine)
        user = create_admin(context.session_factory, args.email, args.name, args.password)
    except SQLAlchemyError as exc:
        print(f"Could not create admin: {exc}", file=sys.stderr)
        sys.exit(1)
    print(f"Admin ready: {user.email} (id {user.id})")


if __name__ == "__main__":
    main()
