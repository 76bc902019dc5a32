from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"

DEMO_USERS = (
    ("Alice", "alice@example.com"),
    ("Bob", "bob@example.com"),
    ("Carol", "carol@example.com"),
)
DEMO_PASSWORD = "password123"


def _load_database_url(cli_url: str | None) -> str:
    if cli_url:
        return cli_url
    env_url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")
    if env_url:
        return env_url
    ini_url = Config(str(ALEMBIC_INI)).get_main_option("sqlalchemy.url")
    if not ini_url:
        raise RuntimeError("No DATABASE_URL or sqlalchemy.url configured.")
    return ini_url


def _alembic_config(database_url: str) -> Config:
    config = Config(str(ALEMBIC_INI))
    config.set_main_option("sqlalchemy.url", database_url)
    return config


def _reset_schema(config: Config) -> None:
    """Walk the schema down to empty and back up; data goes with it."""
    command.downgrade(config, "base")
    command.upgrade(config, "head")


def _seed_demo_group(database_url: str) -> None:
    """Three users sharing one group, with one EQUAL expense paid by Alice."""
    os.environ.setdefault("DATABASE_URL", database_url)
    from backend.app.models import User
    from backend.app.services import expense_service, group_service, identity_service

    engine = create_engine(database_url, future=True)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = Session()
    try:
        password_hash = identity_service.hash_password(DEMO_PASSWORD)
        users = [User(name=name, email=email, password_hash=password_hash) for name, email in DEMO_USERS]
        session.add_all(users)
        session.commit()

        alice = users[0]
        group = group_service.create_group(
            session,
            alice,
            "Demo Trip",
            [email for _, email in DEMO_USERS[1:]],
        )
        expense_service.create_expense(
            session,
            user_id=alice.id,
            group_id=group.id,
            description="Dinner",
            amount="30.00",
            split_type="EQUAL",
        )
        print(f"Demo group:  {group.id}  |  {group.name}")
        print(f"Demo logins: {', '.join(email for _, email in DEMO_USERS)} / {DEMO_PASSWORD}")
    finally:
        session.close()
        engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset the development database.")
    parser.add_argument("--url", help="Override the database URL.")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive reset.")
    parser.add_argument("--seed", action="store_true", help="Seed a demo group with one expense.")
    args = parser.parse_args()

    if not args.yes:
        print("Refusing to reset database without --yes.")
        return 1

    database_url = _load_database_url(args.url)
    _reset_schema(_alembic_config(database_url))

    if args.seed:
        _seed_demo_group(database_url)

    print("DONE")
    print(f"Database URL: {make_url(database_url).render_as_string(hide_password=True)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
