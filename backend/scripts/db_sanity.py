from __future__ import annotations

import os
import sys
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import sessionmaker

ALEMBIC_INI = Path(__file__).resolve().parents[2] / "alembic.ini"


def _load_database_url() -> str:
    env_url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")
    if env_url:
        return env_url

    config = Config(str(ALEMBIC_INI))
    ini_url = config.get_main_option("sqlalchemy.url")
    if not ini_url:
        raise RuntimeError("No DATABASE_URL or sqlalchemy.url configured.")
    return ini_url


def _fetch_db_revision(database_url: str) -> str | None:
    engine = create_engine(database_url, future=True)
    try:
        with engine.connect() as conn:
            row = conn.execute(text("SELECT version_num FROM alembic_version")).first()
            return row[0] if row else None
    except (OperationalError, ProgrammingError):
        return None
    finally:
        engine.dispose()


def _ledger_errors(database_url: str) -> list[str]:
    """Mirror-invariant check for every group with ledger cells."""
    os.environ.setdefault("DATABASE_URL", database_url)
    from backend.app.models import LedgerCell
    from backend.app.services.ledger_service import LedgerIntegrityError, check_ledger_integrity

    engine = create_engine(database_url, future=True)
    Session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = Session()
    errors: list[str] = []
    try:
        group_ids = session.execute(select(LedgerCell.group_id).distinct()).scalars().all()
        for group_id in group_ids:
            try:
                summary = check_ledger_integrity(session, group_id)
            except LedgerIntegrityError as exc:
                errors.append(f"group {group_id}: {exc}")
                continue
            print(f"- group {group_id}: {summary['pairs']} pairs, outstanding {summary['outstanding_total']}")
    finally:
        session.close()
        engine.dispose()
    return errors


def main() -> int:
    errors = []
    database_url = _load_database_url()
    url = make_url(database_url)

    script = ScriptDirectory.from_config(Config(str(ALEMBIC_INI)))
    heads = script.get_heads()
    db_revision = _fetch_db_revision(database_url)

    print("DB sanity report")
    print(f"- SQLAlchemy URL: {url.render_as_string(hide_password=True)}")
    print(f"- Alembic heads in repo: {heads}")
    print(f"- DB alembic_version: {db_revision}")

    if len(heads) != 1:
        errors.append(f"Expected exactly one alembic head, found {len(heads)}: {heads}")

    if db_revision is None:
        errors.append("Database has no alembic_version table or no revision recorded.")
    elif script.get_revision(db_revision) is None:
        errors.append(f"Database revision {db_revision} is not present in the repo revision map.")
    else:
        errors.extend(_ledger_errors(database_url))

    if errors:
        print("\nERRORS:")
        for error in errors:
            print(f"- {error}")
        return 1

    print("\nOK: schema revision in sync and every ledger cell has a negating mirror.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
