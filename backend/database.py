import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_account_schema_checked = False


def ensure_account_schema() -> None:
    """Bring an older accounts table up to date with the link column and its unique index."""
    global _account_schema_checked

    if _account_schema_checked:
        return

    with _schema_lock:
        if _account_schema_checked:
            return

        inspector = inspect(engine)

        if 'accounts' not in inspector.get_table_names():
            _account_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('accounts')}
        migration_steps = [
            ('display_name', 'ALTER TABLE accounts ADD COLUMN display_name VARCHAR'),
            ('linked_record_id', 'ALTER TABLE accounts ADD COLUMN linked_record_id VARCHAR'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text("UPDATE accounts SET linked_record_id = NULL WHERE linked_record_id = ''")
            )
            # NULLs stay repeatable, so only claimed records are constrained.
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_accounts_linked_record_id '
                    'ON accounts(linked_record_id)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_accounts_email ON accounts(email)')
            )

        _account_schema_checked = True
