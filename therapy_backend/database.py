import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from therapy_backend.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_session_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)
        table_names = inspector.get_table_names()

        if 'availability_templates' not in table_names:
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability_templates')}
        migration_steps = [
            ('buffer_minutes', 'ALTER TABLE availability_templates ADD COLUMN buffer_minutes INTEGER DEFAULT 0'),
            ('max_sessions_per_day', 'ALTER TABLE availability_templates ADD COLUMN max_sessions_per_day INTEGER DEFAULT 8'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            if 'availability_overrides' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_overrides_therapist_date '
                        'ON availability_overrides(therapist_id, override_date)'
                    )
                )

        _availability_schema_checked = True


def ensure_session_schema() -> None:
    """Index the sessions table and, on PostgreSQL, forbid overlapping bookings.

    The exclusion constraint makes the insert itself fail when it would
    overlap a non-cancelled session of the same therapist.
    """
    global _session_schema_checked

    if _session_schema_checked:
        return

    with _schema_lock:
        if _session_schema_checked:
            return

        inspector = inspect(engine)

        if 'sessions' not in inspector.get_table_names():
            _session_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_sessions_therapist_start ON sessions(therapist_id, start_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_sessions_patient_start ON sessions(patient_id, start_time)')
            )

            if engine.dialect.name == 'postgresql':
                existing_constraints = {
                    row[0]
                    for row in connection.execute(
                        text("SELECT conname FROM pg_constraint WHERE conrelid = 'sessions'::regclass")
                    )
                }
                if 'sessions_no_overlap' not in existing_constraints:
                    connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                    connection.execute(
                        text(
                            'ALTER TABLE sessions ADD CONSTRAINT sessions_no_overlap '
                            "EXCLUDE USING gist (therapist_id WITH =, tsrange(start_time, end_time, '[)') WITH &&) "
                            "WHERE (status <> 'cancelled')"
                        )
                    )

        _session_schema_checked = True
