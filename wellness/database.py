from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from wellness.core import config


def build_engine(database_url: str, timeout_seconds: float = config.STORE_TIMEOUT_SECONDS) -> Engine:
    if database_url.startswith('sqlite'):
        return create_engine(
            database_url,
            connect_args={'check_same_thread': False, 'timeout': timeout_seconds},
        )
    return create_engine(database_url, pool_pre_ping=True, pool_timeout=timeout_seconds)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    """Add columns and indexes that older appointment tables are missing."""
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    target = bind or engine

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(target)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes TEXT'),
            ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with target.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_counselor_range '
                    'ON appointments(counselor_id, start_time, end_time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_student_start ON appointments(student_id, start_time)')
            )

        _appointment_schema_checked = True
