from datetime import datetime, timezone
from threading import Lock
from weakref import WeakSet

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()

_schema_lock = Lock()
_schema_checked: WeakSet = WeakSet()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if database_url.startswith('sqlite'):
        connect_args['check_same_thread'] = False
    return create_engine(database_url, echo=echo, connect_args=connect_args, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


def ensure_schema(engine: Engine) -> None:
    """Create any missing tables and columns once per engine."""
    if engine in _schema_checked:
        return

    with _schema_lock:
        if engine in _schema_checked:
            return

        # Import for table registration on Base.metadata.
        from curabot.models import appointment, chat, doctor, schedule, user  # noqa: F401

        existing_tables = set(inspect(engine).get_table_names())
        missing = [table for name, table in Base.metadata.tables.items() if name not in existing_tables]
        if missing:
            Base.metadata.create_all(bind=engine, tables=missing)

        if 'time_slots' in existing_tables:
            existing_columns = {column['name'] for column in inspect(engine).get_columns('time_slots')}
            if 'is_withdrawn' not in existing_columns:
                with engine.begin() as connection:
                    connection.execute(
                        text('ALTER TABLE time_slots ADD COLUMN is_withdrawn BOOLEAN NOT NULL DEFAULT FALSE')
                    )

        _schema_checked.add(engine)
