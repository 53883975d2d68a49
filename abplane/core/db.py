from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from abplane.core.settings import config_settings


def build_engine(
    database_url: str, echo: bool = False, connect_timeout: int = 5, **engine_kwargs
) -> Engine:
    """
    Create the SQLAlchemy engine for ``database_url``.

    SQLite needs ``check_same_thread`` relaxed for concurrent requests and has
    foreign keys switched off by default, so both are fixed up here.
    """
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": connect_timeout}
    else:
        connect_args = {"connect_timeout": connect_timeout}

    engine = create_engine(
        database_url, echo=echo, connect_args=connect_args, **engine_kwargs
    )

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(
    config_settings.DATABASE_URL,
    echo=config_settings.SQL_ECHO,
    connect_timeout=config_settings.DB_CONNECT_TIMEOUT,
)

# Each request gets its own session (a unit of work).
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency that yields a database session for a single request,
    and ensures the session is closed afterward.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
