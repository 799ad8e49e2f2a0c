from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from app.core.config import settings


def build_engine(database_url: str):
    """Create an engine for the given URL with the per-dialect tuning we rely on."""
    # SQLite-specific configuration
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,  # Allow SQLite to work with FastAPI threads
                "timeout": 30,  # wait for the write lock instead of failing fast
            },
        )

        # Apply PRAGMAs per connection
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA synchronous=NORMAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.execute("PRAGMA busy_timeout=30000;")
            cursor.close()

        return engine

    # Postgres or others
    return create_engine(
        database_url,
        pool_pre_ping=True,
        use_insertmanyvalues=False  # Avoid UUID sentinel mismatch with RETURNING
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
