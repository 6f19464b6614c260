from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.types import DateTime, TypeDecorator
from circulation.config import settings
from circulation.utils.timezone import as_utc


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL with pool options suited to the backend."""
    if database_url.startswith("sqlite"):
        # Each manager call opens its own session, possibly from a worker thread
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=echo,
    )


def build_session_factory(bind: Engine) -> sessionmaker:
    # Entities outlive the session that loaded them (cache snapshots, API responses)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url, echo=settings.db_echo)

SessionLocal = build_session_factory(engine)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Stores datetimes as naive UTC and always returns aware UTC values.

    SQLite drops tzinfo on the way in, so everything is normalized here
    rather than relying on the backend.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)


def init_db(bind: Engine = engine) -> None:
    """Create the library, book and loan_record tables if they are missing."""
    # Register the models on Base.metadata before creating tables
    import circulation.models  # noqa: F401

    Base.metadata.create_all(bind=bind)
