from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from storefront.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Engine setup
#
# Postgres:
#   - sslmode=require   : enforce SSL when running in the cloud
#   - pool_pre_ping=True: validate connections before using them
#
# SQLite (local dev / tests):
#   - check_same_thread=False so FastAPI's threadpool can share it
#   - StaticPool for in-memory URLs, otherwise every connection
#     would see its own empty database
# ---------------------------------------------------------


def _build_engine(db_url: str):
    if db_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, echo=False, **kwargs)

    # Append sslmode=require if it is not already present
    if db_url.startswith("postgresql") and "sslmode=" not in db_url:
        if "?" in db_url:
            db_url = db_url + "&sslmode=require"
        else:
            db_url = db_url + "?sslmode=require"

    return create_engine(
        db_url,
        echo=False,        # set to True if you want to debug SQL queries
        pool_pre_ping=True,
    )


engine = _build_engine(settings.DATABASE_URL)


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """FastAPI dependency: one Session per request."""
    with Session(engine) as session:
        yield session
