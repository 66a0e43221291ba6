"""
SQLAlchemy engine and session wiring for the forecast service.
"""
from urllib.parse import urlparse

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from cashflow.config import Settings, settings

# Hosts on a private Docker network are reachable without TLS
LOCAL_DATABASE_HOSTS = {"localhost", "127.0.0.1", "postgres", "db"}
TLS_QUERY_FLAGS = ("ssl=true", "sslmode=require", "sslmode=verify-ca", "sslmode=verify-full")


def resolve_database_url(config: Settings) -> str:
    """
    Normalize DATABASE_URL to the psycopg driver and check it is usable.

    Raises:
        ValueError: For SQLite URLs, or production URLs to a remote host
            that do not require TLS.
    """
    url = config.database_url
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]

    if not url.startswith("postgresql"):
        raise ValueError(
            f"Unsupported DATABASE_URL scheme {urlparse(url).scheme!r}; "
            "the forecast service needs PostgreSQL (postgresql+psycopg://...)"
        )

    hostname = (urlparse(url).hostname or "").lower()
    requires_tls = any(flag in url.lower() for flag in TLS_QUERY_FLAGS)
    if config.is_production and hostname not in LOCAL_DATABASE_HOSTS and not requires_tls:
        raise ValueError(
            "Production DATABASE_URL must require TLS "
            "(add ?sslmode=require, verify-ca, verify-full or ssl=true)"
        )
    return url


engine = create_engine(
    resolve_database_url(settings),
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a session that is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
