from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.engine.url import make_url

from deal_redemption.config import settings


def build_engine(database_url: str):
    # sqlite needs cross-thread connections and a busy timeout so concurrent
    # redeemers queue on the write lock instead of failing immediately
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False, "timeout": settings.sqlite_busy_timeout}

    return create_engine(
        database_url,
        connect_args=connect_args,
        pool_pre_ping=True,          # helps recycle stale connections
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
