from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from learnhub.core.config import settings


def _connect_args(url: str) -> dict:
    # sqlite connections are shared across the request threadpool
    return {"check_same_thread": False} if url.startswith("sqlite") else {}


engine = create_engine(settings.DATABASE_URL, future=True, pool_pre_ping=True,
                       echo=settings.DATABASE_ECHO, connect_args=_connect_args(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


class Base(DeclarativeBase): pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create tables if they don't exist. In production, run migrations instead."""
    import learnhub.models.orm  # noqa: F401  registers the mappers
    Base.metadata.create_all(bind=bind or engine)
