
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from payledger.core.config import settings

Base = declarative_base()

def make_engine(db_url: str = None, echo: bool = False):
    db_url = db_url or settings.DB_URL
    # Use connect_args for SQLite to allow multithreading in simple dev setups
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, echo=echo, future=True, connect_args=connect_args)

def make_session_factory(bind):
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

engine = make_engine()
SessionLocal = make_session_factory(engine)

def init_db(bind=None):
    # Import models here so they are registered on Base
    import payledger.db.models as _models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
