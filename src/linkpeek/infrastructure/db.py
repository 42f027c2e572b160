from __future__ import annotations
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from linkpeek.config import get_settings


class Base(DeclarativeBase):
    pass


def _dsn() -> str:
    s = get_settings()
    if s.database_url:
        return s.database_url
    if not s.supabase_project_ref or not s.supabase_db_password:
        raise RuntimeError(
            "Database configuration required. Set DATABASE_URL, or SUPABASE_PROJECT_REF and SUPABASE_DB_PASSWORD."
        )

    host = f"db.{s.supabase_project_ref}.supabase.co"
    return f"postgresql+psycopg2://{s.supabase_db_user}:{s.supabase_db_password}@{host}:5432/{s.supabase_db_name}?sslmode=require"


engine = create_engine(_dsn(), pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

def override_engine(e):  # test helper
    global engine, SessionLocal
    engine = e
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def new_session() -> Session:
    """Open a session on the current engine (honours override_engine)."""
    return SessionLocal()


def get_db():
    db = new_session()
    try:
        yield db
    finally:
        db.close()


def healthcheck() -> bool:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        return True
