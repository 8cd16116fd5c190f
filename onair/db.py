import os

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = (os.getenv("ONAIR_DATABASE_URL", "") or "").strip() or "sqlite:///./onair.db"


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    options: dict = {"connect_args": {"check_same_thread": False}}
    if url in {"sqlite://", "sqlite:///:memory:"}:
        # One shared connection, otherwise every session sees an empty database.
        options["poolclass"] = StaticPool
    return options


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_sqlite_schema():
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps local/dev installs working without requiring Alembic.
    """
    if not DATABASE_URL.startswith("sqlite"):
        return

    with engine.begin() as conn:
        channel_cols = conn.execute(text("PRAGMA table_info(channel)")).fetchall()
        channel_col_names = {row[1] for row in channel_cols}  # (cid, name, type, notnull, dflt_value, pk)
        if channel_cols:
            if "always_live" not in channel_col_names:
                conn.execute(text("ALTER TABLE channel ADD COLUMN always_live INTEGER DEFAULT 0"))
            if "live_feed_ref" not in channel_col_names:
                conn.execute(text("ALTER TABLE channel ADD COLUMN live_feed_ref VARCHAR"))
            if "logo_ref" not in channel_col_names:
                conn.execute(text("ALTER TABLE channel ADD COLUMN logo_ref VARCHAR"))
            if "is_active" not in channel_col_names:
                conn.execute(text("ALTER TABLE channel ADD COLUMN is_active INTEGER DEFAULT 1"))
            conn.execute(text("UPDATE channel SET always_live=0 WHERE always_live IS NULL"))
            conn.execute(text("UPDATE channel SET is_active=1 WHERE is_active IS NULL"))
            conn.execute(
                text(
                    "UPDATE channel SET slug=NULL "
                    "WHERE slug IS NOT NULL AND trim(slug)=''"
                )
            )

        for table in ("program", "program_draft"):
            cols = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
            if not cols:
                continue
            col_names = {row[1] for row in cols}
            if "poster_ref" not in col_names:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN poster_ref VARCHAR"))
            if "title" not in col_names:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN title VARCHAR"))

        draft_cols = conn.execute(text("PRAGMA table_info(program_draft)")).fetchall()
        draft_col_names = {row[1] for row in draft_cols}
        if draft_cols and "sort_index" not in draft_col_names:
            conn.execute(text("ALTER TABLE program_draft ADD COLUMN sort_index INTEGER DEFAULT 0"))
        if draft_cols:
            conn.execute(text("UPDATE program_draft SET sort_index=0 WHERE sort_index IS NULL"))
